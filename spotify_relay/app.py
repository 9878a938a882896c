import logging
from pathlib import Path
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import Settings
from .routes import profile_router, router

logger = logging.getLogger(__name__)

PUBLIC_DIR = Path(__file__).parent / "public"


def create_app(settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """
    Build the relay app. `transport` is handed to every outbound httpx client,
    which lets tests stand in for Spotify.
    """
    if settings is None:
        settings = Settings.from_env()

    app = FastAPI(title="Spotify auth relay")
    app.state.settings = settings
    app.state.transport = transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    if settings.uses_cookies:
        app.include_router(profile_router)

    # Static files go last so they never shadow an API route
    app.mount("/", StaticFiles(directory=str(PUBLIC_DIR), html=True), name="public")

    logger.info(f"Redirect URI in use: {settings.redirect_uri} (token delivery: {settings.token_delivery})")
    return app
