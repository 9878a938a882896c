import logging
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from .config import Settings
from .profile import build_profile
from .spotify import SpotifyClient, SpotifyError, authorize_url
from .state import STATE_COOKIE, STATE_MAX_AGE, issue_state, validate_state

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter()
# Only mounted for cookie delivery; the fragment variant never sees the tokens again.
profile_router = APIRouter()


class ErrorBody(BaseModel):
    """The JSON body of every error answer from the relay"""
    error: str


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_spotify(request: Request) -> AsyncIterator[SpotifyClient]:
    """One httpx client per request, closed once the response is produced."""
    async with SpotifyClient(request.app.state.settings, transport=request.app.state.transport) as spotify:
        yield spotify


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=302)


def _error_redirect(error: str) -> RedirectResponse:
    return _redirect("/#" + urlencode({"error": error}))


def _error_response(error: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorBody(error=error).model_dump(), status_code=status_code)


def _set_token_cookie(response: Response, key: str, value: str, settings: Settings):
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _prefers_json_response(request: Request) -> bool:
    accept = (request.headers.get("Accept") or "").lower()
    return "application/json" in accept and "text/html" not in accept


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/login")
def login(settings: Settings = Depends(get_settings)):
    state = issue_state()
    response = _redirect(authorize_url(settings, state))
    # Lax, not Strict: the cookie must come back on the provider's top-level redirect
    response.set_cookie(
        key=STATE_COOKIE,
        value=state,
        max_age=STATE_MAX_AGE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    logger.info("Redirecting to Spotify authorization page")
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    spotify: SpotifyClient = Depends(get_spotify),
):
    if not validate_state(request.cookies.get(STATE_COOKIE), state):
        logger.warning("OAuth callback rejected: state mismatch")
        return _error_redirect("state_mismatch")

    if error:
        # Provider denials (e.g. access_denied) collapse into the same code as a failed exchange
        logger.warning(f"Spotify returned error: {error}")
        response = _error_redirect("invalid_token")
    elif not code:
        logger.warning("OAuth callback without an authorization code")
        response = _error_redirect("invalid_token")
    else:
        try:
            tokens = await spotify.exchange_code(code)
        except SpotifyError as e:
            logger.error(f"Error fetching tokens: {e}")
            response = _error_redirect("invalid_token")
        else:
            response = _deliver_tokens(tokens.access_token, tokens.refresh_token or "", settings)
            logger.info("Token exchange successful")

    # The nonce is single-use whatever happens after validation
    response.delete_cookie(STATE_COOKIE, httponly=True, secure=settings.cookie_secure, samesite="lax")
    return response


def _deliver_tokens(access_token: str, refresh_token: str, settings: Settings) -> Response:
    if settings.uses_cookies:
        response = _redirect("/profile")
        _set_token_cookie(response, ACCESS_COOKIE, access_token, settings)
        _set_token_cookie(response, REFRESH_COOKIE, refresh_token, settings)
        return response
    # Fragments are never sent back to the server by the browser
    return _redirect("/#" + urlencode({"access_token": access_token, "refresh_token": refresh_token}))


@router.get("/refresh_token")
async def refresh(
    request: Request,
    refresh_token: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    spotify: SpotifyClient = Depends(get_spotify),
):
    """Mint a new access token. One attempt, no retry."""
    if settings.uses_cookies:
        refresh_token = request.cookies.get(REFRESH_COOKIE)

    if not refresh_token:
        logger.warning("Refresh requested without a refresh token")
        return _error_response("failed_to_refresh_token", 500)

    try:
        tokens = await spotify.refresh_access_token(refresh_token)
    except SpotifyError as e:
        logger.error(f"Error refreshing token: {e}")
        return _error_response("failed_to_refresh_token", 500)

    logger.info("Token refresh successful.")
    if not settings.uses_cookies:
        # Spotify sometimes issues a new refresh token, sometimes not
        return {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token or refresh_token,
        }

    response = JSONResponse({"access_token": tokens.access_token})
    _set_token_cookie(response, ACCESS_COOKIE, tokens.access_token, settings)
    if tokens.refresh_token and tokens.refresh_token != refresh_token:
        _set_token_cookie(response, REFRESH_COOKIE, tokens.refresh_token, settings)
    return response


@router.get("/logout")
def logout(settings: Settings = Depends(get_settings)):
    response = _redirect("/")
    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(key, httponly=True, secure=settings.cookie_secure, samesite="strict")
    return response


@profile_router.get("/profile")
async def profile(request: Request, spotify: SpotifyClient = Depends(get_spotify)):
    """
    Render the user's profile: name, what's playing now, recent plays and top items.
    Clients that ask for JSON get the view model itself.
    """
    access_token = request.cookies.get(ACCESS_COOKIE)
    if not access_token:
        return _error_response("Access token missing or expired", 401)

    try:
        view = await build_profile(spotify, access_token)
    except SpotifyError as e:
        logger.error(f"Error fetching profile data: {e}")
        return _error_response("Failed to fetch profile data", 500)

    if _prefers_json_response(request):
        return view.model_dump()
    return templates.TemplateResponse(request, "profile.html", view.model_dump())
