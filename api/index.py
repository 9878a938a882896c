# ASGI entry point for serverless hosts (e.g. Vercel): settings come from the environment.
import logging

from spotify_relay import Settings, create_app

settings = Settings.from_env()
logging.basicConfig(level=settings.log_level)

app = create_app(settings)
