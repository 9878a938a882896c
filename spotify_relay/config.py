import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

AUTH_BASE = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
API_BASE = "https://api.spotify.com/v1"

COOKIE_DELIVERY = "cookie"
FRAGMENT_DELIVERY = "fragment"

# Scopes requested at login. The fragment variant only reads the basic profile.
DEFAULT_SCOPES = {
    COOKIE_DELIVERY: (
        "user-read-private user-read-email user-top-read "
        "user-read-currently-playing user-read-recently-played"
    ),
    FRAGMENT_DELIVERY: "user-read-private user-read-email",
}

DEFAULT_REDIRECT_URI = "http://localhost:8888/callback"


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    token_delivery: str = COOKIE_DELIVERY
    scopes: Optional[str] = None
    cookie_secure: bool = True
    show_dialog: bool = False
    http_timeout: float = 10.0
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8888

    def __post_init__(self):
        if self.token_delivery not in DEFAULT_SCOPES:
            raise ValueError(
                f"Unknown token delivery {self.token_delivery!r}. "
                f"Must be '{COOKIE_DELIVERY}' or '{FRAGMENT_DELIVERY}'."
            )
        if not self.scopes:
            self.scopes = DEFAULT_SCOPES[self.token_delivery]

    @property
    def uses_cookies(self) -> bool:
        return self.token_delivery == COOKIE_DELIVERY

    @staticmethod
    def from_env() -> "Settings":
        """Read settings from the process environment (and a local .env file)."""
        load_dotenv()

        missing = []
        client_id = os.getenv("SPOTIFY_CLIENT_ID")
        if not client_id:
            missing.append("SPOTIFY_CLIENT_ID")
        client_secret = os.getenv("SPOTIFY_CLIENT_SECRET")
        if not client_secret:
            missing.append("SPOTIFY_CLIENT_SECRET")
        if missing:
            raise RuntimeError(f"Missing environment variables: {', '.join(missing)}")

        origins = os.getenv("CORS_ORIGINS", "*")
        return Settings(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=os.getenv("SPOTIFY_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            token_delivery=os.getenv("TOKEN_DELIVERY", COOKIE_DELIVERY).strip().lower(),
            scopes=os.getenv("SPOTIFY_SCOPES") or None,
            cookie_secure=_env_flag("COOKIE_SECURE", True),
            show_dialog=_env_flag("SHOW_DIALOG", False),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "10")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8888")),
        )
