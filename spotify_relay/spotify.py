import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from .config import API_BASE, AUTH_BASE, TOKEN_URL, Settings

logger = logging.getLogger(__name__)


class SpotifyError(Exception):
    """Raised when a call to Spotify fails (network, status code or body)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenPair(BaseModel):
    """The shape of a token response from Spotify's /api/token"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None


def authorize_url(settings: Settings, state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.client_id,
        "scope": settings.scopes,
        "redirect_uri": settings.redirect_uri,
        "state": state,
    }
    if settings.show_dialog:
        params["show_dialog"] = "true"
    return f"{AUTH_BASE}?{urlencode(params)}"


class SpotifyClient:
    """
    Thin async wrapper around the Spotify accounts and Web API endpoints.
    Use it as an async context manager so the underlying httpx client is closed:

        async with SpotifyClient(settings) as spotify:
            tokens = await spotify.exchange_code(code)
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._client = httpx.AsyncClient(timeout=settings.http_timeout, transport=transport)

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc_info):
        await self._client.aclose()

    async def _token_request(self, data: dict) -> TokenPair:
        # httpx builds the Basic header from the (id, secret) pair and form-encodes `data`
        auth = (self.settings.client_id, self.settings.client_secret)
        try:
            r = await self._client.post(TOKEN_URL, data=data, auth=auth)
            r.raise_for_status()
            return TokenPair(**r.json())
        except httpx.HTTPStatusError as e:
            logger.error(f"Spotify token endpoint returned {e.response.status_code}: {e.response.text}")
            raise SpotifyError("Token request rejected", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"Spotify token endpoint unreachable: {e!r}")
            raise SpotifyError("Token endpoint unreachable") from e
        except (ValueError, TypeError, ValidationError) as e:
            logger.error(f"Malformed token response: {e}")
            raise SpotifyError("Malformed token response") from e

    async def exchange_code(self, code: str) -> TokenPair:
        """Trade an authorization code for an access/refresh token pair."""
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
        })

    async def refresh_access_token(self, refresh_token: str) -> TokenPair:
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    async def get(self, path: str, access_token: str, params: Optional[dict] = None) -> Optional[dict]:
        """
        GET a Web API resource on behalf of the user.
        Returns None when Spotify answers with no content (e.g. nothing is playing).
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await self._client.get(f"{API_BASE}{path}", headers=headers, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Spotify API error fetching {path}: {e.response.status_code} {e.response.text}")
            raise SpotifyError(f"Could not fetch {path}", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"Spotify API unreachable fetching {path}: {e!r}")
            raise SpotifyError(f"Could not fetch {path}") from e

        if response.status_code == 204 or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Malformed JSON from {path}: {e}")
            raise SpotifyError(f"Malformed response from {path}") from e
