"""Anti-forgery ``state`` nonce for the login -> callback round trip.

The nonce is issued at ``/login``, kept in a short-lived cookie on the
client and echoed back by Spotify on ``/callback``. Validation fails closed:
a missing cookie or a missing ``state`` is treated as a mismatch.
"""
import secrets
from typing import Optional

STATE_COOKIE = "spotify_auth_state"
STATE_LENGTH = 16
STATE_MAX_AGE = 600  # seconds


def issue_state(length: int = STATE_LENGTH) -> str:
    # token_hex(n) yields 2n hex characters
    return secrets.token_hex((length + 1) // 2)[:length]


def validate_state(stored: Optional[str], returned: Optional[str]) -> bool:
    if not stored or not returned:
        return False
    return secrets.compare_digest(stored.encode("utf-8"), returned.encode("utf-8"))
