import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from .spotify import SpotifyClient, SpotifyError

logger = logging.getLogger(__name__)


class TrackSummary(BaseModel):
    trackName: str
    artistName: str


class ProfileView(BaseModel):
    """Everything the profile page shows, built fresh on every request."""
    name: Optional[str] = None
    currentlyPlaying: Optional[TrackSummary] = None
    recentlyPlayed: List[TrackSummary] = []
    topTracks: List[str] = []
    topArtists: List[str] = []

    model_config = {"frozen": True}


def summarize_track(track: dict) -> TrackSummary:
    artist_names = ", ".join(a.get("name", "") for a in track.get("artists") or [])
    return TrackSummary(trackName=track.get("name", ""), artistName=artist_names)


def currently_playing(payload: Optional[dict]) -> Optional[TrackSummary]:
    # Spotify answers 204 (payload None) or omits `item` when nothing is playing
    if not payload or not payload.get("item"):
        return None
    return summarize_track(payload["item"])


def recently_played(payload: Optional[dict]) -> List[TrackSummary]:
    items = (payload or {}).get("items") or []
    return [summarize_track(item["track"]) for item in items if item.get("track")]


def _names(payload: Optional[dict]) -> List[str]:
    return [item.get("name", "") for item in (payload or {}).get("items") or []]


async def build_profile(spotify: SpotifyClient, access_token: str) -> ProfileView:
    """
    Fetch the five resources the profile page needs and merge them.
    The calls run concurrently; the first failure cancels the rest and is re-raised,
    so a caller never sees a partially filled view.
    """
    calls = [
        spotify.get("/me/top/tracks", access_token, params={"limit": 5}),
        spotify.get("/me/top/artists", access_token, params={"limit": 5}),
        spotify.get("/me", access_token),
        spotify.get("/me/player/currently-playing", access_token),
        spotify.get("/me/player/recently-played", access_token, params={"limit": 5}),
    ]
    tasks = [asyncio.ensure_future(r) for r in calls]
    try:
        top_tracks, top_artists, me, playing, recent = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    try:
        view = ProfileView(
            name=(me or {}).get("display_name"),
            currentlyPlaying=currently_playing(playing),
            recentlyPlayed=recently_played(recent),
            topTracks=_names(top_tracks),
            topArtists=_names(top_artists),
        )
    except (AttributeError, TypeError, KeyError, ValidationError) as e:
        logger.error(f"Malformed profile data from Spotify: {e}")
        raise SpotifyError("Malformed profile data") from e
    logger.info(f"Built profile view for {view.name!r}")
    return view
