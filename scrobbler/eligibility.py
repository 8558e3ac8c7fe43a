"""
Scrobble eligibility rules.

Last.fm guideline: a track longer than 30s is scrobbled once it has played for
half its duration or for 4 minutes, whichever comes first.
See https://www.last.fm/api/scrobbling#when-is-a-scrobble-a-scrobble
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scrobbler.lastfm_client import CatalogTrack
    from scrobbler.state import TrackMetadata

MIN_TRACK_LENGTH = timedelta(seconds=30)
MAX_SCROBBLE_THRESHOLD = timedelta(minutes=4)


def scrobble_threshold(duration: timedelta) -> timedelta:
    return min(duration / 2, MAX_SCROBBLE_THRESHOLD)


def can_be_scrobbled(track: TrackMetadata | None, now: datetime) -> bool:
    if track is None:
        return False
    if track.duration <= MIN_TRACK_LENGTH:
        return False
    return track.playing_since <= now - scrobble_threshold(track.duration)


def validate_is_music(match: CatalogTrack | None, strict: bool) -> bool:
    """Decide whether a catalog match backs the candidate up as real music.

    The host frequently reports browser video and the like as music. Those often
    exist in the catalog too, so strict mode also wants an album, a real
    duration or a MusicBrainz artist id before believing it.
    """
    if match is None:
        return False
    if not strict:
        return True
    return (
        bool(match.album_title)
        or (match.duration_ms or 0) > MIN_TRACK_LENGTH.total_seconds() * 1000
        or bool(match.artist_mbid)
    )


def reconcile_duration(track: TrackMetadata, match: CatalogTrack | None) -> bool:
    """Prefer the catalog duration when it is plausible and shorter than the reported one."""
    if match is None or not match.duration_ms:
        return False
    remote = timedelta(milliseconds=match.duration_ms)
    if remote > MIN_TRACK_LENGTH and remote < track.duration:
        track.duration = remote
        return True
    return False
