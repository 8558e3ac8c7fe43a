from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from scrobbler.eligibility import (
    MIN_TRACK_LENGTH, can_be_scrobbled, reconcile_duration, validate_is_music
)
from scrobbler.lastfm_client import LastFMError

if TYPE_CHECKING:
    from scrobbler.auth import SessionManager
    from scrobbler.lastfm_client import LastFMClient
    from scrobbler.scrobble_queue import ScrobbleQueue

log = logging.getLogger("tracker")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------
# What the media source reports
# -------------------------
@dataclass(frozen=True)
class RawPlayback:
    title: str | None
    artist: str | None
    album: str | None = None
    album_artist: str | None = None
    track_number: int | None = None
    duration: timedelta = timedelta(0)
    playback_type: str = "music"

    def is_music(self) -> bool:
        return self.playback_type == "music" and bool(self.title) and bool(self.artist)


@dataclass(eq=False)
class TrackMetadata:
    """A detected play. Compared by reference; use is_same_track() for identity."""
    track_name: str
    artist_name: str
    album_name: str | None
    album_artist_name: str | None
    track_number: int | None
    duration: timedelta
    playing_since: datetime
    queued: bool = False

    @classmethod
    def from_raw(cls, raw: RawPlayback, now: datetime) -> "TrackMetadata":
        return cls(
            track_name=raw.title,
            artist_name=raw.artist,
            album_name=raw.album or None,
            album_artist_name=raw.album_artist or None,
            track_number=raw.track_number if raw.track_number and raw.track_number > 0 else None,
            duration=raw.duration,
            playing_since=now,
        )

    def is_same_track(self, other: TrackMetadata | None) -> bool:
        return (
            other is not None
            and other.track_name == self.track_name
            and other.artist_name == self.artist_name
        )

    def __str__(self) -> str:
        return f"{self.artist_name} - {self.track_name}"


class NowPlayingTracker:
    """Turns "properties changed" notifications into confirmed plays.

    On every real track change the outgoing track is checked against the
    scrobble rule and queued if it qualifies. The incoming track is looked up
    in the Last.fm catalog first, so non-music the host labels as music is
    dropped before it can ever be scrobbled.

    A notification for the track that is already playing only refreshes the
    snapshot: the original start time is kept so the half-duration clock is
    not reset by repeated notifications.
    """

    def __init__(self, client: LastFMClient, sessions: SessionManager,
                 queue: ScrobbleQueue, strict: bool = True):
        self.client = client
        self.sessions = sessions
        self.queue = queue
        self.strict = strict
        self.lock = queue.lock
        self._current: TrackMetadata | None = None

    @property
    def current(self) -> TrackMetadata | None:
        with self.lock:
            return self._current

    def handle(self, raw: RawPlayback | None, now: datetime | None = None) -> bool:
        """Process one notification. Returns True when the current track changed."""
        now = now or utcnow()
        candidate = TrackMetadata.from_raw(raw, now) if raw is not None and raw.is_music() else None

        with self.lock:
            outgoing = self._current
            if candidate is not None and candidate.is_same_track(outgoing):
                self._refresh(outgoing, candidate)
                return False
            if candidate is None and outgoing is None:
                return False
            self._current = None

        if can_be_scrobbled(outgoing, now):
            self.queue.enqueue(outgoing)

        confirmed = self._confirm(candidate) if candidate is not None else None
        with self.lock:
            self._current = confirmed
        return True

    def check_current(self, now: datetime | None = None) -> bool:
        """Queue the confirmed track early once it qualifies (long tracks)."""
        track = self.current
        if can_be_scrobbled(track, now or utcnow()):
            return self.queue.enqueue(track)
        return False

    def _refresh(self, outgoing: TrackMetadata, candidate: TrackMetadata) -> None:
        candidate.playing_since = outgoing.playing_since
        candidate.queued = outgoing.queued
        # Keep a catalog-corrected duration; take the host's value when ours was unusable
        if MIN_TRACK_LENGTH < outgoing.duration < candidate.duration:
            candidate.duration = outgoing.duration
        self._current = candidate

    def _confirm(self, candidate: TrackMetadata) -> TrackMetadata | None:
        try:
            match = self.client.get_track_info(candidate.track_name, candidate.artist_name)
        except LastFMError as e:
            log.warning("Catalog lookup failed for %s: %s", candidate, e)
            return None

        if not validate_is_music(match, self.strict):
            log.warning("Got non-existent track %s", candidate)
            return None

        reported = candidate.duration
        if reconcile_duration(candidate, match):
            log.debug("Replacing reported duration %s with Last.fm duration %s",
                      reported, candidate.duration)

        log.info("Now playing: %s, duration %s", candidate, candidate.duration)
        self._announce(candidate)
        return candidate

    def _announce(self, track: TrackMetadata) -> None:
        session_key = self.sessions.session_key
        if not session_key:
            log.debug("No session yet; skipping now-playing update")
            return
        try:
            self.client.update_now_playing(track, session_key)
        except LastFMError as e:
            # NOW PLAYING failures aren't critical; log at DEBUG
            log.debug("update_now_playing failed: %s", e)
