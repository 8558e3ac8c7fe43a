from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING

from scrobbler.auth import AuthenticationFailed
from scrobbler.lastfm_client import LastFMError

if TYPE_CHECKING:
    from scrobbler.auth import SessionManager
    from scrobbler.sources import MediaSource
    from scrobbler.state import NowPlayingTracker, RawPlayback
    from scrobbler.submission import ScrobbleSubmitter

log = logging.getLogger("service")

IDLE_FLUSH_SECONDS = 15 * 60

# Sentinels on the inbox: "no notification this tick" and "stop() was called"
_NOTHING = object()
_WAKE = object()


class ScrobblingService:
    """The poll loop.

    Notifications from the media source land in an inbox and are handled one
    at a time on the loop thread, so tracker transitions never overlap. Each
    tick also lets a long confirmed track qualify before it ends, and flushes
    the queue when nothing has been flushed for the idle window.
    """

    def __init__(self, source: MediaSource, sessions: SessionManager,
                 tracker: NowPlayingTracker, submitter: ScrobbleSubmitter,
                 poll_interval: float = 1.0, idle_flush_seconds: float = IDLE_FLUSH_SECONDS,
                 stop_event: threading.Event | None = None):
        self.source = source
        self.sessions = sessions
        self.tracker = tracker
        self.submitter = submitter
        self.poll_interval = poll_interval
        self.idle_flush_seconds = idle_flush_seconds
        self.stop_event = stop_event or threading.Event()
        self._inbox: queue.Queue = queue.Queue()

    def on_playback_changed(self, playback: RawPlayback | None) -> None:
        """Media source callback; may run on any thread."""
        self._inbox.put(playback)

    def stop(self) -> None:
        self.stop_event.set()
        self._inbox.put(_WAKE)

    def run(self) -> None:
        """Authenticate, subscribe and loop until stop(). Raises AuthenticationFailed."""
        self.sessions.ensure_authenticated()

        self.source.subscribe(self.on_playback_changed)
        log.info("Listening for playback changes. Poll interval: %ss", self.poll_interval)
        try:
            while not self.stop_event.is_set():
                self.tick()
        finally:
            log.info("Cleaning up resources..")
            self.source.unsubscribe()

    def tick(self) -> None:
        try:
            message = self._inbox.get(timeout=self.poll_interval)
        except queue.Empty:
            message = _NOTHING
        if message is _WAKE:
            return

        try:
            if message is not _NOTHING:
                self._handle(message)
            if self.source.is_playing():
                self.tracker.check_current()
            if self.submitter.idle_for() >= self.idle_flush_seconds:
                log.debug("Idle for %.0fs; flushing scrobble queue", self.submitter.idle_for())
                self.submitter.flush()
        except AuthenticationFailed:
            raise
        except LastFMError as e:
            log.warning("Last.fm call failed during poll: %s", e)
        except Exception:
            log.exception("Unexpected error during poll; continuing")

    def _handle(self, playback: RawPlayback | None) -> None:
        if self.tracker.handle(playback):
            self.submitter.flush()
