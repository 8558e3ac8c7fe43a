import logging
import threading
import requests
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import timedelta

from scrobbler.sources import PlaybackCallback
from scrobbler.state import RawPlayback

log = logging.getLogger("bluos")

PLAYING_STATES = ("play", "stream")

@dataclass
class BluOSStatus:
    title: str | None
    artist: str | None
    album: str | None
    duration: int | None  # seconds
    secs: int | None      # elapsed seconds
    state: str | None     # 'play', 'pause', 'stop', 'stream'

    def to_playback(self) -> RawPlayback:
        # BluOS has no notion of playback type; trust it when it names a track and artist
        is_music = bool(self.title and self.artist)
        return RawPlayback(
            title=self.title,
            artist=self.artist,
            album=self.album,
            duration=timedelta(seconds=self.duration or 0),
            playback_type="music" if is_music else "unknown",
        )

class BluOSClient:
    """
    Minimal BluOS client that fetches and parses /Status (XML).
    Uses recursive lookup + tag fallbacks: name/title1, artist, album, secs, totlen, state.
    """
    def __init__(self, host: str, port: int = 11000, timeout: int = 5):
        self.base = f"http://{host}:{port}"
        self.timeout = timeout

    def _findtext_any(self, root: ET.Element, *tags: str):
        for t in tags:
            el = root.find(f".//{t}")
            if el is not None and el.text:
                return el.text.strip()
        return None

    def _to_int(self, s):
        if s is None: return None
        try:
            return int(float(s))
        except ValueError:
            return None

    def get_status(self) -> BluOSStatus | None:
        try:
            resp = requests.get(f"{self.base}/Status", timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            log.debug("BluOS status fetch failed: %s", e)
            return None

        try:
            root = ET.fromstring(resp.text)
        except ET.ParseError as e:
            log.debug("BluOS status XML parse failed: %s", e)
            return None

        # title appears as <name> and also as <title1>; fallbacks included
        title  = self._findtext_any(root, "name", "title1", "title", "song")
        artist = self._findtext_any(root, "artist", "title2")
        album  = self._findtext_any(root, "album", "title3")

        secs     = self._findtext_any(root, "secs", "elapsed", "position", "time")
        duration = self._findtext_any(root, "totlen", "duration", "total", "trackLength", "length")

        state = self._findtext_any(root, "state", "status", "mode")
        state = state.lower() if state else None

        return BluOSStatus(
            title=title,
            artist=artist,
            album=album,
            duration=self._to_int(duration),
            secs=self._to_int(secs),
            state=state,
        )

class BluOSSource:
    """Polls a BluOS player and reports metadata changes to one subscriber.

    Pauses are not reported; the track stays current until something else
    plays or the player stops.
    """
    def __init__(self, client: BluOSClient, interval: float = 3):
        self.client = client
        self.interval = interval
        self._callback: PlaybackCallback | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last: tuple | None = None
        self._playing = False

    def subscribe(self, callback: PlaybackCallback) -> None:
        self._callback = callback
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="bluos-source", daemon=True)
        self._thread.start()

    def unsubscribe(self) -> None:
        self._callback = None
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.client.timeout + 1)
            self._thread = None

    def is_playing(self) -> bool:
        return self._playing

    def poll_once(self) -> None:
        status = self.client.get_status()
        if status is None:
            return  # unreachable; keep the last known state
        if status.state == "pause":
            self._playing = False
            return

        self._playing = status.state in PLAYING_STATES
        playback = status.to_playback() if self._playing else None
        key = (status.title, status.artist, status.album) if playback else None
        if key == self._last:
            return
        self._last = key

        log.info("Parsed: state=%s artist=%s title=%s album=%s duration=%s",
                 status.state, status.artist, status.title, status.album, status.duration)
        callback = self._callback
        if callback is not None:
            callback(playback)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception as e:
                log.warning("BluOS poll failed: %s", e)
            self._stop.wait(self.interval)
