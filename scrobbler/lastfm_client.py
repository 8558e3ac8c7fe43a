"""
Thin wrapper over pylast for the calls the scrobbler makes.

- Catalog lookups go through a network without a session key, so pylast
  sends them unsigned.
- Submissions go through a network bound to the caller's session key.
- pylast errors are mapped to our own classes by Last.fm error code.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Tuple, TypeVar
from urllib.parse import urlencode

import pylast

if TYPE_CHECKING:
    from scrobbler.state import TrackMetadata

log = logging.getLogger("lastfm")

AUTH_URL = "https://www.last.fm/api/auth/"

ERROR_NOT_FOUND = 6
ERROR_UNAUTHORIZED_TOKEN = 14
ERROR_RATE_LIMIT = 29

T = TypeVar("T")


# Custom error classes so callers can branch
class LastFMError(Exception): ...
class LastFMNetworkError(LastFMError): ...


class LastFMApiError(LastFMError):
    """An error reported by Last.fm itself, carrying its numeric code."""

    def __init__(self, code: int, message: str):
        super().__init__(f"Last.fm API error {code}: {message}")
        self.code = code
        self.message = message


class LastFMNotFoundError(LastFMApiError): ...
class LastFMUnauthorizedTokenError(LastFMApiError): ...
class LastFMRateLimitError(LastFMApiError): ...


_ERRORS_BY_CODE = {
    ERROR_NOT_FOUND: LastFMNotFoundError,
    ERROR_UNAUTHORIZED_TOKEN: LastFMUnauthorizedTokenError,
    ERROR_RATE_LIMIT: LastFMRateLimitError,
}


def api_error(code: int, message: str) -> LastFMApiError:
    return _ERRORS_BY_CODE.get(code, LastFMApiError)(code, message)


def sign(params: Dict[str, str], secret: str) -> str:
    """Last.fm's api_sig scheme, as pylast applies it. Key order does not matter."""
    payload = "".join(f"{key}{params[key]}" for key in sorted(params) if key != "api_sig")
    return hashlib.md5((payload + secret).encode("utf-8")).hexdigest()


def _to_int(s):
    if s is None: return None
    try:
        return int(float(s))
    except (TypeError, ValueError):
        return None


def _call(method: str, fn: Callable[..., T], *args, **kwargs) -> T:
    """Run one pylast call, translating its errors."""
    log.debug("Calling %s", method)
    try:
        return fn(*args, **kwargs)
    except pylast.WSError as e:
        raise api_error(_to_int(e.status) or 0, str(e.details).strip()) from e
    except pylast.PyLastError as e:
        # NetworkError, MalformedResponseError
        raise LastFMNetworkError(f"{method}: {e}") from e


@dataclass
class CatalogTrack:
    """The parts of a track.getInfo record we care about."""
    name: str
    artist: str
    duration_ms: int | None
    album_title: str | None
    artist_mbid: str | None


def scrobble_entry(track: TrackMetadata) -> Dict[str, object]:
    """One item for pylast's scrobble_many(); empty optionals are left out by pylast."""
    return {
        "artist": track.artist_name,
        "title": track.track_name,
        "timestamp": int(track.playing_since.timestamp()),
        "duration": int(track.duration.total_seconds()),
        "album": track.album_name,
        "album_artist": track.album_artist_name,
        "track_number": track.track_number,
    }


class LastFMClient:
    """Auth, catalog lookups, now-playing and batch scrobbles through pylast."""

    def __init__(self, api_key: str, api_secret: str):
        if not api_key or not api_secret:
            raise ValueError("Missing Last.fm API key or shared secret")
        self.api_key = api_key
        self.api_secret = api_secret
        self.network = pylast.LastFMNetwork(api_key=api_key, api_secret=api_secret)
        self.keys = pylast.SessionKeyGenerator(self.network)
        self._session_network: pylast.LastFMNetwork | None = None

    def _with_session(self, session_key: str) -> pylast.LastFMNetwork:
        net = self._session_network
        if net is None or net.session_key != session_key:
            net = pylast.LastFMNetwork(api_key=self.api_key, api_secret=self.api_secret,
                                       session_key=session_key)
            self._session_network = net
        return net

    def auth_url(self, token: str) -> str:
        """The page where the user grants this application access for `token`."""
        return f"{AUTH_URL}?{urlencode({'api_key': self.api_key, 'token': token})}"

    # -------- authentication --------
    def get_token(self) -> str:
        return _call("auth.getToken", self.keys.get_web_auth_token)

    def get_session(self, token: str) -> Tuple[str, str | None]:
        """Exchange an authorized token for (session_key, username).

        Raises LastFMUnauthorizedTokenError while the user has not granted access yet.
        """
        key, name = _call("auth.getSession",
                          self.keys.get_web_auth_session_key_username, "", token)
        return key, name or None

    # -------- catalog --------
    def get_track_info(self, track: str, artist: str) -> CatalogTrack | None:
        """Look a track up in the catalog. None when Last.fm does not know it."""
        found = self.network.get_track(artist, track)
        try:
            duration = _call("track.getInfo", found.get_duration)
            album = _call("track.getInfo", found.get_album)
            mbid = _call("artist.getInfo", found.get_artist().get_mbid)
        except LastFMNotFoundError:
            log.debug("track.getInfo: no match for %s - %s", artist, track)
            return None

        album_title = album.get_name() if album is not None else None
        return CatalogTrack(
            name=found.get_name() or track,
            artist=found.get_artist().get_name() or artist,
            duration_ms=_to_int(duration),
            album_title=album_title.strip() if album_title and album_title.strip() else None,
            artist_mbid=mbid.strip() if mbid and mbid.strip() else None,
        )

    # -------- submissions --------
    def update_now_playing(self, track: TrackMetadata, session_key: str) -> None:
        _call("track.updateNowPlaying", self._with_session(session_key).update_now_playing,
              artist=track.artist_name,
              title=track.track_name,
              album=track.album_name,
              album_artist=track.album_artist_name,
              duration=int(track.duration.total_seconds()),
              track_number=track.track_number)

    def scrobble(self, tracks: List[TrackMetadata], session_key: str) -> None:
        """Submit the batch as one track.scrobble call. Callers keep batches at 50 or fewer."""
        entries = [scrobble_entry(t) for t in tracks]
        _call("track.scrobble", self._with_session(session_key).scrobble_many, entries)
