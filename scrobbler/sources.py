from __future__ import annotations

from typing import Callable, Optional, Protocol

from scrobbler.state import RawPlayback

# Called with the new playback snapshot, or None when nothing is playing
PlaybackCallback = Callable[[Optional[RawPlayback]], None]


class MediaSource(Protocol):
    """Something that reports "now playing" changes of a host or player."""

    def subscribe(self, callback: PlaybackCallback) -> None:
        ...

    def unsubscribe(self) -> None:
        ...

    def is_playing(self) -> bool:
        ...
