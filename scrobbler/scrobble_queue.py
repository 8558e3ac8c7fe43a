"""
In-memory scrobble queue.

- FIFO of detected plays waiting to be submitted.
- A play is queued at most once: its `queued` flag is checked and set under the lock.
- Failed batches go back on the tail, so nothing is dropped on network errors.
- API is minimal: enqueue(), drain_batch(), requeue(), size().
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING, Deque, Iterable, List

if TYPE_CHECKING:
    from scrobbler.state import TrackMetadata

log = logging.getLogger("queue")

BATCH_SIZE = 50  # track.scrobble accepts at most 50 plays per call


class ScrobbleQueue:
    def __init__(self):
        # Also guards the tracker's confirmed track, see NowPlayingTracker
        self.lock = threading.RLock()
        self._q: Deque[TrackMetadata] = deque()

    def enqueue(self, track: TrackMetadata) -> bool:
        with self.lock:
            if track.queued:
                return False
            track.queued = True
            self._q.append(track)
            size = len(self._q)
        log.info("Added track to scrobbling queue: %s (queue=%s)", track, size)
        return True

    def drain_batch(self, max_size: int = BATCH_SIZE) -> List[TrackMetadata]:
        """Pop up to max_size items from the head, oldest first."""
        with self.lock:
            batch = []
            while self._q and len(batch) < max_size:
                batch.append(self._q.popleft())
            return batch

    def requeue(self, batch: Iterable[TrackMetadata]) -> None:
        # Flags stay set; these are the same plays going back in line
        with self.lock:
            self._q.extend(batch)

    def size(self) -> int:
        with self.lock:
            return len(self._q)

    def __len__(self) -> int:
        return self.size()
