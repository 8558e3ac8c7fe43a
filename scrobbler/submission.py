from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from scrobbler.lastfm_client import LastFMError, LastFMRateLimitError
from scrobbler.scrobble_queue import BATCH_SIZE

if TYPE_CHECKING:
    from scrobbler.auth import SessionManager
    from scrobbler.lastfm_client import LastFMClient
    from scrobbler.notifier import Notifier
    from scrobbler.scrobble_queue import ScrobbleQueue

log = logging.getLogger("submission")


class ScrobbleSubmitter:
    """Drains the queue into track.scrobble calls.

    Last.fm gives no per-item result for a batch, so a failed call puts the
    whole batch back on the queue. Delivery is at-least-once: if the server
    accepted part of a batch before failing, those plays are sent again.
    """

    def __init__(self, client: LastFMClient, sessions: SessionManager, queue: ScrobbleQueue,
                 notifier: Notifier | None = None, batch_size: int = BATCH_SIZE,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.sessions = sessions
        self.queue = queue
        self.notifier = notifier
        self.batch_size = batch_size
        self.clock = clock
        self.last_flush = clock()

    def idle_for(self) -> float:
        """Seconds since the last flush attempt."""
        return self.clock() - self.last_flush

    def flush(self) -> bool:
        """Submit one batch. Returns False when the batch had to be requeued.

        Authentication errors propagate before anything is dequeued. Errors from
        outside the Last.fm client put the batch back and then propagate.
        """
        self.sessions.ensure_authenticated()
        self.last_flush = self.clock()

        batch = self.queue.drain_batch(self.batch_size)
        if not batch:
            return True

        log.debug("Submitting %s scrobbles", len(batch))
        try:
            self.client.scrobble(batch, self.sessions.session_key)
        except LastFMRateLimitError as e:
            self.queue.requeue(batch)
            log.info("Rate limited; requeued %s scrobbles. queue=%s err=%s",
                     len(batch), self.queue.size(), e)
            return False
        except LastFMError as e:
            self.queue.requeue(batch)
            log.warning("Scrobble batch failed; requeued %s scrobbles. queue=%s err=%s",
                        len(batch), self.queue.size(), e)
            if self.notifier is not None:
                self.notifier.send("WARNING", "Last.fm scrobble error", str(e),
                                   {"batch_size": len(batch), "queue_size": self.queue.size()})
            return False
        except Exception:
            self.queue.requeue(batch)
            raise

        log.info("Scrobbled %s tracks. Queue size now %s", len(batch), self.queue.size())
        return True
