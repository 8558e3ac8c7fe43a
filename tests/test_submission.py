import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from scrobbler.auth import AuthenticationFailed
from scrobbler.lastfm_client import LastFMApiError, LastFMNetworkError, LastFMRateLimitError
from scrobbler.scrobble_queue import ScrobbleQueue
from scrobbler.state import TrackMetadata
from scrobbler.submission import ScrobbleSubmitter

STARTED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _track(i: int = 0) -> TrackMetadata:
    return TrackMetadata(f"Track {i}", "Band", None, None, None, timedelta(minutes=3), STARTED)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _submitter(queue: ScrobbleQueue, client: MagicMock | None = None, **kwargs):
    sessions = MagicMock()
    sessions.session_key = "sk"
    client = client or MagicMock()
    return ScrobbleSubmitter(client, sessions, queue, **kwargs), client, sessions


class FlushTests(unittest.TestCase):
    def test_empty_queue_makes_no_remote_call(self) -> None:
        submitter, client, sessions = _submitter(ScrobbleQueue())

        self.assertTrue(submitter.flush())

        sessions.ensure_authenticated.assert_called_once()
        client.scrobble.assert_not_called()

    def test_successful_flush_submits_one_batch(self) -> None:
        queue = ScrobbleQueue()
        tracks = [_track(i) for i in range(3)]
        for track in tracks:
            queue.enqueue(track)
        submitter, client, _ = _submitter(queue)

        self.assertTrue(submitter.flush())

        client.scrobble.assert_called_once_with(tracks, "sk")
        self.assertEqual(queue.size(), 0)

    def test_flush_is_capped_at_batch_size(self) -> None:
        queue = ScrobbleQueue()
        for i in range(60):
            queue.enqueue(_track(i))
        submitter, client, _ = _submitter(queue)

        submitter.flush()

        self.assertEqual(len(client.scrobble.call_args.args[0]), 50)
        self.assertEqual(queue.size(), 10)

    def test_failed_batch_is_requeued_after_new_arrivals(self) -> None:
        queue = ScrobbleQueue()
        batch = [_track(i) for i in range(3)]
        for track in batch:
            queue.enqueue(track)
        arrival = _track(99)

        def fail(tracks, session_key):
            queue.enqueue(arrival)  # a notification lands mid-submission
            raise LastFMNetworkError("timed out")

        client = MagicMock()
        client.scrobble.side_effect = fail
        submitter, _, _ = _submitter(queue, client)

        self.assertFalse(submitter.flush())

        self.assertEqual(queue.drain_batch(), [arrival] + batch)

    def test_rate_limited_batch_is_requeued(self) -> None:
        queue = ScrobbleQueue()
        queue.enqueue(_track())
        submitter, client, _ = _submitter(queue)
        client.scrobble.side_effect = LastFMRateLimitError(29, "Rate limit exceeded")

        self.assertFalse(submitter.flush())
        self.assertEqual(queue.size(), 1)

    def test_unexpected_error_requeues_batch_and_propagates(self) -> None:
        queue = ScrobbleQueue()
        batch = [_track(i) for i in range(3)]
        for track in batch:
            queue.enqueue(track)
        submitter, client, _ = _submitter(queue)
        client.scrobble.side_effect = UnicodeEncodeError("ascii", "\u00e9", 0, 1, "bad")

        with self.assertRaises(UnicodeEncodeError):
            submitter.flush()

        self.assertEqual(queue.drain_batch(), batch)

    def test_api_error_alerts_operator(self) -> None:
        queue = ScrobbleQueue()
        queue.enqueue(_track())
        notifier = MagicMock()
        submitter, client, _ = _submitter(queue, notifier=notifier)
        client.scrobble.side_effect = LastFMApiError(16, "Service temporarily unavailable")

        submitter.flush()

        notifier.send.assert_called_once()
        self.assertEqual(notifier.send.call_args.args[0], "WARNING")

    def test_authentication_failure_leaves_queue_untouched(self) -> None:
        queue = ScrobbleQueue()
        queue.enqueue(_track())
        submitter, client, sessions = _submitter(queue)
        sessions.ensure_authenticated.side_effect = AuthenticationFailed("no session")

        with self.assertRaises(AuthenticationFailed):
            submitter.flush()

        client.scrobble.assert_not_called()
        self.assertEqual(queue.size(), 1)


class IdleClockTests(unittest.TestCase):
    def test_idle_time_resets_on_flush(self) -> None:
        clock = FakeClock()
        submitter, _, _ = _submitter(ScrobbleQueue(), clock=clock)

        clock.now += 900
        self.assertEqual(submitter.idle_for(), 900)

        submitter.flush()
        self.assertEqual(submitter.idle_for(), 0)


if __name__ == "__main__":
    unittest.main()
