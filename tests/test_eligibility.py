import unittest
from datetime import datetime, timedelta, timezone

from scrobbler.eligibility import can_be_scrobbled, reconcile_duration, validate_is_music
from scrobbler.lastfm_client import CatalogTrack
from scrobbler.state import TrackMetadata

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _track(duration_s: float, elapsed_s: float) -> TrackMetadata:
    return TrackMetadata("Song", "Band", None, None, None,
                         timedelta(seconds=duration_s), NOW - timedelta(seconds=elapsed_s))


def _match(duration_ms=0, album=None, mbid=None) -> CatalogTrack:
    return CatalogTrack("Song", "Band", duration_ms, album, mbid)


class TimeRuleTests(unittest.TestCase):
    def test_half_duration_boundary(self) -> None:
        self.assertTrue(can_be_scrobbled(_track(60, 31), NOW))
        self.assertTrue(can_be_scrobbled(_track(60, 30), NOW))
        self.assertFalse(can_be_scrobbled(_track(60, 29), NOW))

    def test_four_minute_cap(self) -> None:
        self.assertFalse(can_be_scrobbled(_track(600, 239), NOW))
        self.assertTrue(can_be_scrobbled(_track(600, 241), NOW))

    def test_short_tracks_never_qualify(self) -> None:
        self.assertFalse(can_be_scrobbled(_track(30, 3600), NOW))
        self.assertFalse(can_be_scrobbled(_track(0, 3600), NOW))

    def test_no_track(self) -> None:
        self.assertFalse(can_be_scrobbled(None, NOW))


class ValidationTests(unittest.TestCase):
    def test_bare_match_rejected_only_in_strict_mode(self) -> None:
        bare = _match(duration_ms=0, album=None, mbid=None)

        self.assertFalse(validate_is_music(bare, strict=True))
        self.assertTrue(validate_is_music(bare, strict=False))

    def test_any_signal_is_enough_in_strict_mode(self) -> None:
        self.assertTrue(validate_is_music(_match(album="Selected Ambient Works"), strict=True))
        self.assertTrue(validate_is_music(_match(duration_ms=31000), strict=True))
        self.assertTrue(validate_is_music(_match(mbid="f22942a1"), strict=True))

    def test_thirty_second_catalog_duration_is_not_a_signal(self) -> None:
        self.assertFalse(validate_is_music(_match(duration_ms=30000), strict=True))

    def test_no_match_is_never_music(self) -> None:
        self.assertFalse(validate_is_music(None, strict=False))
        self.assertFalse(validate_is_music(None, strict=True))


class ReconcileDurationTests(unittest.TestCase):
    def test_shorter_catalog_duration_wins(self) -> None:
        track = _track(3600, 0)

        self.assertTrue(reconcile_duration(track, _match(duration_ms=215000)))
        self.assertEqual(track.duration, timedelta(seconds=215))

    def test_longer_catalog_duration_is_ignored(self) -> None:
        track = _track(200, 0)

        self.assertFalse(reconcile_duration(track, _match(duration_ms=215000)))
        self.assertEqual(track.duration, timedelta(seconds=200))

    def test_implausibly_short_catalog_duration_is_ignored(self) -> None:
        track = _track(200, 0)

        self.assertFalse(reconcile_duration(track, _match(duration_ms=20000)))
        self.assertFalse(reconcile_duration(track, _match(duration_ms=None)))
        self.assertEqual(track.duration, timedelta(seconds=200))


if __name__ == "__main__":
    unittest.main()
