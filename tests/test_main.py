import unittest
from unittest.mock import MagicMock, patch

from scrobbler.auth import AuthenticationFailed
from scrobbler.lastfm_client import LastFMApiError, LastFMNetworkError
from scrobbler.main import main
from scrobbler.settings import Settings

SETTINGS = Settings(api_key="key", api_secret="secret")


@patch("scrobbler.main.signal.signal")
@patch("scrobbler.main.setup_logging")
@patch("scrobbler.main.load_env_file")
@patch("scrobbler.main.Settings.from_env", return_value=SETTINGS)
@patch("scrobbler.main.Notifier")
@patch("scrobbler.main.build_service")
class MainTests(unittest.TestCase):
    def _service(self, build_service: MagicMock, error: Exception) -> MagicMock:
        service = MagicMock()
        service.run.side_effect = error
        service.stop_event.is_set.return_value = False
        build_service.return_value = service
        return service

    def test_unreachable_lastfm_at_startup_exits_with_alert(self, build_service, notifier_cls, *_):
        self._service(build_service, LastFMNetworkError("auth.getToken: connection refused"))

        with self.assertRaises(SystemExit) as ctx:
            main([])

        self.assertIn("connection refused", str(ctx.exception.code))
        level = notifier_cls.return_value.send.call_args.args[0]
        self.assertEqual(level, "ERROR")

    def test_api_error_at_startup_exits(self, build_service, *_):
        self._service(build_service, LastFMApiError(10, "Invalid API key"))

        with self.assertRaises(SystemExit):
            main([])

    def test_exhausted_authorization_exits(self, build_service, *_):
        self._service(build_service, AuthenticationFailed("gave up"))

        with self.assertRaises(SystemExit):
            main([])

    def test_shutdown_during_authorization_returns_quietly(self, build_service, *_):
        service = self._service(build_service, AuthenticationFailed("stopped"))
        service.stop_event.is_set.return_value = True

        self.assertIsNone(main([]))

    def test_reauth_forgets_stored_session(self, build_service, *_):
        service = self._service(build_service, None)

        main(["--reauth"])

        service.sessions.forget_session.assert_called_once()


if __name__ == "__main__":
    unittest.main()
