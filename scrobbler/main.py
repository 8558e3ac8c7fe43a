import argparse
import logging
import signal

from scrobbler.auth import AuthenticationFailed, SessionManager
from scrobbler.bluos import BluOSClient, BluOSSource
from scrobbler.credentials import CredentialStore
from scrobbler.lastfm_client import LastFMClient, LastFMError
from scrobbler.notifier import Notifier
from scrobbler.scrobble_queue import ScrobbleQueue
from scrobbler.service import ScrobblingService
from scrobbler.settings import Settings, load_env_file
from scrobbler.state import NowPlayingTracker
from scrobbler.submission import ScrobbleSubmitter

log = logging.getLogger("now-playing-scrobbler")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="now-playing-scrobbler",
        description="Scrobble what a BluOS player is playing to Last.fm.")
    parser.add_argument("--env-file", default=".env",
                        help="read KEY=VALUE settings from this file first (default: .env)")
    parser.add_argument("--reauth", action="store_true",
                        help="forget the stored Last.fm session and authorize again")
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )
    # HTTP clients under requests and pylast log every request
    for noisy in ("urllib3", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_service(settings: Settings, notifier: Notifier) -> ScrobblingService:
    client = LastFMClient(settings.api_key, settings.api_secret)
    sessions = SessionManager(client, CredentialStore(settings.credentials_path))
    queue = ScrobbleQueue()
    tracker = NowPlayingTracker(client, sessions, queue,
                                strict=settings.strict_music_validation)
    submitter = ScrobbleSubmitter(client, sessions, queue, notifier=notifier)
    source = BluOSSource(BluOSClient(settings.bluos_host, settings.bluos_port))
    return ScrobblingService(source, sessions, tracker, submitter,
                             poll_interval=settings.poll_interval,
                             idle_flush_seconds=settings.idle_flush_seconds,
                             stop_event=sessions.stop_event)


def main(argv=None):
    args = parse_args(argv)
    load_env_file(args.env_file)
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    notifier = Notifier(settings.notify_webhook_url, settings.notify_min_level, settings.app_tag)
    service = build_service(settings, notifier)
    if args.reauth:
        service.sessions.forget_session()

    def _shutdown(signum, frame):
        # Only flip the event here; the loop notices within one poll interval
        log.info("Shutting down…")
        service.stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    log.info("Starting now-playing → Last.fm scrobbler. BluOS device: %s:%s | strict validation: %s",
             settings.bluos_host, settings.bluos_port, settings.strict_music_validation)
    notifier.send("INFO", "Scrobbler started",
                  f"Watching {settings.bluos_host}:{settings.bluos_port}.")

    try:
        service.run()
    except AuthenticationFailed as e:
        if service.stop_event.is_set():
            log.info("Stopped before authentication completed")
            return
        log.critical("Last.fm authentication failed: %s", e)
        notifier.send("ERROR", "Last.fm authentication failed", str(e))
        raise SystemExit(f"Last.fm authentication failed: {e}")
    except LastFMError as e:
        log.critical("Could not reach Last.fm during startup: %s", e)
        notifier.send("ERROR", "Last.fm unavailable", str(e))
        raise SystemExit(f"Could not reach Last.fm during startup: {e}")


if __name__ == "__main__":
    main()
