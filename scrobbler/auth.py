"""
Last.fm desktop authentication.

Flow (https://www.last.fm/api/desktopauth):
  1. auth.getToken gives a request token, valid for an hour.
  2. The user grants access on last.fm for that token (opened in a browser).
  3. auth.getSession exchanges the authorized token for a session key, which
     never expires and is kept in the credential store.

Until the user has clicked "allow", auth.getSession answers with error 14, so
step 3 is retried with exponential back-off for a bounded number of attempts.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List

from scrobbler.credentials import SESSION_KEY, CredentialStore
from scrobbler.lastfm_client import LastFMClient, LastFMError, LastFMUnauthorizedTokenError
from scrobbler.state import utcnow

log = logging.getLogger("auth")

TOKEN_LIFETIME = timedelta(hours=1)
TOKEN_SAFETY_MARGIN = timedelta(minutes=5)


class AuthenticationFailed(Exception):
    """No session key could be obtained, even with the user in the loop."""


@dataclass(frozen=True)
class AuthenticationToken:
    token: str
    granted_at: datetime

    @property
    def valid_to(self) -> datetime:
        # Refresh five minutes before Last.fm would expire it
        return self.granted_at + TOKEN_LIFETIME - TOKEN_SAFETY_MARGIN

    def is_valid(self, now: datetime) -> bool:
        return now < self.valid_to


@dataclass(frozen=True)
class Session:
    key: str
    username: str | None = None


def is_unauthorized_token(error: Exception) -> bool:
    return isinstance(error, LastFMUnauthorizedTokenError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 15
    base_delay_ms: int = 5000
    max_delay_ms: int = 30000
    retryable: Callable[[Exception], bool] = is_unauthorized_token

    def delay_ms(self, attempt: int) -> int:
        """Back-off before 0-indexed `attempt`: min(base << attempt, max)."""
        return min(self.base_delay_ms << attempt, self.max_delay_ms)

    def delays(self) -> List[int]:
        return [self.delay_ms(i) for i in range(self.max_attempts)]


class SessionManager:
    """Owns the token and session key. Nothing else touches them."""

    def __init__(self, client: LastFMClient, store: CredentialStore,
                 policy: RetryPolicy | None = None,
                 authorizer: Callable[[str], object] = webbrowser.open,
                 stop_event: threading.Event | None = None,
                 clock: Callable[[], datetime] = utcnow):
        self.client = client
        self.store = store
        self.policy = policy or RetryPolicy()
        self.authorizer = authorizer
        self.stop_event = stop_event or threading.Event()
        self.clock = clock
        self._lock = threading.RLock()
        self._token: AuthenticationToken | None = None
        self._session: Session | None = None

    @property
    def session_key(self) -> str | None:
        with self._lock:
            return self._session.key if self._session else None

    def ensure_token(self) -> AuthenticationToken:
        with self._lock:
            now = self.clock()
            if self._token is not None and self._token.is_valid(now):
                return self._token
            log.debug("Requesting a new Last.fm token")
            self._token = AuthenticationToken(self.client.get_token(), now)
            return self._token

    def ensure_session(self) -> bool:
        """True once a session key is held. False if the user never authorized us.

        Errors other than "token not authorized" propagate unchanged.
        """
        with self._lock:
            if self._session is not None:
                return True

            stored = self.store.get(SESSION_KEY)
            if stored:
                log.info("Found stored Last.fm session key")
                self._session = Session(stored)
                return True

            token = self.ensure_token().token
            try:
                self._adopt(self.client.get_session(token))
                return True
            except LastFMError as e:
                if not self.policy.retryable(e):
                    raise

            self._request_authorization(token)
            return self._retry_session(token)

    def ensure_authenticated(self) -> None:
        """Raise AuthenticationFailed unless a session key is (or becomes) available.

        A token is only fetched when a session key has to be exchanged for one.
        """
        with self._lock:
            if self._session is not None:
                return
            got_session = self.ensure_session()
            log.info("Finished authentication workflow - authenticated: %s", got_session)
            if not got_session:
                raise AuthenticationFailed(
                    "Last.fm did not authorize this application after "
                    f"{self.policy.max_attempts} attempts")

    def forget_session(self) -> None:
        with self._lock:
            self._session = None
            self.store.delete(SESSION_KEY)
        log.info("Forgot stored Last.fm session key")

    def _adopt(self, result) -> None:
        key, username = result
        self.store.set(SESSION_KEY, key)
        self._session = Session(key, username)
        log.info("Authenticated with Last.fm%s", f" as {username}" if username else "")

    def _request_authorization(self, token: str) -> None:
        url = self.client.auth_url(token)
        log.warning("Grant access to your Last.fm account at %s", url)
        try:
            opened = self.authorizer(url)
        except webbrowser.Error as e:
            log.warning("Could not open a browser: %s", e)
            return
        if opened is False:
            log.warning("Could not open a browser; open the URL above manually")

    def _retry_session(self, token: str) -> bool:
        for attempt in range(self.policy.max_attempts):
            delay = self.policy.delay_ms(attempt)
            if self.stop_event.wait(delay / 1000):
                log.info("Shutdown requested while waiting for authorization")
                return False

            log.info("Retrying auth.getSession (%s/%s)", attempt + 1, self.policy.max_attempts)
            try:
                self._adopt(self.client.get_session(token))
                return True
            except LastFMError as e:
                if not self.policy.retryable(e):
                    raise
        return False
