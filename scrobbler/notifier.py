"""
Operator alerts over a webhook.

- POSTs {"level", "title", "message", "extra"} as JSON to NOTIFY_WEBHOOK_URL.
- Alerts below NOTIFY_MIN_LEVEL are dropped; no URL means alerts are off.
- Best-effort: a failed send is logged at debug and never raised.
"""

from __future__ import annotations

import logging

import requests

log = logging.getLogger("notifier")

DEFAULT_APP_TAG = "Now Playing→Last.fm"


def _level(name: str, default: int = logging.WARNING) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else default


class Notifier:
    def __init__(self, webhook_url: str | None, min_level: str = "WARNING",
                 app_tag: str = DEFAULT_APP_TAG, timeout: float = 5):
        self.webhook_url = webhook_url.strip() if webhook_url else None
        self.min_level = _level(min_level)
        self.app_tag = app_tag
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def send(self, level: str, title: str, message: str, extra: dict | None = None) -> None:
        if not self.webhook_url or _level(level) < self.min_level:
            return

        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            # Slack/Discord-compatible webhooks accept this too
            requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("Notification send failed: %s", e)
