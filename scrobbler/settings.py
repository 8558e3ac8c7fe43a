"""Configuration from environment variables (optionally seeded from a .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Tuple

from scrobbler.notifier import DEFAULT_APP_TAG

_TRUE = ("1", "true", "yes", "on")


def _env_pair(line: str) -> Tuple[str, str] | None:
    """`KEY=value` or `export KEY=value`; None for blanks and comments."""
    line = line.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    if not line or line.startswith("#"):
        return None
    key, sep, value = line.partition("=")
    if not sep or not key.strip():
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return key.strip(), value


def load_env_file(env_path: str = ".env") -> Dict[str, str]:
    """Seed os.environ from a .env file and return what it set.

    A variable already present in the environment is left alone.
    """
    try:
        text = Path(env_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}

    applied: Dict[str, str] = {}
    for pair in filter(None, map(_env_pair, text.splitlines())):
        key, value = pair
        if key in os.environ:
            continue
        os.environ[key] = value
        applied[key] = value
    return applied


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE


@dataclass(frozen=True)
class Settings:
    api_key: str
    api_secret: str
    poll_interval_ms: int = 1000
    strict_music_validation: bool = True
    idle_flush_minutes: float = 15
    credentials_path: str | None = None
    bluos_host: str = "127.0.0.1"
    bluos_port: int = 11000
    log_level: str = "INFO"
    notify_webhook_url: str | None = None
    notify_min_level: str = "WARNING"
    app_tag: str = DEFAULT_APP_TAG

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def idle_flush_seconds(self) -> float:
        return self.idle_flush_minutes * 60

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        api_key = env.get("LASTFM_API_KEY")
        api_secret = env.get("LASTFM_API_SECRET")
        if not api_key or not api_secret:
            raise SystemExit("LASTFM_API_KEY and LASTFM_API_SECRET are required")

        return cls(
            api_key=api_key,
            api_secret=api_secret,
            poll_interval_ms=max(100, int(env.get("POLL_INTERVAL_MS", "1000"))),
            strict_music_validation=_flag(env.get("STRICT_MUSIC_VALIDATION"), True),
            idle_flush_minutes=float(env.get("SCROBBLE_IDLE_FLUSH_MINUTES", "15")),
            credentials_path=env.get("CREDENTIALS_PATH") or None,
            bluos_host=env.get("BLUOS_HOST", "127.0.0.1"),
            bluos_port=int(env.get("BLUOS_PORT", "11000")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            notify_webhook_url=env.get("NOTIFY_WEBHOOK_URL") or None,
            notify_min_level=env.get("NOTIFY_MIN_LEVEL", "WARNING"),
            app_tag=env.get("APP_TAG", DEFAULT_APP_TAG),
        )
