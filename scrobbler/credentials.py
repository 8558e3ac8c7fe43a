"""
Per-user credential store.

- A small JSON object on disk (the Last.fm session key lives under "session_key").
- Written atomically (temp file + rename) so a crash never leaves half a file.
- Unreadable or corrupt files are treated as empty.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Dict

log = logging.getLogger("credentials")

APP_DIR_NAME = "now-playing-scrobbler"
SESSION_KEY = "session_key"


def default_config_dir() -> Path:
    """~/.config/<app> on Linux, %APPDATA%\\<app> on Windows, Application Support on macOS."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home()))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / APP_DIR_NAME


class CredentialStore:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else default_config_dir() / "credentials.json"
        self._lock = threading.Lock()

    # -------- persistence --------
    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable credential file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, self.path)

    # -------- public API --------
    def get(self, name: str) -> str | None:
        with self._lock:
            value = self._load().get(name)
        return value if isinstance(value, str) and value.strip() else None

    def set(self, name: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[name] = value
            self._save(data)

    def delete(self, name: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(name, None) is not None:
                self._save(data)
