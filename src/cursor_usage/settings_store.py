from __future__ import annotations

"""Typed key/value settings with change subscriptions.

Values live in the SQLite ``settings`` table as text. Keys listed in
``SECRET_KEYS`` are routed to a ``SecretStore`` when one is configured.
Handlers run synchronously on the writing thread after every write of
their key, whether or not the value changed.
"""

import itertools
import logging
import threading
from typing import Callable, Dict, Tuple

from .database_manager import DatabaseManager
from .keys import SecretStore

_log = logging.getLogger(__name__)

COOKIE = "cookie"
USER_ID = "user-id"
MONTHLY_QUOTA = "monthly-quota"
UPDATE_INTERVAL = "update-interval"
CHECK_UPDATE = "check-update"
DEBUG_MODE = "debug-mode"
TRIGGER_CHECK_UPDATE = "trigger-check-update"
USER = "user"
HTTP_CLIENT = "http-client"
HELPER_COMMAND = "helper-command"
UPDATE_URL_TEMPLATE = "update-url-template"

DEFAULT_MONTHLY_QUOTA = 500
DEFAULT_UPDATE_INTERVAL = 30  # seconds
DEFAULT_UPDATE_URL_TEMPLATE = (
    "https://api2.cursor.sh/updates/api/update/"
    "{platform}/cursor/{local_version}/{machine_hash}/prerelease"
)

DEFAULTS: Dict[str, str] = {
    COOKIE: "",
    USER_ID: "",
    MONTHLY_QUOTA: str(DEFAULT_MONTHLY_QUOTA),
    UPDATE_INTERVAL: str(DEFAULT_UPDATE_INTERVAL),
    CHECK_UPDATE: "1",
    DEBUG_MODE: "0",
    TRIGGER_CHECK_UPDATE: "0",
    USER: "",
    HTTP_CLIENT: "helper",
    HELPER_COMMAND: "",
    UPDATE_URL_TEMPLATE: DEFAULT_UPDATE_URL_TEMPLATE,
}

SECRET_KEYS = frozenset({COOKIE})

SettingHandler = Callable[[str], None]


class SettingsStore:
    def __init__(self, db: DatabaseManager, secrets: SecretStore | None = None):
        self._db = db
        self._secrets = secrets
        self._handlers: Dict[int, Tuple[str, SettingHandler]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # --- Raw access -----------------------------------------------------
    def get(self, key: str) -> str:
        if key in SECRET_KEYS and self._secrets is not None:
            v = self._secrets.load(key)
            return v if v is not None else DEFAULTS.get(key, "")
        row = self._db.query_one("SELECT value FROM settings WHERE key=?", (key,))
        if row is None:
            return DEFAULTS.get(key, "")
        return row["value"]

    def set(self, key: str, value: str) -> None:
        if key in SECRET_KEYS and self._secrets is not None:
            self._secrets.save(key, value)
        else:
            self._db.execute(
                "INSERT INTO settings(key, value) VALUES(?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
                "updated_at=strftime('%Y-%m-%dT%H:%M:%fZ','now')",
                (key, value),
            )
        self._notify(key)

    # --- Typed access ---------------------------------------------------
    def get_string(self, key: str) -> str:
        return self.get(key)

    def set_string(self, key: str, value: str) -> None:
        self.set(key, value)

    def get_int(self, key: str) -> int:
        raw = self.get(key)
        try:
            return int(raw)
        except (TypeError, ValueError):
            _log.warning("setting %s is not an integer: %r", key, raw)
            return int(DEFAULTS.get(key, "0") or 0)

    def set_int(self, key: str, value: int) -> None:
        self.set(key, str(int(value)))

    def get_boolean(self, key: str) -> bool:
        return self.get(key) == "1"

    def set_boolean(self, key: str, value: bool) -> None:
        self.set(key, "1" if value else "0")

    # --- Subscriptions --------------------------------------------------
    def subscribe(self, key: str, handler: SettingHandler) -> int:
        with self._lock:
            token = next(self._ids)
            self._handlers[token] = (key, handler)
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            if self._handlers.pop(token, None) is None:
                raise KeyError(f"unknown subscription token {token}")

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._handlers)

    def _notify(self, key: str) -> None:
        with self._lock:
            handlers = [h for k, h in self._handlers.values() if k == key]
        for handler in handlers:
            handler(key)


__all__ = [
    "SettingsStore",
    "DEFAULTS",
    "SECRET_KEYS",
    "COOKIE",
    "USER_ID",
    "MONTHLY_QUOTA",
    "UPDATE_INTERVAL",
    "CHECK_UPDATE",
    "DEBUG_MODE",
    "TRIGGER_CHECK_UPDATE",
    "USER",
    "HTTP_CLIENT",
    "HELPER_COMMAND",
    "UPDATE_URL_TEMPLATE",
    "DEFAULT_MONTHLY_QUOTA",
    "DEFAULT_UPDATE_INTERVAL",
    "DEFAULT_UPDATE_URL_TEMPLATE",
]
