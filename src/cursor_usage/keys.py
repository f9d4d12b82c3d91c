from __future__ import annotations

"""Session cookie storage & retrieval.

Strategy:
 - Try OS keyring via 'keyring' package.
 - Fallback to simple XOR-obfuscated file (NOT strong encryption, but keeps the cookie out of plain text).
 - Redaction helper for logs.
"""

import base64
import logging
from pathlib import Path
from typing import Optional, Protocol

try:  # pragma: no cover - environment dependent
    import keyring  # type: ignore
except Exception:  # pragma: no cover
    keyring = None  # type: ignore

SERVICE_NAME = "cursor_usage_indicator"
FALLBACK_SUFFIX = ".secret"
_XOR_KEY = b"cursor-usage-xor"
_log = logging.getLogger(__name__)


class SecretStore(Protocol):
    def save(self, name: str, value: str) -> None: ...

    def load(self, name: str) -> Optional[str]: ...


class KeyringSecretStore:
    """Keeps secrets in the OS keyring, or an obfuscated file under ``base_dir``."""

    def __init__(self, base_dir: Path, use_keyring: bool = True):
        self._base_dir = base_dir
        self._use_keyring = use_keyring and keyring is not None

    def _fallback_path(self, name: str) -> Path:
        return self._base_dir / f"{name}{FALLBACK_SUFFIX}"

    def save(self, name: str, value: str) -> None:
        if self._use_keyring:
            try:
                keyring.set_password(SERVICE_NAME, name, value)
                _log.info("secret stored in keyring", extra={"_json_secret": name})
                return
            except Exception:
                _log.warning("keyring storage failed; falling back to file")
        path = self._fallback_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_xor_obfuscate(value.encode("utf-8")))
        _log.info("secret stored in fallback file", extra={"_json_location": "fallback"})

    def load(self, name: str) -> Optional[str]:
        if self._use_keyring:
            try:
                v = keyring.get_password(SERVICE_NAME, name)
                if v:
                    return v
            except Exception:
                _log.debug("keyring lookup failed for %s", name)
        path = self._fallback_path(name)
        if path.exists():
            try:
                return _xor_deobfuscate(path.read_bytes()).decode("utf-8")
            except Exception:
                _log.warning("fallback secret file unreadable: %s", path)
                return None
        return None


def redact(value: str | None) -> str:
    if not value:
        return "<none>"
    if len(value) <= 6:
        return "***"
    return value[:3] + "***" + value[-3:]


def _xor_obfuscate(data: bytes) -> bytes:
    return base64.b64encode(bytes([b ^ _XOR_KEY[i % len(_XOR_KEY)] for i, b in enumerate(data)]))


def _xor_deobfuscate(data: bytes) -> bytes:
    raw = base64.b64decode(data)
    return bytes([b ^ _XOR_KEY[i % len(_XOR_KEY)] for i, b in enumerate(raw)])


__all__ = ["SecretStore", "KeyringSecretStore", "redact"]
