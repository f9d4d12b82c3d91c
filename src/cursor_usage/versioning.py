from __future__ import annotations

"""Version comparison and remote version extraction.

Remote version sources have shipped more than one body shape over time, so
extraction is an ordered chain of small parsers. Each returns a version
string or ``None``; the first hit wins.
"""

import json
import logging
import re
from typing import Callable, Optional, Sequence

from packaging import version as _v

_log = logging.getLogger(__name__)

VersionParser = Callable[[str], Optional[str]]

_DOWNLOAD_URL_RE = re.compile(r"Cursor-([0-9]+\.[0-9]+\.[0-9]+)")
_MANIFEST_RE = re.compile(r"^\s*version\s*:\s*['\"]?([0-9]+(?:\.[0-9]+)*)['\"]?\s*$", re.MULTILINE)


def _release(value: str) -> tuple[int, ...]:
    try:
        parsed = _v.Version(value.strip())
    except _v.InvalidVersion as e:
        raise ValueError(f"not a dotted numeric version: {value!r}") from e
    return parsed.release


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1; missing trailing components count as zero."""
    ra, rb = _release(a), _release(b)
    width = max(len(ra), len(rb))
    ra += (0,) * (width - len(ra))
    rb += (0,) * (width - len(rb))
    for x, y in zip(ra, rb):
        if x != y:
            return 1 if x > y else -1
    return 0


def _load_json_object(text: str) -> Optional[dict]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_json_version(text: str) -> Optional[str]:
    data = _load_json_object(text)
    if not data or not data.get("version"):
        return None
    return str(data["version"]).strip()


def parse_download_url_version(text: str) -> Optional[str]:
    data = _load_json_object(text)
    url = data.get("downloadUrl") if data else None
    if not isinstance(url, str):
        return None
    match = _DOWNLOAD_URL_RE.search(url)
    return match.group(1) if match else None


def parse_manifest_version(text: str) -> Optional[str]:
    match = _MANIFEST_RE.search(text)
    return match.group(1) if match else None


DEFAULT_PARSERS: tuple[VersionParser, ...] = (
    parse_json_version,
    parse_download_url_version,
    parse_manifest_version,
)


def extract_version(text: str, parsers: Sequence[VersionParser] = DEFAULT_PARSERS) -> Optional[str]:
    for parser in parsers:
        found = parser(text)
        if found:
            _log.debug("version %s found by %s", found, parser.__name__)
            return found
    return None


__all__ = [
    "compare_versions",
    "extract_version",
    "parse_json_version",
    "parse_download_url_version",
    "parse_manifest_version",
    "DEFAULT_PARSERS",
]
