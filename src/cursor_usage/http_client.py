from __future__ import annotations

"""HTTP request clients for the Cursor dashboard.

Two interchangeable strategies sit behind ``RequestClient.request``:

 - ``SessionRequestClient`` talks to the API directly through ``httpx.AsyncClient``.
 - ``HelperRequestClient`` hands the whole request to a helper process and
   reads back a JSON envelope ``{status, body, headers}``. The helper exists
   because the dashboard sits behind a bot-detection checkpoint that rejects
   plain HTTP stacks.

Both merge the baseline browser headers with caller headers (caller wins,
keys compared case-insensitively) and never block the event loop.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

import httpx

from .keys import redact

_log = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)

BASE_HEADERS: Dict[str, str] = {
    "accept": "*/*",
    "accept-language": "en-US,en;q=0.9",
    "dnt": "1",
    "priority": "u=1, i",
    "referer": "https://www.cursor.com/settings",
    "sec-ch-ua": '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Linux"',
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-origin",
}

HELPER_TIMEOUT = 60.0


class RequestError(Exception):
    pass


class HelperProcessError(RequestError):
    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


@dataclass(slots=True)
class HttpResponse:
    status: int
    body: str
    headers: Dict[str, Any] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.body)


class RequestClient(Protocol):
    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        cookie: str = "",
        body: Optional[str] = None,
    ) -> HttpResponse: ...

    async def aclose(self) -> None: ...


def merge_headers(custom: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    merged = dict(BASE_HEADERS)
    for k, v in (custom or {}).items():
        merged[k.lower()] = v
    return merged


class SessionRequestClient:
    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"user-agent": USER_AGENT},
        )

    async def aclose(self) -> None:  # pragma: no cover simple
        await self._client.aclose()

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        cookie: str = "",
        body: Optional[str] = None,
    ) -> HttpResponse:
        merged = merge_headers(headers)
        if cookie:
            merged["cookie"] = cookie
        _log.debug("%s %s (session)", method, url)
        try:
            resp = await self._client.request(method, url, headers=merged, content=body)
        except httpx.HTTPError as e:
            raise RequestError(f"{method} {url} failed: {e}") from e
        return HttpResponse(status=resp.status_code, body=resp.text, headers=dict(resp.headers))


class HelperRequestClient:
    """Delegates each request to ``command + [<request json>]``."""

    def __init__(self, command: Sequence[str], timeout: float = HELPER_TIMEOUT):
        if not command:
            raise ValueError("helper command must not be empty")
        self._command = list(command)
        self._timeout = timeout

    async def aclose(self) -> None:
        return None

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        cookie: str = "",
        body: Optional[str] = None,
    ) -> HttpResponse:
        config: Dict[str, Any] = {
            "url": url,
            "method": method,
            "headers": merge_headers(headers),
            "cookie": cookie,
        }
        if body is not None:
            config["body"] = body
        _log.debug("%s %s via helper (cookie %s)", method, url, redact(cookie))
        argv = [*self._command, json.dumps(config)]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise HelperProcessError(f"cannot start helper {self._command[0]}: {e}") from e
        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise HelperProcessError(f"helper timed out after {self._timeout}s") from e
        except asyncio.CancelledError:
            _log.debug("cycle cancelled; killing helper pid %s", proc.pid)
            if proc.returncode is None:
                proc.kill()
            raise

        stderr = err.decode("utf-8", errors="replace")
        if stderr.strip():
            _log.debug("helper diagnostics: %s", stderr.strip())
        if proc.returncode != 0:
            _log.warning("helper exited with %s: %s", proc.returncode, stderr.strip())
            raise HelperProcessError(f"helper exited with status {proc.returncode}", stderr)
        return parse_envelope(out.decode("utf-8", errors="replace"), stderr)


def parse_envelope(text: str, stderr: str = "") -> HttpResponse:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise HelperProcessError(f"helper printed malformed JSON: {text[:200]!r}", stderr) from e
    if not isinstance(data, dict) or not isinstance(data.get("status"), int):
        raise HelperProcessError(f"helper envelope missing status: {text[:200]!r}", stderr)
    body = data.get("body")
    headers = data.get("headers")
    return HttpResponse(
        status=data["status"],
        body=body if isinstance(body, str) else "",
        headers=headers if isinstance(headers, dict) else {},
    )


__all__ = [
    "RequestClient",
    "RequestError",
    "HelperProcessError",
    "HttpResponse",
    "SessionRequestClient",
    "HelperRequestClient",
    "BASE_HEADERS",
    "USER_AGENT",
    "merge_headers",
    "parse_envelope",
]
