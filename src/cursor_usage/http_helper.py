from __future__ import annotations

"""Out-of-process HTTP helper.

Usage: ``python -m cursor_usage.http_helper '<config json>'``

The config is ``{url, method, headers, cookie, body?}``. The response is
printed to stdout as ``{status, statusText, headers, body}``; diagnostics go
to stderr. Exit status is non-zero when the config is unusable or every
attempt failed.
"""

import json
import logging
import sys
import time
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx

from .http_client import USER_AGENT

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
TIMEOUT_SECONDS = 30.0

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "User-Agent": USER_AGENT,
    "sec-ch-ua": '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Linux"',
}


class HelperConfigError(Exception):
    pass


def parse_config(raw: str) -> Dict[str, Any]:
    try:
        config = json.loads(raw)
    except ValueError as e:
        raise HelperConfigError(f"Error parsing config JSON: {e}") from e
    if not isinstance(config, dict) or not config.get("url"):
        raise HelperConfigError("config must be an object with a url")
    return config


def parse_cookie_pairs(cookie: str) -> Dict[str, str]:
    """``"a=b; c=d"`` -> ``{"a": "b", "c": "d"}``; malformed pairs are skipped."""
    pairs: Dict[str, str] = {}
    for part in cookie.split(";"):
        bits = part.split("=")
        if len(bits) != 2:
            continue
        name, value = bits[0].strip(), bits[1].strip()
        if name:
            pairs[name] = value
    return pairs


def build_request(client: httpx.Client, config: Dict[str, Any]) -> httpx.Request:
    headers = httpx.Headers(DEFAULT_HEADERS)
    for k, v in (config.get("headers") or {}).items():
        headers[k] = str(v)
    cookies = parse_cookie_pairs(config.get("cookie") or "")
    if cookies:
        logger.info("adding cookies: %s", ", ".join(cookies))
        headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
    return client.build_request(
        config.get("method") or "GET",
        config["url"],
        headers=headers,
        content=config.get("body"),
    )


def send_with_retries(
    client: httpx.Client,
    request: httpx.Request,
    attempts: int = MAX_ATTEMPTS,
    backoff: float = 1.0,
) -> httpx.Response:
    last_err: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return client.send(request)
        except httpx.HTTPError as e:
            last_err = e
            if attempt < attempts:
                logger.warning("attempt %d failed: %s, retrying...", attempt, e)
                time.sleep(backoff * attempt)
    raise httpx.TransportError(f"Error sending request after {attempts} attempts: {last_err}")


def envelope(resp: httpx.Response) -> Dict[str, Any]:
    headers: Dict[str, List[str]] = {}
    for k, v in resp.headers.multi_items():
        headers.setdefault(k, []).append(v)
    try:
        reason = HTTPStatus(resp.status_code).phrase
    except ValueError:
        reason = resp.reason_phrase
    return {
        "status": resp.status_code,
        "statusText": f"{resp.status_code} {reason}".strip(),
        "headers": headers,
        "body": resp.text,
    }


def main(argv: Optional[List[str]] = None, transport: httpx.BaseTransport | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(asctime)s %(message)s")
    if not args:
        logger.error("Usage: python -m cursor_usage.http_helper <config_json>")
        return 1
    try:
        config = parse_config(args[0])
    except HelperConfigError as e:
        logger.error("%s", e)
        return 1
    logger.info("got request: %s %s", config.get("method") or "GET", config["url"])
    with httpx.Client(timeout=TIMEOUT_SECONDS, transport=transport, follow_redirects=True) as client:
        try:
            resp = send_with_retries(client, build_request(client, config))
        except httpx.HTTPError as e:
            logger.error("%s", e)
            return 1
        sys.stdout.write(json.dumps(envelope(resp)))
        sys.stdout.flush()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
