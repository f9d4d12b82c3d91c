import asyncio
import json
import sys

import httpx
import pytest

from cursor_usage.http_client import (
    HelperProcessError,
    HelperRequestClient,
    RequestError,
    SessionRequestClient,
    merge_headers,
    parse_envelope,
)


def test_merge_headers_caller_wins_case_insensitive():
    merged = merge_headers({"Referer": "https://cursor.com/analytics", "content-type": "application/json"})
    assert merged["referer"] == "https://cursor.com/analytics"
    assert merged["content-type"] == "application/json"
    assert merged["sec-fetch-mode"] == "cors"
    assert "Referer" not in merged


def test_session_client_sends_baseline_headers_and_cookie():
    seen = {}

    def handler(request: httpx.Request):
        seen["headers"] = request.headers
        seen["method"] = request.method
        seen["body"] = request.content
        return httpx.Response(200, json={"ok": True}, headers={"x-test": "1"})

    async def main():
        client = SessionRequestClient(transport=httpx.MockTransport(handler))
        try:
            return await client.request(
                "https://cursor.com/api/dashboard/teams",
                "POST",
                {"origin": "https://cursor.com"},
                cookie="WorkosCursorSessionToken=abc",
                body="{}",
            )
        finally:
            await client.aclose()

    resp = asyncio.run(main())
    assert resp.status == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["x-test"] == "1"
    assert seen["method"] == "POST"
    assert seen["body"] == b"{}"
    assert seen["headers"]["cookie"] == "WorkosCursorSessionToken=abc"
    assert seen["headers"]["origin"] == "https://cursor.com"
    assert seen["headers"]["dnt"] == "1"
    assert "Chrome" in seen["headers"]["user-agent"]


def test_session_client_wraps_transport_errors():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("boom", request=request)

    async def main():
        client = SessionRequestClient(transport=httpx.MockTransport(handler))
        await client.request("https://www.cursor.com/api/usage?user=u")

    with pytest.raises(RequestError):
        asyncio.run(main())


def _helper(script: str) -> HelperRequestClient:
    return HelperRequestClient([sys.executable, "-c", script], timeout=30)


ECHO_SCRIPT = """
import json, sys
config = json.loads(sys.argv[1])
sys.stderr.write("diagnostic chatter\\n")
print(json.dumps({"status": 201, "body": json.dumps(config), "headers": {"a": ["b"]}}))
"""


def test_helper_client_passes_request_description():
    async def main():
        return await _helper(ECHO_SCRIPT).request(
            "https://www.cursor.com/api/usage?user=u",
            "GET",
            {"x-extra": "1"},
            cookie="c=1",
        )

    resp = asyncio.run(main())
    assert resp.status == 201
    config = json.loads(resp.body)
    assert config["url"] == "https://www.cursor.com/api/usage?user=u"
    assert config["method"] == "GET"
    assert config["cookie"] == "c=1"
    assert config["headers"]["x-extra"] == "1"
    assert config["headers"]["accept"] == "*/*"
    assert "body" not in config
    assert resp.headers == {"a": ["b"]}


def test_helper_client_includes_body_when_given():
    async def main():
        return await _helper(ECHO_SCRIPT).request("https://x", "POST", {}, "", body='{"teamId": 1}')

    config = json.loads(asyncio.run(main()).body)
    assert config["body"] == '{"teamId": 1}'


def test_helper_nonzero_exit_is_helper_error():
    script = "import sys; sys.stderr.write('tls handshake failed'); sys.exit(3)"

    with pytest.raises(HelperProcessError) as exc:
        asyncio.run(_helper(script).request("https://x"))
    assert "tls handshake failed" in exc.value.stderr
    assert isinstance(exc.value, RequestError)


def test_helper_malformed_output_is_helper_error():
    with pytest.raises(HelperProcessError):
        asyncio.run(_helper("print('not json')").request("https://x"))


def test_helper_missing_binary_is_helper_error(tmp_path):
    client = HelperRequestClient([str(tmp_path / "missing-helper")])
    with pytest.raises(HelperProcessError):
        asyncio.run(client.request("https://x"))


def test_parse_envelope_requires_status():
    with pytest.raises(HelperProcessError):
        parse_envelope(json.dumps({"body": "x"}))
    resp = parse_envelope(json.dumps({"status": 204}))
    assert resp.status == 204 and resp.body == "" and resp.headers == {}


def test_cancelled_request_kills_helper(monkeypatch):
    spawned = []
    real_exec = asyncio.create_subprocess_exec

    async def recording_exec(*args, **kwargs):
        proc = await real_exec(*args, **kwargs)
        spawned.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", recording_exec)

    async def main():
        task = asyncio.create_task(_helper("import time; time.sleep(60)").request("https://x"))
        for _ in range(500):
            if spawned:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return await asyncio.wait_for(spawned[0].wait(), timeout=5)

    assert asyncio.run(main()) != 0
