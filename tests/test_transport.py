"""Tests for the JSON POST helper shared by both services."""

import io
import json
from urllib import error

import pytest

from npcmind import transport
from npcmind.errors import TransportError


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


def install_urlopen(monkeypatch, handler):
    seen = []

    def fake_urlopen(req, timeout=None):
        seen.append((req, timeout))
        return handler(req)

    monkeypatch.setattr(transport.request, "urlopen", fake_urlopen)
    return seen


@pytest.mark.asyncio
async def test_post_json_sends_json_and_decodes_reply(monkeypatch):
    seen = install_urlopen(monkeypatch, lambda req: FakeResponse(b'{"ok": true}'))

    result = await transport.post_json(
        "https://svc.example/v1/chat", {"a": 1}, headers={"Authorization": "Bearer t"}, timeout=5
    )

    assert result == {"ok": True}
    req, timeout = seen[0]
    assert timeout == 5
    assert req.get_method() == "POST"
    assert json.loads(req.data) == {"a": 1}
    assert req.get_header("Content-type") == "application/json"
    assert req.get_header("Authorization") == "Bearer t"


@pytest.mark.asyncio
@pytest.mark.parametrize("status, retryable", [(503, True), (429, True), (400, False), (401, False)])
async def test_http_errors_carry_status_and_retryability(monkeypatch, status, retryable):
    def handler(req):
        raise error.HTTPError(req.full_url, status, "nope", {}, io.BytesIO(b"quota exhausted"))

    install_urlopen(monkeypatch, handler)

    with pytest.raises(TransportError) as excinfo:
        await transport.post_json("https://svc.example/m:generateContent?key=secret", {})

    assert excinfo.value.status == status
    assert excinfo.value.retryable is retryable
    assert "quota exhausted" in str(excinfo.value)
    assert "secret" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_unreachable_host_is_retryable(monkeypatch):
    def handler(req):
        raise error.URLError("connection refused")

    install_urlopen(monkeypatch, handler)

    with pytest.raises(TransportError) as excinfo:
        await transport.post_json("https://svc.example/x", {})

    assert excinfo.value.retryable
    assert excinfo.value.status is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"<html>busy</html>", b"[1, 2, 3]"])
async def test_non_object_bodies_are_rejected(monkeypatch, body):
    install_urlopen(monkeypatch, lambda req: FakeResponse(body))

    with pytest.raises(TransportError) as excinfo:
        await transport.post_json("https://svc.example/x", {})

    assert not excinfo.value.retryable


def test_redact_drops_query_string():
    assert transport._redact("https://svc.example/m:generateContent?key=abc") == "https://svc.example/m:generateContent"
    assert transport._redact("https://svc.example/plain") == "https://svc.example/plain"
