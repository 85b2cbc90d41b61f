"""Utilities for POSTing JSON to the reasoning and sentiment services."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Mapping
from urllib import error, request

from .errors import TransportError

# Statuses worth another attempt; everything else non-2xx fails immediately
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def _perform_json_request(
    url: str,
    payload: Dict[str, Any],
    headers: Mapping[str, str],
    timeout: float,
) -> Dict[str, Any]:
    """Execute the blocking HTTP POST and decode the JSON body."""

    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        message = body or exc.reason
        raise TransportError(
            f"POST {_redact(url)} failed with status {exc.code}: {message}",
            status=exc.code,
            retryable=exc.code in RETRYABLE_STATUSES,
        ) from exc
    except error.URLError as exc:
        raise TransportError(
            f"Could not reach {_redact(url)}: {exc.reason}",
            retryable=True,
        ) from exc
    except TimeoutError as exc:
        raise TransportError(f"POST {_redact(url)} timed out", retryable=True) from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TransportError(f"{_redact(url)} returned a non-JSON response.") from exc

    if not isinstance(parsed, dict):
        raise TransportError(f"{_redact(url)} returned JSON that is not an object.")

    return parsed


def _redact(url: str) -> str:
    """Strip the query string so credentials never reach the logs."""
    return url.split("?", 1)[0]


async def post_json(
    url: str,
    payload: Dict[str, Any],
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float = 30.0,
) -> Dict[str, Any]:
    """POST ``payload`` as JSON and return the decoded JSON object.

    The request runs in a worker thread so the event loop (and every other
    agent) keeps running while this one waits on the network.

    Raises:
        TransportError: non-2xx status, unreachable host, timeout, or non-JSON body
    """

    return await asyncio.to_thread(
        _perform_json_request,
        url,
        payload,
        dict(headers or {}),
        timeout,
    )


__all__ = ["post_json", "RETRYABLE_STATUSES"]
