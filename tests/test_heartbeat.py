from __future__ import annotations

import asyncio
import logging

import httpx

from adapters.heartbeat import Heartbeat


def _check_in(url, status: int) -> list[httpx.Request]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status)

    async def _run() -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            await Heartbeat(http, url).check_in()

    asyncio.run(_run())
    return requests


def test_posts_to_configured_url() -> None:
    requests = _check_in("https://hc.example.com/ping/abc", 200)

    assert [(request.method, str(request.url)) for request in requests] == [("POST", "https://hc.example.com/ping/abc")]


def test_disabled_without_url() -> None:
    assert _check_in(None, 200) == []


def test_failure_is_only_logged(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        requests = _check_in("https://hc.example.com/ping/abc", 500)

    assert len(requests) == 1
    assert "Failed to send the heartbeat" in caplog.text
