from __future__ import annotations

import asyncio

import httpx
import pytest

pytest.importorskip("pytest_httpx")

from stocknews.connectors.base import HttpxFetcher, NetworkError
from stocknews.connectors.rss import fetch_feed
from stocknews.models.domain import FeedSource

FEED_URL = "https://www.bisnis.com/rss"

RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>Bisnis</title>
<item><title>BBRI cetak laba bersih</title><link>https://www.bisnis.com/read/1</link></item>
</channel></rss>"""


def _get(url: str, **kwargs):
    async def run():
        async with httpx.AsyncClient() as client:
            return await HttpxFetcher(client).get(url, **kwargs)

    return asyncio.run(run())


def test_get_returns_body_and_sends_headers(httpx_mock):
    httpx_mock.add_response(method="GET", url=FEED_URL, content=RSS, status_code=200)

    body = _get(FEED_URL, headers={"User-Agent": "test-agent"})

    assert body == RSS
    request = httpx_mock.get_requests()[0]
    assert request.headers["User-Agent"] == "test-agent"


def test_error_status_raises_network_error(httpx_mock):
    httpx_mock.add_response(method="GET", url=FEED_URL, status_code=503)

    with pytest.raises(NetworkError) as exc:
        _get(FEED_URL)

    assert str(exc.value) == "HTTP 503"


def test_timeout_raises_network_error(httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=FEED_URL)

    with pytest.raises(NetworkError) as exc:
        _get(FEED_URL, timeout=2.0)

    assert "timed out" in str(exc.value)


def test_fetch_feed_over_http(httpx_mock):
    httpx_mock.add_response(method="GET", url=FEED_URL, content=RSS, status_code=200)
    source = FeedSource(name="Bisnis.com", url=FEED_URL)

    async def run():
        async with httpx.AsyncClient() as client:
            return await fetch_feed(HttpxFetcher(client), source)

    articles = asyncio.run(run())

    assert [a.url for a in articles] == ["https://www.bisnis.com/read/1"]
    assert articles[0].tickers == ["BBRI"]
