"""RSS/Atom connector: fetch a source and turn its entries into Articles."""

from __future__ import annotations

import asyncio
import calendar
import time
from typing import Any, List, Optional

import feedparser

from stocknews.models.domain import Article, FeedSource
from stocknews.services.tagging import analyze_sentiment, extract_tickers
from stocknews.utils.logging import get_logger

from .base import Fetcher, NetworkError, ParseError

logger = get_logger(__name__)


def _entry_url(entry: Any) -> str:
    # enclosures share ``links`` with the article link; only alternates count
    link = str(entry.get("link") or "").strip()
    if link:
        return link
    for item in entry.get("links") or []:
        href = (item.get("href") or "").strip()
        if href and item.get("rel", "alternate") == "alternate":
            return href
    return str(entry.get("id") or "").strip()


def _entry_timestamp(entry: Any, fallback: int) -> int:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed is None:
        return fallback
    return calendar.timegm(parsed)


def parse_feed(source: FeedSource, payload: bytes, now: Optional[int] = None) -> List[Article]:
    """Parse a syndication document into Article candidates.

    Entries without a title or without any usable link are skipped; they are
    not treated as failures. A document feedparser cannot recognise at all
    raises ``ParseError``.
    """
    parsed = feedparser.parse(payload)
    if not parsed.entries and not parsed.get("version"):
        reason = parsed.get("bozo_exception") or "not a syndication document"
        raise ParseError(f"Parse error for {source.name}: {reason}")

    fetched_at = int(time.time()) if now is None else now
    articles: List[Article] = []
    for entry in parsed.entries:
        title = str(entry.get("title") or "").strip()
        if not title:
            continue
        url = _entry_url(entry)
        if not url:
            continue
        articles.append(
            Article(
                title=title,
                source=source.name,
                url=url,
                tickers=extract_tickers(title),
                published_at=_entry_timestamp(entry, fetched_at),
                fetched_at=fetched_at,
                sentiment=analyze_sentiment(title),
            )
        )
    skipped = len(parsed.entries) - len(articles)
    if skipped:
        logger.debug("rss.entries_skipped", extra={"source": source.name, "skipped": skipped})
    return articles


async def fetch_feed(fetcher: Fetcher, source: FeedSource, timeout: Optional[float] = None) -> List[Article]:
    try:
        payload = await fetcher.get(source.url, timeout=timeout)
    except NetworkError as exc:
        raise NetworkError(f"Network error for {source.name}: {exc}") from exc
    # feedparser is synchronous; keep the event loop free while it works
    return await asyncio.to_thread(parse_feed, source, payload)
