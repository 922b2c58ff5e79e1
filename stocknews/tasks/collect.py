"""Concurrent multi-source feed collection."""

from __future__ import annotations

import asyncio
import uuid
from typing import Iterable, List, Optional, Sequence

from stocknews.connectors.base import ConnectorError, Fetcher
from stocknews.connectors.rss import fetch_feed
from stocknews.models.domain import FeedSource, FetchOutcome, FetchReport
from stocknews.repositories.articles import ArticleStore, StorageError
from stocknews.services.rate_limiter import RateLimiter
from stocknews.utils.logging import get_logger

logger = get_logger(__name__)


def eligible_sources(sources: Iterable[FeedSource], limiter: RateLimiter, min_interval: float) -> List[FeedSource]:
    """Enabled sources outside their backoff window and past ``min_interval``."""
    return [s for s in sources if s.enabled and limiter.is_eligible(s.name, min_interval)]


async def _fetch_one(fetcher: Fetcher, source: FeedSource, timeout: Optional[float]) -> FetchOutcome:
    try:
        articles = await fetch_feed(fetcher, source, timeout=timeout)
    except ConnectorError as exc:
        return FetchOutcome(source=source.name, error=str(exc))
    except Exception as exc:  # noqa: BLE001 - one broken source must not sink the batch
        logger.exception("collect.unexpected_error", extra={"source": source.name})
        return FetchOutcome(source=source.name, error=f"Unexpected error for {source.name}: {exc}")
    return FetchOutcome(source=source.name, articles=tuple(articles))


async def fetch_all_feeds(
    fetcher: Fetcher,
    sources: Sequence[FeedSource],
    *,
    timeout: Optional[float] = None,
) -> List[FetchOutcome]:
    """Fetch every enabled source concurrently and return all outcomes at once.

    Outcomes keep the order of ``sources``. Failures are reported per source
    and never cancel the remaining fetches.
    """
    batch = [s.model_copy() for s in sources if s.enabled]
    trace_id = uuid.uuid4().hex
    logger.info("collect.start", extra={"trace_id": trace_id, "sources": [s.name for s in batch]})

    outcomes = await asyncio.gather(*(_fetch_one(fetcher, s, timeout) for s in batch))

    for outcome in outcomes:
        if not outcome.ok:
            logger.warning(
                "collect.source_failed",
                extra={"trace_id": trace_id, "source": outcome.source, "error": outcome.error},
            )
    logger.info(
        "collect.done",
        extra={
            "trace_id": trace_id,
            "fetched": sum(len(o.articles) for o in outcomes),
            "failed": sum(1 for o in outcomes if not o.ok),
        },
    )
    return list(outcomes)


def persist_outcomes(store: ArticleStore, outcomes: Iterable[FetchOutcome]) -> List[FetchReport]:
    """Insert fetched articles, counting only rows that were new.

    Storage errors are logged and counted as zero inserts; the source itself
    still succeeded.
    """
    reports: List[FetchReport] = []
    for outcome in outcomes:
        if not outcome.ok:
            reports.append(FetchReport(source=outcome.source, error=outcome.error))
            continue
        inserted = 0
        for article in outcome.articles:
            try:
                if store.insert(article):
                    inserted += 1
            except StorageError as exc:
                logger.error("store.error", extra={"op": "insert", "url": article.url, "error": str(exc)})
        reports.append(FetchReport(source=outcome.source, inserted=inserted))
    return reports
