"""Filter + deduplicate projection of the article list, cached until dirty."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from stocknews.models.domain import Article, DisplayRow, FilterMode
from stocknews.services.deduplicator import DEFAULT_THRESHOLD, cluster_titles


@dataclass(frozen=True)
class FilterCriteria:
    mode: FilterMode = FilterMode.ALL
    watchlist: Tuple[str, ...] = ()
    ticker: Optional[str] = None
    query: str = ""


def _matches_watchlist(article: Article, watchlist: Sequence[str]) -> bool:
    title = article.title.upper()
    return any(t in watchlist for t in article.tickers) or any(w in title for w in watchlist)


def _matches_ticker(article: Article, ticker: str) -> bool:
    return ticker in article.tickers or ticker in article.title.upper()


def _matches_query(article: Article, query: str, content_cache: Mapping[str, str]) -> bool:
    if query in article.title.lower():
        return True
    if any(query in t.lower() for t in article.tickers):
        return True
    body = content_cache.get(article.url)
    return body is not None and query in body.lower()


def filter_indices(
    articles: Sequence[Article],
    criteria: FilterCriteria,
    content_cache: Mapping[str, str],
) -> List[int]:
    """Indices of articles passing every active filter, in input order.

    The search also scans bodies already in ``content_cache``; articles whose
    body was never fetched can only match on title or tickers.
    """
    query = criteria.query.lower()
    indices: List[int] = []
    for i, article in enumerate(articles):
        if criteria.mode is FilterMode.WATCHLIST and criteria.watchlist:
            if not _matches_watchlist(article, criteria.watchlist):
                continue
        elif criteria.mode is FilterMode.UNREAD and article.read:
            continue
        if criteria.ticker and not _matches_ticker(article, criteria.ticker):
            continue
        if query and not _matches_query(article, query, content_cache):
            continue
        indices.append(i)
    return indices


def project(
    articles: Sequence[Article],
    criteria: FilterCriteria,
    content_cache: Mapping[str, str],
    threshold: float = DEFAULT_THRESHOLD,
) -> List[DisplayRow]:
    indices = filter_indices(articles, criteria, content_cache)
    clusters = cluster_titles([articles[i].title for i in indices], threshold)
    return [
        DisplayRow(
            index=indices[c.representative],
            dup_count=len(c.duplicates),
            other_sources=tuple(articles[indices[j]].source for j in c.duplicates),
        )
        for c in clusters
    ]


class DisplayProjector:
    """Holds the last projection and recomputes it only after ``mark_dirty``."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD) -> None:
        self._threshold = threshold
        self._rows: List[DisplayRow] = []
        self._dirty = True

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def rows(self) -> List[DisplayRow]:
        return list(self._rows)

    def mark_dirty(self) -> None:
        self._dirty = True

    def recompute(
        self,
        articles: Sequence[Article],
        criteria: FilterCriteria,
        content_cache: Mapping[str, str],
        *,
        force: bool = False,
    ) -> List[DisplayRow]:
        if self._dirty or force:
            self._rows = project(articles, criteria, content_cache, self._threshold)
            self._dirty = False
        return list(self._rows)
