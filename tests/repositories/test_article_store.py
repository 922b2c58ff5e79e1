from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine

from stocknews.models.domain import Article, FilterMode, Sentiment
from stocknews.repositories.articles import SqlArticleStore, StorageError


@pytest.fixture()
def store(tmp_path: Path) -> SqlArticleStore:
    engine = create_engine(f"sqlite:///{tmp_path / 'articles.db'}", future=True)
    return SqlArticleStore(engine)


def _article(n: int, title: str, tickers=None, published_at: int = 0) -> Article:
    return Article(
        title=title,
        source="Kontan",
        url=f"https://kontan.test/{n}",
        tickers=tickers or [],
        published_at=published_at or 1_700_000_000 + n,
        fetched_at=1_700_000_000,
        sentiment=Sentiment.POSITIVE,
    )


def test_insert_is_idempotent_on_url(store):
    assert store.insert(_article(1, "BBCA naik", ["BBCA"]))
    assert not store.insert(_article(1, "BBCA naik (updated title)", ["BBCA"]))
    assert store.total_count() == 1


def test_query_newest_first_with_limit(store):
    for n in range(1, 6):
        store.insert(_article(n, f"Berita {n}"))

    rows = store.query(FilterMode.ALL, None, limit=3)

    assert [a.title for a in rows] == ["Berita 5", "Berita 4", "Berita 3"]
    assert rows[0].id > 0
    assert rows[0].sentiment is Sentiment.POSITIVE


def test_watchlist_query_matches_tickers_or_title(store):
    store.insert(_article(1, "BBCA naik", ["BBCA"]))
    store.insert(_article(2, "Rupiah menguat"))
    store.insert(_article(3, "Laba tlkm tumbuh"))

    titles = {a.title for a in store.query(FilterMode.WATCHLIST, ["BBCA", "TLKM"], limit=10)}
    assert titles == {"BBCA naik", "Laba tlkm tumbuh"}

    # empty watchlist behaves like ALL
    assert len(store.query(FilterMode.WATCHLIST, [], limit=10)) == 3


def test_read_and_unread(store):
    store.insert(_article(1, "a"))
    store.insert(_article(2, "b"))
    first = store.query(FilterMode.ALL, None, 10)[-1]

    store.mark_read(first.id)

    assert store.unread_count() == 1
    assert [a.title for a in store.query(FilterMode.UNREAD, None, 10)] == ["b"]


def test_toggle_bookmark(store):
    store.insert(_article(1, "a"))
    article = store.query(FilterMode.ALL, None, 10)[0]

    assert store.toggle_bookmark(article.id) is True
    assert [a.id for a in store.bookmarked(10)] == [article.id]
    assert store.toggle_bookmark(article.id) is False
    assert store.bookmarked(10) == []


def test_toggle_bookmark_missing_article(store):
    with pytest.raises(StorageError):
        store.toggle_bookmark(999)


def test_body_round_trip(store):
    store.insert(_article(1, "a"))
    article = store.query(FilterMode.ALL, None, 10)[0]

    assert store.get_body(article.id) is None
    store.save_body(article.id, "Isi artikel")
    assert store.get_body(article.id) == "Isi artikel"


def test_database_errors_surface_as_storage_error(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'articles.db'}", future=True)
    store = SqlArticleStore(engine, create_schema=False)

    with pytest.raises(StorageError):
        store.total_count()
