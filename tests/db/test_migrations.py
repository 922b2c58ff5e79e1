from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from stocknews.db.session import upgrade_database
from stocknews.models.domain import Article, FilterMode
from stocknews.repositories.articles import SqlArticleStore


@pytest.fixture()
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'nested' / 'articles.db'}"


def test_migrations_create_articles_table(sqlite_url: str) -> None:
    upgrade_database(sqlite_url)
    inspector = inspect(create_engine(sqlite_url, future=True))

    assert "articles" in inspector.get_table_names()
    columns = {column["name"] for column in inspector.get_columns("articles")}
    assert {"title", "source", "url", "tickers", "published_at", "read", "bookmarked", "content"}.issubset(columns)
    indexes = {index["name"] for index in inspector.get_indexes("articles")}
    assert {"ix_articles_published", "ix_articles_source", "ix_articles_bookmarked"}.issubset(indexes)


def test_store_works_on_migrated_schema(sqlite_url: str) -> None:
    upgrade_database(sqlite_url)
    upgrade_database(sqlite_url)  # already at head
    store = SqlArticleStore(create_engine(sqlite_url, future=True), create_schema=False)

    article = Article(title="BBCA naik", source="Kontan", url="https://kontan.test/1", published_at=1, fetched_at=1)
    assert store.insert(article)
    assert not store.insert(article)

    stored = store.query(FilterMode.UNREAD, None, 10)
    assert [a.title for a in stored] == ["BBCA naik"]
    assert not stored[0].bookmarked
