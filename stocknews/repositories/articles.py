"""Article store: the persistence collaborator used by the runtime."""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Iterator, List, Optional, Protocol, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stocknews.db.models import ArticleRow
from stocknews.db.session import init_db, session_scope
from stocknews.models.domain import Article, FilterMode, Sentiment


class StorageError(Exception):
    """Any failure of the underlying database."""


class ArticleStore(Protocol):
    def insert(self, article: Article) -> bool: ...
    def query(self, filter_mode: FilterMode, tickers: Optional[Sequence[str]], limit: int) -> List[Article]: ...
    def bookmarked(self, limit: int) -> List[Article]: ...
    def mark_read(self, article_id: int) -> None: ...
    def toggle_bookmark(self, article_id: int) -> bool: ...
    def save_body(self, article_id: int, text: str) -> None: ...
    def get_body(self, article_id: int) -> Optional[str]: ...
    def total_count(self) -> int: ...
    def unread_count(self) -> int: ...


def to_article(row: ArticleRow) -> Article:
    try:
        tickers = json.loads(row.tickers or "[]")
    except json.JSONDecodeError:
        tickers = []
    return Article(
        id=row.id,
        title=row.title,
        source=row.source,
        url=row.url,
        tickers=tickers,
        published_at=row.published_at,
        fetched_at=row.fetched_at,
        read=bool(row.read),
        bookmarked=bool(row.bookmarked),
        sentiment=Sentiment.parse(row.sentiment),
    )


class SqlArticleStore:
    """``ArticleStore`` over SQLAlchemy. Every call runs in its own transaction."""

    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self._sessions: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False, autoflush=False, future=True
        )
        if create_schema:
            with self._guard():
                init_db(engine)

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._guard(), session_scope(self._sessions) as session:
            yield session

    def insert(self, article: Article) -> bool:
        """Insert ``article``; returns False when its URL is already stored."""
        try:
            with self._session() as session:
                exists = session.scalar(select(ArticleRow.id).where(ArticleRow.url == article.url))
                if exists is not None:
                    return False
                session.add(
                    ArticleRow(
                        title=article.title,
                        source=article.source,
                        url=article.url,
                        tickers=json.dumps(article.tickers),
                        published_at=article.published_at,
                        fetched_at=article.fetched_at,
                        read=article.read,
                        bookmarked=article.bookmarked,
                        sentiment=article.sentiment.value,
                    )
                )
        except StorageError as exc:
            # lost a race on the unique URL: still a no-op
            if isinstance(exc.__cause__, IntegrityError):
                return False
            raise
        return True

    def query(self, filter_mode: FilterMode, tickers: Optional[Sequence[str]], limit: int) -> List[Article]:
        stmt = select(ArticleRow)
        if filter_mode is FilterMode.WATCHLIST and tickers:
            stmt = stmt.where(
                or_(
                    *(
                        or_(
                            ArticleRow.tickers.like(f'%"{t}%'),
                            func.upper(ArticleRow.title).like(f"%{t}%"),
                        )
                        for t in tickers
                    )
                )
            )
        elif filter_mode is FilterMode.UNREAD:
            stmt = stmt.where(ArticleRow.read.is_(False))
        return self._fetch(stmt, limit)

    def bookmarked(self, limit: int) -> List[Article]:
        return self._fetch(select(ArticleRow).where(ArticleRow.bookmarked.is_(True)), limit)

    def _fetch(self, stmt, limit: int) -> List[Article]:  # noqa: ANN001
        stmt = stmt.order_by(ArticleRow.published_at.desc(), ArticleRow.id.desc()).limit(limit)
        with self._session() as session:
            return [to_article(row) for row in session.scalars(stmt)]

    def mark_read(self, article_id: int) -> None:
        with self._session() as session:
            session.execute(update(ArticleRow).where(ArticleRow.id == article_id).values(read=True))

    def toggle_bookmark(self, article_id: int) -> bool:
        with self._session() as session:
            row = session.get(ArticleRow, article_id)
            if row is None:
                raise StorageError(f"article {article_id} not found")
            row.bookmarked = not row.bookmarked
            return row.bookmarked

    def save_body(self, article_id: int, text: str) -> None:
        with self._session() as session:
            session.execute(update(ArticleRow).where(ArticleRow.id == article_id).values(content=text))

    def get_body(self, article_id: int) -> Optional[str]:
        with self._session() as session:
            return session.scalar(select(ArticleRow.content).where(ArticleRow.id == article_id))

    def total_count(self) -> int:
        with self._session() as session:
            return int(session.scalar(select(func.count()).select_from(ArticleRow)) or 0)

    def unread_count(self) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(ArticleRow).where(ArticleRow.read.is_(False))
            return int(session.scalar(stmt) or 0)
