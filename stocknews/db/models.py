"""SQLAlchemy models for stored feed articles."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for ORM models."""


class ArticleRow(Base):
    """One feed item; the URL is the deduplication key."""

    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("url", name="uq_articles_url"),
        Index("ix_articles_published", "published_at"),
        Index("ix_articles_source", "source"),
        Index("ix_articles_bookmarked", "bookmarked"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    # JSON array text so ticker membership can be matched with LIKE
    tickers: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    published_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fetched_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bookmarked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sentiment: Mapped[str] = mapped_column(String(16), nullable=False, default="neutral")
    content: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
