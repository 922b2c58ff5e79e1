"""Domain models shared by the fetch, dedup and projection stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

    @property
    def label(self) -> str:
        return {"positive": "+", "negative": "-", "neutral": "~"}[self.value]

    @classmethod
    def parse(cls, value: Optional[str]) -> "Sentiment":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.NEUTRAL


class Article(BaseModel):
    """A single feed item as stored and displayed."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(0, description="Store-assigned identity, 0 until persisted")
    title: str
    source: str = Field(..., description="FeedSource name that published the item")
    url: str = Field(..., description="Canonical URL, unique key in the store")
    tickers: List[str] = Field(default_factory=list, description="Tickers found in the title, in order")
    published_at: int = Field(..., description="Unix timestamp")
    fetched_at: int = Field(..., description="Unix timestamp")
    read: bool = False
    bookmarked: bool = False
    sentiment: Sentiment = Sentiment.NEUTRAL


class FeedSource(BaseModel):
    """A configured syndication feed."""

    name: str = Field(..., description="Display name, also the rate limiter key")
    url: str
    enabled: bool = True

    @field_validator("name", "url")
    @classmethod
    def _strip(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("source name and url cannot be blank.")
        return text


DEFAULT_SOURCES: Tuple[Tuple[str, str], ...] = (
    ("Bisnis.com", "https://www.bisnis.com/rss"),
    ("Kontan", "https://www.kontan.co.id/rss"),
    ("CNBC Indo", "https://www.cnbcindonesia.com/market/rss"),
    ("IDNFinancials", "https://www.idnfinancials.com/rss"),
)


def default_sources() -> List[FeedSource]:
    return [FeedSource(name=name, url=url) for name, url in DEFAULT_SOURCES]


class FilterMode(str, Enum):
    ALL = "all"
    WATCHLIST = "watchlist"
    UNREAD = "unread"
    SOURCE = "source"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def next(self) -> "FilterMode":
        order = [FilterMode.ALL, FilterMode.WATCHLIST, FilterMode.UNREAD, FilterMode.SOURCE]
        return order[(order.index(self) + 1) % len(order)]

    @classmethod
    def parse(cls, value: Optional[str]) -> "FilterMode":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.ALL


class ThemeName(str, Enum):
    DARK = "dark"
    LIGHT = "light"
    SOLARIZED = "solarized"
    GRUVBOX = "gruvbox"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def next(self) -> "ThemeName":
        members = list(ThemeName)
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def parse(cls, value: Optional[str]) -> "ThemeName":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.DARK


@dataclass(frozen=True)
class DisplayRow:
    """One line of the projection: a representative plus folded duplicates."""

    index: int
    dup_count: int = 0
    other_sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FetchOutcome:
    source: str
    articles: Tuple[Article, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ContentResult:
    url: str
    text: str
    ok: bool = True


@dataclass(frozen=True)
class FetchReport:
    """Per-source summary of the last drained batch."""

    source: str
    inserted: int = 0
    error: Optional[str] = None


class ViewState(BaseModel):
    """View settings round-tripped across restarts."""

    filter_mode: Optional[str] = None
    search_query: Optional[str] = None
    ticker_filter: Optional[str] = None
    theme_name: Optional[str] = None
    selected_index: Optional[int] = Field(default=None, ge=0)
