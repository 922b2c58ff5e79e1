"""Application state owned by the consumer loop.

Everything here is synchronous and never touches the network. ``Runtime``
drives it and hands it the results of background fetches.
"""

from __future__ import annotations

import time
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from stocknews.connectors.content import is_placeholder
from stocknews.input_mode import (
    NORMAL,
    DeleteConfirm,
    InputMode,
    Search,
    SourceAction,
    SourceField,
    SourceForm,
    backspace,
    switch_field,
    type_char,
)
from stocknews.models.domain import (
    Article,
    DisplayRow,
    FeedSource,
    FetchOutcome,
    FetchReport,
    FilterMode,
    ThemeName,
    ViewState,
)
from stocknews.persistence import SourceRepository
from stocknews.services.projector import DisplayProjector, FilterCriteria
from stocknews.services.rate_limiter import RateLimiter
from stocknews.repositories.articles import ArticleStore
from stocknews.tasks.collect import eligible_sources, persist_outcomes

STATUS_TTL_SECONDS = 5.0


class ViewMode(str, Enum):
    FEED = "feed"
    READER = "reader"
    BOOKMARKS = "bookmarks"
    SOURCES = "sources"


class App:
    def __init__(
        self,
        *,
        sources: Sequence[FeedSource],
        watchlist: Sequence[str] = (),
        min_fetch_interval: float = 60.0,
        refresh_interval: float = 300.0,
        theme: ThemeName = ThemeName.DARK,
        source_repository: Optional[SourceRepository] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._source_repository = source_repository

        self.articles: List[Article] = []
        self.sources: List[FeedSource] = [s.model_copy() for s in sources]
        self.watchlist: List[str] = [w.strip().upper() for w in watchlist if w.strip()]
        self.limiter = RateLimiter(clock)
        self.min_fetch_interval = min_fetch_interval
        self.refresh_interval = refresh_interval

        self.projector = DisplayProjector()
        self.filter_mode = FilterMode.ALL
        self.ticker_filter: Optional[str] = None
        self.search_query = ""
        self.theme = theme
        self.view_mode = ViewMode.FEED
        self.selected_index = 0
        self.source_index = 0
        self.input_mode: InputMode = NORMAL

        self.content_cache: Dict[str, str] = {}
        self.failed_content_urls: Set[str] = set()
        self._failure_text: Dict[str, str] = {}
        self.reader_article: Optional[Article] = None
        self.reader_content: Optional[str] = None
        self.content_loading = False
        self._return_view = ViewMode.FEED

        self.is_fetching = False
        self.last_refresh: Optional[float] = None
        self.last_fetch_results: List[FetchReport] = []
        self.total_articles = 0
        self.unread_count = 0
        self._status: Optional[Tuple[str, float]] = None

    # -- projection -----------------------------------------------------

    @property
    def criteria(self) -> FilterCriteria:
        return FilterCriteria(
            mode=self.filter_mode,
            watchlist=tuple(self.watchlist),
            ticker=self.ticker_filter,
            query=self.search_query,
        )

    def mark_projection_dirty(self) -> None:
        self.projector.mark_dirty()

    def recompute_projection(self, *, force: bool = False) -> List[DisplayRow]:
        rows = self.projector.recompute(self.articles, self.criteria, self.content_cache, force=force)
        self.selected_index = 0 if not rows else min(self.selected_index, len(rows) - 1)
        return rows

    def current_rows(self) -> List[DisplayRow]:
        if self.projector.is_dirty:
            return self.recompute_projection()
        return self.projector.rows

    def selected_row(self) -> Optional[DisplayRow]:
        rows = self.current_rows()
        if 0 <= self.selected_index < len(rows):
            return rows[self.selected_index]
        return None

    def selected_article(self) -> Optional[Article]:
        row = self.selected_row()
        return self.articles[row.index] if row is not None else None

    def set_articles(self, articles: Sequence[Article], *, total: Optional[int] = None, unread: Optional[int] = None) -> None:
        self.articles = list(articles)
        if total is not None:
            self.total_articles = total
        if unread is not None:
            self.unread_count = unread
        self.mark_projection_dirty()

    # -- navigation -----------------------------------------------------

    def select_next(self) -> None:
        rows = self.current_rows()
        if rows:
            self.selected_index = min(self.selected_index + 1, len(rows) - 1)

    def select_prev(self) -> None:
        if self.selected_index > 0:
            self.selected_index -= 1

    def select_first(self) -> None:
        self.selected_index = 0

    def select_last(self) -> None:
        rows = self.current_rows()
        if rows:
            self.selected_index = len(rows) - 1

    # -- filters --------------------------------------------------------

    def _filters_changed(self) -> None:
        self.selected_index = 0
        self.mark_projection_dirty()

    def set_filter_mode(self, mode: FilterMode) -> None:
        self.filter_mode = mode
        self._filters_changed()

    def cycle_filter(self) -> FilterMode:
        self.set_filter_mode(self.filter_mode.next())
        self.set_status(f"Filter: {self.filter_mode.label}")
        return self.filter_mode

    def set_ticker_filter(self, ticker: Optional[str]) -> None:
        self.ticker_filter = ticker.strip().upper() if ticker and ticker.strip() else None
        self._filters_changed()

    def filter_by_selected_ticker(self) -> Optional[str]:
        article = self.selected_article()
        if article is None or not article.tickers:
            self.set_status("No ticker detected in this article")
            return None
        ticker = article.tickers[0]
        self.set_ticker_filter(ticker)
        self.set_status(f"Ticker filter: {ticker}")
        return ticker

    def clear_ticker_filter(self) -> None:
        if self.ticker_filter is not None:
            self.set_ticker_filter(None)
            self.set_status("Ticker filter cleared")

    def set_search(self, query: str) -> None:
        self.search_query = query
        self._filters_changed()

    def cycle_theme(self) -> ThemeName:
        self.theme = self.theme.next()
        self.set_status(f"Theme: {self.theme.label}")
        return self.theme

    # -- fetching -------------------------------------------------------

    def eligible_sources(self) -> List[FeedSource]:
        return eligible_sources(self.sources, self.limiter, self.min_fetch_interval)

    def refresh_due(self) -> bool:
        if self.is_fetching:
            return False
        if self.last_refresh is None:
            return True
        return self._clock() - self.last_refresh >= self.refresh_interval

    def begin_refresh(self) -> None:
        self.is_fetching = True
        self.last_refresh = self._clock()

    def apply_fetch_outcomes(self, outcomes: Sequence[FetchOutcome], store: ArticleStore) -> int:
        """Persist a drained batch and record it; returns the number of new rows."""
        return self.record_fetch_reports(persist_outcomes(store, outcomes))

    def record_fetch_reports(self, reports: Sequence[FetchReport]) -> int:
        """Apply a drained batch: update backoff state and the status line."""
        self.is_fetching = False
        known = {s.name for s in self.sources}
        for report in reports:
            # sources removed or renamed while the batch ran
            if report.source in known:
                self.limiter.record(report.source, ok=report.error is None)
        self.last_fetch_results = list(reports)

        total_new = sum(r.inserted for r in reports)
        message = f"{total_new} new articles fetched" if total_new else "Feeds refreshed, no new articles"
        failures = [r.error for r in reports if r.error]
        if failures:
            message += " | failed: " + "; ".join(failures)
        self.set_status(message)
        return total_new

    # -- reader / content cache -----------------------------------------

    def enter_reader(self) -> Optional[Article]:
        """Open the selected article in the reader.

        Returns the article when its body still has to be retrieved, None when
        nothing is selected or the body (or an earlier failure) is already
        known.
        """
        article = self.selected_article()
        if article is None:
            return None
        if self.view_mode is not ViewMode.READER:
            self._return_view = self.view_mode
        self.view_mode = ViewMode.READER
        self.reader_article = article
        known = self.content_cache.get(article.url) or self._failure_text.get(article.url)
        self.reader_content = known
        self.content_loading = known is None
        return article if known is None else None

    def leave_reader(self) -> None:
        self.view_mode = self._return_view
        self.reader_article = None
        self.reader_content = None
        self.content_loading = False

    def set_view(self, mode: ViewMode) -> None:
        """Switch to another list view; READER opens the selected article."""
        if mode is ViewMode.READER:
            self.enter_reader()
            return
        self.view_mode = mode
        self._return_view = mode
        self.reader_article = None
        self.selected_index = 0
        self.mark_projection_dirty()

    def move_source_cursor(self, delta: int) -> None:
        if self.sources:
            self.source_index = max(0, min(self.source_index + delta, len(self.sources) - 1))

    def mark_read_local(self, article_id: int) -> None:
        for i, article in enumerate(self.articles):
            if article.id == article_id and not article.read:
                self.articles[i] = article.model_copy(update={"read": True})
                self.unread_count = max(0, self.unread_count - 1)
        # the unread filter hides it on the next reload, not while it is open

    def set_bookmark_local(self, article_id: int, bookmarked: bool) -> None:
        for i, article in enumerate(self.articles):
            if article.id == article_id:
                self.articles[i] = article.model_copy(update={"bookmarked": bookmarked})
        if self.reader_article is not None and self.reader_article.id == article_id:
            self.reader_article = self.reader_article.model_copy(update={"bookmarked": bookmarked})

    def cache_content(self, url: str, text: str) -> None:
        """Record a retrieved body; placeholder texts only mark the URL as failed."""
        if is_placeholder(text):
            self.failed_content_urls.add(url)
            self._failure_text[url] = text
        else:
            self.content_cache[url] = text
            self.failed_content_urls.discard(url)
            self._failure_text.pop(url, None)
            if self.search_query:
                # cached bodies take part in search
                self.mark_projection_dirty()
        if self.reader_article is not None and self.reader_article.url == url:
            self.reader_content = text
            self.content_loading = False

    def retry_content(self, url: str) -> None:
        self.failed_content_urls.discard(url)
        self._failure_text.pop(url, None)

    def content_for(self, url: str) -> Optional[str]:
        return self.content_cache.get(url)

    # -- sources --------------------------------------------------------

    def _persist_sources(self) -> None:
        if self._source_repository is not None:
            self._source_repository.save(self.sources)

    def _sources_changed(self) -> None:
        self._persist_sources()
        self.mark_projection_dirty()

    def _name_taken(self, name: str, ignore: Optional[int] = None) -> bool:
        return any(s.name == name for i, s in enumerate(self.sources) if i != ignore)

    def add_source(self, name: str, url: str) -> bool:
        name, url = name.strip(), url.strip()
        if not name or not url:
            return False
        if self._name_taken(name):
            self.set_status(f"Source already exists: {name}")
            return False
        self.sources.append(FeedSource(name=name, url=url))
        self._sources_changed()
        self.set_status(f"Added source: {name}")
        return True

    def update_source(self, index: int, name: str, url: str) -> bool:
        if not 0 <= index < len(self.sources):
            return False
        name, url = name.strip(), url.strip()
        if not name or not url:
            return False
        if self._name_taken(name, ignore=index):
            self.set_status(f"Source already exists: {name}")
            return False
        old = self.sources[index]
        self.sources[index] = old.model_copy(update={"name": name, "url": url})
        self.limiter.rename(old.name, name)
        self._sources_changed()
        self.set_status(f"Updated source: {name}")
        return True

    def remove_source(self, index: int) -> bool:
        if not 0 <= index < len(self.sources):
            return False
        removed = self.sources.pop(index)
        self.limiter.forget(removed.name)
        if self.source_index >= len(self.sources) and self.source_index > 0:
            self.source_index -= 1
        self._sources_changed()
        self.set_status(f"Deleted source: {removed.name}")
        return True

    def toggle_source(self, index: int) -> Optional[bool]:
        if not 0 <= index < len(self.sources):
            return None
        source = self.sources[index]
        enabled = not source.enabled
        self.sources[index] = source.model_copy(update={"enabled": enabled})
        self._sources_changed()
        self.set_status(f"{source.name}: {'enabled' if enabled else 'disabled'}")
        return enabled

    # -- input modes ----------------------------------------------------

    def start_search(self) -> None:
        self.input_mode = Search()

    def submit_search(self) -> None:
        if not isinstance(self.input_mode, Search):
            return
        query = self.input_mode.buffer
        self.input_mode = NORMAL
        self.set_search(query)
        self.set_status(f"Search: {query}" if query else "Search cleared")

    def cancel_search(self) -> None:
        self.input_mode = NORMAL
        self.set_search("")

    def start_add_source(self) -> None:
        self.input_mode = SourceForm(action=SourceAction.ADD)

    def start_edit_source(self, index: Optional[int] = None) -> None:
        index = self.source_index if index is None else index
        if 0 <= index < len(self.sources):
            source = self.sources[index]
            self.input_mode = SourceForm(action=SourceAction.EDIT, name=source.name, url=source.url, index=index)

    def switch_field(self) -> None:
        if isinstance(self.input_mode, SourceForm):
            self.input_mode = switch_field(self.input_mode)

    def confirm_source_form(self) -> bool:
        """Advance from the name field, or save the form from the URL field."""
        form = self.input_mode
        if not isinstance(form, SourceForm):
            return False
        if form.field is SourceField.NAME:
            self.input_mode = replace(form, field=SourceField.URL)
            return False
        self.input_mode = NORMAL
        if form.action is SourceAction.ADD:
            return self.add_source(form.name, form.url)
        return form.index is not None and self.update_source(form.index, form.name, form.url)

    def start_delete_source(self, index: Optional[int] = None) -> None:
        index = self.source_index if index is None else index
        if 0 <= index < len(self.sources):
            self.input_mode = DeleteConfirm(index=index)

    def confirm_delete(self) -> bool:
        mode = self.input_mode
        self.input_mode = NORMAL
        if not isinstance(mode, DeleteConfirm):
            return False
        return self.remove_source(mode.index)

    def cancel_input(self) -> None:
        if isinstance(self.input_mode, Search):
            self.cancel_search()
            return
        if isinstance(self.input_mode, DeleteConfirm):
            self.set_status("Delete cancelled")
        self.input_mode = NORMAL

    def type_char(self, ch: str) -> None:
        self.input_mode = type_char(self.input_mode, ch)

    def backspace(self) -> None:
        self.input_mode = backspace(self.input_mode)

    # -- status ---------------------------------------------------------

    def set_status(self, message: str) -> None:
        self._status = (message, self._clock())

    def status_text(self, now: Optional[float] = None) -> Optional[str]:
        if self._status is None:
            return None
        message, when = self._status
        now = self._clock() if now is None else now
        if now - when < STATUS_TTL_SECONDS:
            return message
        return None

    # -- view state -----------------------------------------------------

    def to_snapshot(self) -> ViewState:
        return ViewState(
            filter_mode=self.filter_mode.value,
            search_query=self.search_query or None,
            ticker_filter=self.ticker_filter,
            theme_name=self.theme.value,
            selected_index=self.selected_index,
        )

    def restore_from_snapshot(self, state: ViewState) -> None:
        if state.filter_mode is not None:
            self.filter_mode = FilterMode.parse(state.filter_mode)
        if state.search_query is not None:
            self.search_query = state.search_query
        self.ticker_filter = state.ticker_filter
        if state.theme_name is not None:
            self.theme = ThemeName.parse(state.theme_name)
        if state.selected_index is not None:
            self.selected_index = state.selected_index
        self.mark_projection_dirty()
