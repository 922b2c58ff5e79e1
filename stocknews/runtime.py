"""Single event loop driver: background fetch tasks feed queues, ``tick`` drains them."""

from __future__ import annotations

import asyncio
from typing import Coroutine, Dict, List, Optional, Sequence, Set

from stocknews.app import App, ViewMode
from stocknews.connectors.base import ContentFetchError, Fetcher
from stocknews.connectors.content import (
    RETRY_DELAY_SECONDS,
    USER_AGENTS,
    Sleep,
    failure_placeholder,
    fetch_article_content,
    is_placeholder,
)
from stocknews.models.domain import Article, ContentResult, FeedSource, FetchOutcome
from stocknews.persistence import ViewStateStore
from stocknews.repositories.articles import ArticleStore, StorageError
from stocknews.settings import Settings
from stocknews.tasks.collect import fetch_all_feeds
from stocknews.utils.logging import get_logger

logger = get_logger(__name__)

NO_ELIGIBLE_SOURCES = "All sources are rate-limited, try again later"


class Runtime:
    """Owns the app, the store and the fetcher for the lifetime of the loop.

    ``tick`` is synchronous and never waits on the network. Fetch tasks only
    communicate through the two queues, so backoff bookkeeping and the
    article list are changed by the loop alone.
    """

    def __init__(
        self,
        app: App,
        store: ArticleStore,
        fetcher: Fetcher,
        *,
        article_limit: int = 100,
        request_timeout: Optional[float] = None,
        content_retry_delay: float = RETRY_DELAY_SECONDS,
        user_agents: Sequence[str] = USER_AGENTS,
        poll_interval: float = 0.1,
        state_store: Optional[ViewStateStore] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.app = app
        self.store = store
        self.fetcher = fetcher
        self.article_limit = article_limit
        self.request_timeout = request_timeout
        self.content_retry_delay = content_retry_delay
        self.user_agents = tuple(user_agents)
        self.poll_interval = poll_interval
        self.state_store = state_store
        self._sleep = sleep

        self._feeds: "asyncio.Queue[List[FetchOutcome]]" = asyncio.Queue()
        self._content: "asyncio.Queue[ContentResult]" = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()
        self._pending_content: Dict[str, int] = {}
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        app: App,
        store: ArticleStore,
        fetcher: Fetcher,
        settings: Settings,
        state_store: Optional[ViewStateStore] = None,
    ) -> "Runtime":
        return cls(
            app,
            store,
            fetcher,
            article_limit=settings.article_limit,
            request_timeout=settings.request_timeout_seconds,
            content_retry_delay=settings.content_retry_delay_ms / 1000,
            poll_interval=settings.poll_interval_ms / 1000,
            state_store=state_store,
        )

    # -- background work --------------------------------------------------

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def _fetch_batch(self, sources: List[FeedSource]) -> None:
        try:
            outcomes = await fetch_all_feeds(self.fetcher, sources, timeout=self.request_timeout)
        except Exception as exc:  # noqa: BLE001 - the batch must always report back
            logger.exception("runtime.batch_failed")
            outcomes = [FetchOutcome(source=s.name, error=f"Unexpected error for {s.name}: {exc}") for s in sources]
        await self._feeds.put(outcomes)

    async def _fetch_content(self, url: str) -> None:
        try:
            text = await fetch_article_content(
                self.fetcher,
                url,
                user_agents=self.user_agents,
                retry_delay=self.content_retry_delay,
                timeout=self.request_timeout,
                sleep=self._sleep,
            )
        except ContentFetchError as exc:
            logger.warning("content.failed", extra={"url": url, "error": str(exc)})
            text = failure_placeholder(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("content.unexpected_error", extra={"url": url})
            text = failure_placeholder(str(exc))
        await self._content.put(ContentResult(url=url, text=text, ok=not is_placeholder(text)))

    # -- user actions -----------------------------------------------------

    def request_refresh(self, *, manual: bool = True) -> bool:
        """Start a batch over the eligible sources; False when nothing was started."""
        if self.app.is_fetching:
            return False
        sources = self.app.eligible_sources()
        if not sources:
            self.app.last_refresh = self.app.limiter.now()
            if manual:
                self.app.set_status(NO_ELIGIBLE_SOURCES)
            return False
        self.app.begin_refresh()
        self.app.set_status(f"Refreshing {len(sources)} sources...")
        logger.info("runtime.refresh", extra={"sources": [s.name for s in sources], "manual": manual})
        self._spawn(self._fetch_batch([s.model_copy() for s in sources]))
        return True

    def open_selected(self, retry: bool = False) -> Optional[Article]:
        """Open the selected article, loading its body from cache, store or network.

        A URL whose retrieval failed earlier is only fetched again with ``retry``.
        """
        article = self.app.selected_article()
        if article is None:
            return None
        if retry:
            self.app.retry_content(article.url)
        if not article.read:
            try:
                self.store.mark_read(article.id)
            except StorageError as exc:
                logger.error("store.error", extra={"op": "mark_read", "error": str(exc)})
            self.app.mark_read_local(article.id)

        missing = self.app.enter_reader()
        if missing is None:
            return article
        try:
            body = self.store.get_body(missing.id)
        except StorageError as exc:
            logger.error("store.error", extra={"op": "get_body", "error": str(exc)})
            body = None
        if body:
            self.app.cache_content(missing.url, body)
        elif missing.url not in self._pending_content:
            self._pending_content[missing.url] = missing.id
            self._spawn(self._fetch_content(missing.url))
        return article

    def toggle_bookmark(self) -> Optional[bool]:
        article = self.app.reader_article or self.app.selected_article()
        if article is None:
            return None
        try:
            bookmarked = self.store.toggle_bookmark(article.id)
        except StorageError as exc:
            logger.error("store.error", extra={"op": "toggle_bookmark", "error": str(exc)})
            return None
        self.app.set_bookmark_local(article.id, bookmarked)
        self.app.set_status("Bookmarked" if bookmarked else "Bookmark removed")
        if self.app.view_mode is ViewMode.BOOKMARKS:
            self.reload_articles()
        return bookmarked

    def cycle_filter(self) -> None:
        self.app.cycle_filter()
        self.reload_articles()

    def show(self, mode: ViewMode) -> None:
        self.app.set_view(mode)
        if mode in (ViewMode.FEED, ViewMode.BOOKMARKS):
            self.reload_articles()

    # -- consumer ---------------------------------------------------------

    def reload_articles(self) -> None:
        """Reload the visible article list from the store."""
        try:
            if self.app.view_mode is ViewMode.BOOKMARKS:
                articles = self.store.bookmarked(self.article_limit)
            else:
                articles = self.store.query(self.app.filter_mode, self.app.watchlist, self.article_limit)
            total = self.store.total_count()
            unread = self.store.unread_count()
        except StorageError as exc:
            logger.error("store.error", extra={"op": "reload", "error": str(exc)})
            return
        self.app.set_articles(articles, total=total, unread=unread)

    def _drain_feeds(self) -> bool:
        drained = False
        while True:
            try:
                outcomes = self._feeds.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            self.app.apply_fetch_outcomes(outcomes, self.store)
            drained = True

    def _drain_content(self) -> None:
        while True:
            try:
                result = self._content.get_nowait()
            except asyncio.QueueEmpty:
                return
            article_id = self._pending_content.pop(result.url, None)
            self.app.cache_content(result.url, result.text)
            if result.ok and article_id is not None:
                try:
                    self.store.save_body(article_id, result.text)
                except StorageError as exc:
                    logger.error("store.error", extra={"op": "save_body", "error": str(exc)})

    def tick(self) -> None:
        if self._drain_feeds():
            self.reload_articles()
        self._drain_content()
        if self.app.refresh_due():
            self.request_refresh(manual=False)
        if self.app.projector.is_dirty:
            self.app.recompute_projection()

    async def settle(self) -> None:
        """Wait for every background task, then apply its results."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.tick()

    async def run(self, stop: asyncio.Event) -> None:
        self.reload_articles()
        try:
            while not stop.is_set():
                self.tick()
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self.state_store is not None:
                self.state_store.save(self.app.to_snapshot())

    async def aclose(self) -> None:
        """Drop outstanding work and release the fetcher."""
        if self._closed:
            return
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        close = getattr(self.fetcher, "aclose", None)
        if close is not None:
            await close()
