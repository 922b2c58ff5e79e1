"""Headless command line runner.

Usage:
  stocknews BBCA TLKM --once            # one refresh, print the deduplicated list
  stocknews --once --read 1             # ... and print the body of row 1
  stocknews --refresh 120               # keep refreshing, print status updates

Reads configuration from the environment / .env via pydantic settings.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from typing import Any, Dict, List, Optional

from stocknews.app import App
from stocknews.connectors.base import HttpxFetcher
from stocknews.db.session import get_engine, upgrade_database
from stocknews.models.domain import FilterMode, ThemeName, default_sources
from stocknews.persistence import JsonSourceRepository, ViewStateStore
from stocknews.repositories.articles import SqlArticleStore
from stocknews.runtime import Runtime
from stocknews.settings import Settings, get_settings
from stocknews.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stocknews", description="Stock news feed aggregator")
    parser.add_argument("tickers", nargs="*", help="Watchlist tickers (replace STOCKNEWS_WATCHLIST)")
    parser.add_argument("--theme", choices=[t.value for t in ThemeName], help="Color theme")
    parser.add_argument("--refresh", type=int, metavar="SECONDS", help="Auto refresh interval")
    parser.add_argument("--once", action="store_true", help="Refresh once, print the list and exit")
    parser.add_argument("--search", help="Initial search query")
    parser.add_argument("--ticker", help="Initial ticker filter")
    parser.add_argument("--watchlist-only", action="store_true", help="Start in watchlist filter mode")
    parser.add_argument("--read", type=int, metavar="ROW", help="With --once: print the body of row ROW (1-based)")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    update: Dict[str, Any] = {}
    if args.tickers:
        update["watchlist"] = [t.strip().upper() for t in args.tickers if t.strip()]
    if args.theme:
        update["theme"] = args.theme
    if args.refresh:
        update["refresh_interval_seconds"] = args.refresh
    return settings.model_copy(update=update) if update else settings


def build_app(settings: Settings, sources_repo: JsonSourceRepository) -> App:
    sources = sources_repo.load()
    if sources is None:
        sources = default_sources()
        if not sources_repo.exists():
            sources_repo.save(sources)
    return App(
        sources=sources,
        watchlist=settings.watchlist,
        min_fetch_interval=settings.min_fetch_interval_seconds,
        refresh_interval=settings.refresh_interval_seconds,
        theme=ThemeName.parse(settings.theme),
        source_repository=sources_repo,
    )


def format_rows(app: App, limit: Optional[int] = None) -> List[str]:
    lines: List[str] = []
    for n, row in enumerate(app.current_rows()[:limit], start=1):
        article = app.articles[row.index]
        tickers = f" [{', '.join(article.tickers)}]" if article.tickers else ""
        line = f"{n:>3}. {article.sentiment.label} {article.source}: {article.title}{tickers}"
        if row.dup_count:
            line += f" (+{row.dup_count}: {', '.join(row.other_sources)})"
        lines.append(line)
    return lines


async def _run_once(runtime: Runtime, read_row: Optional[int]) -> int:
    app = runtime.app
    runtime.reload_articles()
    runtime.request_refresh()
    await runtime.settle()
    for line in format_rows(app):
        print(line)
    status = app.status_text()
    if status:
        print(status)
    if read_row is not None:
        rows = app.current_rows()
        if not 1 <= read_row <= len(rows):
            print(f"No row {read_row}")
            return 1
        app.selected_index = read_row - 1
        article = runtime.open_selected()
        await runtime.settle()
        if article is not None:
            print(f"\n{article.title}\n{article.url}\n")
            print(app.reader_content or "")
    return 0


async def _run_forever(runtime: Runtime) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    async def report() -> None:
        last: Optional[str] = None
        while not stop.is_set():
            status = runtime.app.status_text()
            if status and status != last:
                print(status, flush=True)
            last = status
            await asyncio.sleep(runtime.poll_interval)

    reporter = asyncio.create_task(report())
    try:
        await runtime.run(stop)
    finally:
        reporter.cancel()
    return 0


async def _main(settings: Settings, args: argparse.Namespace) -> int:
    upgrade_database(settings.resolved_database_url)
    store = SqlArticleStore(get_engine(settings), create_schema=False)
    state_store = ViewStateStore(settings.state_path)
    app = build_app(settings, JsonSourceRepository(settings.sources_path))
    app.restore_from_snapshot(state_store.load())
    if args.theme:
        app.theme = ThemeName.parse(args.theme)
    if args.watchlist_only:
        app.set_filter_mode(FilterMode.WATCHLIST)
    if args.ticker:
        app.set_ticker_filter(args.ticker)
    if args.search is not None:
        app.set_search(args.search)

    fetcher = HttpxFetcher(timeout=settings.request_timeout_seconds)
    runtime = Runtime.from_settings(app, store, fetcher, settings, state_store=state_store)
    try:
        if args.once:
            return await _run_once(runtime, args.read)
        return await _run_forever(runtime)
    finally:
        await runtime.aclose()


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = apply_overrides(get_settings(), args)
    except RuntimeError as exc:
        print(exc)
        return 2
    configure_logging(settings.log_level, settings.log_json)
    logger.info("cli.start", extra={"watchlist": settings.watchlist, "once": args.once})
    try:
        return asyncio.run(_main(settings, args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
