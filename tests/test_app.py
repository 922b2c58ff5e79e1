from __future__ import annotations

from typing import List, Optional, Sequence

import pytest

from stocknews.app import App, ViewMode
from stocknews.connectors.content import EXTRACTION_FAILED, failure_placeholder
from stocknews.input_mode import NORMAL, DeleteConfirm, Search, SourceField, SourceForm
from stocknews.models.domain import (
    Article,
    FeedSource,
    FetchOutcome,
    FetchReport,
    FilterMode,
    ThemeName,
    ViewState,
    default_sources,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 5000.0

    def __call__(self) -> float:
        return self.now


class MemorySourceRepository:
    def __init__(self) -> None:
        self.saved: List[List[FeedSource]] = []

    def load(self) -> Optional[List[FeedSource]]:
        return self.saved[-1] if self.saved else None

    def save(self, sources: Sequence[FeedSource]) -> None:
        self.saved.append(list(sources))


class MemoryStore:
    def __init__(self) -> None:
        self.urls: List[str] = []

    def insert(self, article: Article) -> bool:
        if article.url in self.urls:
            return False
        self.urls.append(article.url)
        return True


def _article(i: int, title: str, source: str = "Kontan", tickers: Optional[List[str]] = None) -> Article:
    return Article(
        id=i,
        title=title,
        source=source,
        url=f"https://example.com/{i}",
        tickers=tickers or [],
        published_at=1_700_000_000 - i,
        fetched_at=1_700_000_000,
    )


ARTICLES = [
    _article(1, "Saham BBCA Naik 5 Persen Hari Ini", "Kontan", ["BBCA"]),
    _article(2, "Saham BBCA Naik 5% Hari Ini", "Bisnis.com", ["BBCA"]),
    _article(3, "TLKM bagi dividen jumbo", "CNBC Indo", ["TLKM"]),
    _article(4, "Rupiah menguat terhadap dolar", "Kontan"),
]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def repo() -> MemorySourceRepository:
    return MemorySourceRepository()


@pytest.fixture()
def app(clock, repo) -> App:
    app = App(sources=default_sources(), watchlist=["bbca"], source_repository=repo, clock=clock)
    app.set_articles(ARTICLES)
    return app


def test_projection_folds_duplicates(app):
    rows = app.current_rows()

    assert len(rows) == 3
    assert rows[0].dup_count == 1
    assert rows[0].other_sources == ("Bisnis.com",)
    assert app.selected_article().title == "Saham BBCA Naik 5 Persen Hari Ini"


def test_recompute_is_idempotent(app):
    first = app.recompute_projection()
    assert app.recompute_projection() == first
    assert app.recompute_projection(force=True) == first


def test_selection_is_clamped_after_recompute(app):
    app.select_last()
    assert app.selected_index == 2

    app.set_articles(ARTICLES[:1])
    app.recompute_projection()
    assert app.selected_index == 0

    app.set_articles([])
    assert app.current_rows() == []
    assert app.selected_index == 0
    assert app.selected_article() is None


def test_navigation_stays_in_bounds(app):
    app.select_prev()
    assert app.selected_index == 0
    for _ in range(10):
        app.select_next()
    assert app.selected_index == 2
    app.select_first()
    assert app.selected_index == 0


def test_filters_reset_selection_and_mark_dirty(app):
    app.select_last()
    app.current_rows()

    app.set_ticker_filter("tlkm")
    assert app.ticker_filter == "TLKM"
    assert app.selected_index == 0
    assert app.projector.is_dirty
    assert [app.articles[r.index].id for r in app.current_rows()] == [3]

    app.set_ticker_filter(None)
    app.set_search("rupiah")
    assert [app.articles[r.index].id for r in app.current_rows()] == [4]


def test_cycle_filter_order(app):
    assert [app.cycle_filter() for _ in range(4)] == [
        FilterMode.WATCHLIST,
        FilterMode.UNREAD,
        FilterMode.SOURCE,
        FilterMode.ALL,
    ]


def test_watchlist_filter_uses_uppercased_watchlist(app):
    app.set_filter_mode(FilterMode.WATCHLIST)
    rows = app.current_rows()
    assert [app.articles[r.index].id for r in rows] == [1]


def test_filter_by_selected_ticker(app):
    assert app.filter_by_selected_ticker() == "BBCA"
    assert app.ticker_filter == "BBCA"

    app.clear_ticker_filter()
    app.select_last()
    assert app.filter_by_selected_ticker() is None
    assert app.status_text() == "No ticker detected in this article"


def test_cached_body_becomes_searchable(app):
    app.set_search("valuasi")
    assert app.current_rows() == []

    app.cache_content("https://example.com/3", "Analis menyebut valuasi TLKM murah.")

    assert app.projector.is_dirty
    assert [app.articles[r.index].id for r in app.current_rows()] == [3]
    assert app.content_for("https://example.com/3").startswith("Analis")


def test_placeholder_text_marks_url_failed(app):
    url = "https://example.com/1"
    app.cache_content(url, failure_placeholder("Attempt 3: HTTP 403"))
    app.cache_content("https://example.com/2", EXTRACTION_FAILED)

    assert url in app.failed_content_urls
    assert "https://example.com/2" in app.failed_content_urls
    assert app.content_for(url) is None

    # reopening shows the earlier failure without asking for a refetch
    assert app.enter_reader() is None
    assert app.reader_content.startswith("Failed to load article")

    app.retry_content(url)
    assert url not in app.failed_content_urls


def test_enter_reader_reports_missing_body(app):
    article = app.enter_reader()

    assert article is not None and article.id == 1
    assert app.view_mode is ViewMode.READER
    assert app.content_loading

    app.cache_content(article.url, "Isi lengkap")
    assert app.reader_content == "Isi lengkap"
    assert not app.content_loading

    app.leave_reader()
    assert app.view_mode is ViewMode.FEED
    assert app.enter_reader() is None
    assert app.reader_content == "Isi lengkap"


def test_add_source_persists_and_rejects_duplicates(app, repo):
    assert app.add_source("Detik Finance", "https://finance.detik.com/rss")
    assert app.sources[-1].name == "Detik Finance"
    assert repo.saved[-1] == app.sources

    assert not app.add_source("Kontan", "https://other.test/rss")
    assert app.status_text() == "Source already exists: Kontan"
    assert len(app.sources) == 5


def test_update_source_moves_rate_limit_state(app, repo):
    app.limiter.record("Kontan", ok=False)

    assert app.update_source(1, "Kontan Investasi", "https://investasi.kontan.co.id/rss")

    assert app.sources[1].name == "Kontan Investasi"
    assert "Kontan" not in app.limiter
    assert not app.limiter.is_eligible("Kontan Investasi", 60)
    assert not app.update_source(1, "Bisnis.com", "https://x.test")
    assert not app.update_source(99, "x", "https://x.test")


def test_remove_and_toggle_source(app, repo):
    app.limiter.record("Kontan", ok=True)
    assert app.remove_source(1)
    assert [s.name for s in app.sources] == ["Bisnis.com", "CNBC Indo", "IDNFinancials"]
    assert "Kontan" not in app.limiter

    assert app.toggle_source(0) is False
    assert not app.sources[0].enabled
    assert repo.saved[-1][0].enabled is False
    assert app.toggle_source(10) is None


def test_every_source_change_marks_projection_dirty(app):
    app.current_rows()
    app.toggle_source(0)
    assert app.projector.is_dirty


def test_all_sources_disabled_means_nothing_eligible(app):
    for i in range(len(app.sources)):
        app.toggle_source(i)
    assert app.eligible_sources() == []


def test_fetch_results_update_backoff_and_status(app, clock):
    store = MemoryStore()
    outcomes = [
        FetchOutcome(source="Kontan", articles=(ARTICLES[0], ARTICLES[3])),
        FetchOutcome(source="Bisnis.com", error="Network error for Bisnis.com: refused"),
    ]
    app.begin_refresh()

    assert app.apply_fetch_outcomes(outcomes, store) == 2

    assert not app.is_fetching
    assert app.last_fetch_results == [
        FetchReport(source="Kontan", inserted=2),
        FetchReport(source="Bisnis.com", error="Network error for Bisnis.com: refused"),
    ]
    assert app.status_text() == "2 new articles fetched | failed: Network error for Bisnis.com: refused"
    assert app.limiter.backoff_remaining("Bisnis.com") == pytest.approx(120)
    assert [s.name for s in app.eligible_sources()] == ["CNBC Indo", "IDNFinancials"]


def test_reports_for_removed_or_renamed_sources_are_dropped(app):
    app.begin_refresh()
    app.remove_source(1)
    app.update_source(0, "Bisnis Indonesia", "https://www.bisnis.com/rss")

    app.record_fetch_reports(
        [
            FetchReport(source="Bisnis.com", error="Network error for Bisnis.com: refused"),
            FetchReport(source="Kontan", error="Network error for Kontan: refused"),
            FetchReport(source="CNBC Indo", error="Network error for CNBC Indo: refused"),
        ]
    )

    assert "Bisnis.com" not in app.limiter
    assert "Kontan" not in app.limiter
    assert app.limiter.backoff_remaining("CNBC Indo") == pytest.approx(120)
    assert not app.is_fetching


def test_no_new_articles_status(app):
    app.record_fetch_reports([FetchReport(source="Kontan")])
    assert app.status_text() == "Feeds refreshed, no new articles"


def test_status_expires(app, clock):
    app.set_status("hello")
    assert app.status_text() == "hello"
    clock.now += 4.9
    assert app.status_text() == "hello"
    assert app.status_text(now=clock.now + 0.2) is None
    clock.now += 1
    assert app.status_text() is None


def test_refresh_due(app, clock):
    assert app.refresh_due()
    app.begin_refresh()
    assert not app.refresh_due()
    app.record_fetch_reports([])
    clock.now += 299
    assert not app.refresh_due()
    clock.now += 1
    assert app.refresh_due()


def test_search_input_flow(app):
    app.start_search()
    for ch in "rupiah":
        app.type_char(ch)
    assert app.input_mode == Search(buffer="rupiah")

    app.submit_search()
    assert app.input_mode is NORMAL
    assert app.search_query == "rupiah"
    assert len(app.current_rows()) == 1

    app.start_search()
    app.cancel_input()
    assert app.search_query == ""


def test_add_source_form_flow(app):
    app.start_add_source()
    for ch in "Detik":
        app.type_char(ch)
    assert not app.confirm_source_form()
    assert isinstance(app.input_mode, SourceForm) and app.input_mode.field is SourceField.URL
    for ch in "https://detik.test/rss":
        app.type_char(ch)

    assert app.confirm_source_form()
    assert app.input_mode is NORMAL
    assert app.sources[-1] == FeedSource(name="Detik", url="https://detik.test/rss")


def test_edit_source_form_prefills(app):
    app.start_edit_source(2)
    form = app.input_mode
    assert isinstance(form, SourceForm) and form.name == "CNBC Indo" and form.index == 2

    app.switch_field()
    app.backspace()
    app.backspace()
    app.backspace()
    app.confirm_source_form()

    assert app.sources[2].url == "https://www.cnbcindonesia.com/market/"


def test_source_cursor_drives_edit_and_delete(app):
    app.move_source_cursor(2)
    assert app.source_index == 2
    app.move_source_cursor(10)
    assert app.source_index == 3
    app.move_source_cursor(-10)
    assert app.source_index == 0

    app.move_source_cursor(1)
    app.start_edit_source()
    assert app.input_mode.name == "Kontan"
    app.cancel_input()
    app.start_delete_source()
    assert app.input_mode == DeleteConfirm(index=1)


def test_delete_confirmation(app):
    app.start_delete_source(0)
    assert app.input_mode == DeleteConfirm(index=0)
    app.cancel_input()
    assert app.input_mode is NORMAL
    assert len(app.sources) == 4

    app.start_delete_source(0)
    assert app.confirm_delete()
    assert app.sources[0].name == "Kontan"


def test_snapshot_round_trip(clock):
    app = App(sources=default_sources(), clock=clock)
    app.set_filter_mode(FilterMode.UNREAD)
    app.set_search("bbca")
    app.set_ticker_filter("BBCA")
    app.cycle_theme()
    app.selected_index = 3

    state = app.to_snapshot()
    assert state == ViewState(
        filter_mode="unread", search_query="bbca", ticker_filter="BBCA", theme_name="light", selected_index=3
    )

    restored = App(sources=default_sources(), clock=clock)
    restored.restore_from_snapshot(state)
    assert restored.filter_mode is FilterMode.UNREAD
    assert restored.search_query == "bbca"
    assert restored.ticker_filter == "BBCA"
    assert restored.theme is ThemeName.LIGHT
    assert restored.selected_index == 3
    assert restored.projector.is_dirty


def test_restore_from_empty_snapshot_keeps_defaults(clock):
    app = App(sources=default_sources(), theme=ThemeName.GRUVBOX, clock=clock)
    app.restore_from_snapshot(ViewState())
    assert app.theme is ThemeName.GRUVBOX
    assert app.filter_mode is FilterMode.ALL
