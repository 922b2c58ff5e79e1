"""Article body retrieval: user-agent rotation plus ordered extraction fallbacks.

Retrieval tries each client identity in turn. A transport failure waits a
short delay and moves to the next identity. Every successful response goes
through the whole extraction chain afresh:

1. site-specific then generic content containers (first one with enough text),
2. every paragraph longer than a small fragment,
3. the page's ``og:description`` / ``description`` meta tag,
4. the ``EXTRACTION_FAILED`` sentinel.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence

from bs4 import BeautifulSoup

from stocknews.utils.logging import get_logger

from .base import ContentFetchError, Fetcher, NetworkError

logger = get_logger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
)

# Most specific first: Indonesian news sites, then generic article markup.
CONTENT_SELECTORS = (
    ".detail__body-text",
    ".read__content",
    ".detail_text",
    ".article__content",
    ".content_detail",
    ".inner-article",
    ".article-content-body__item-content",
    ".TextStory-text",
    ".show-text",
    "article .content",
    "article .entry-content",
    "article .post-content",
    ".article-content",
    ".article-body",
    ".detail-content",
    ".content-detail",
    '[itemprop="articleBody"]',
    "article p",
    ".entry-content p",
    ".post-content p",
    "main article",
    "article",
    "main .content",
    "main",
)

META_SELECTORS = (
    'meta[property="og:description"]',
    'meta[name="description"]',
)

MIN_SELECTOR_CHARS = 100
MIN_PARAGRAPH_CHARS = 20
MIN_META_CHARS = 50
RETRY_DELAY_SECONDS = 0.5

OPEN_EXTERNALLY_HINT = "Press [o] to open in browser."
EXTRACTION_FAILED = f"Could not extract article content. {OPEN_EXTERNALLY_HINT}"
_FAILURE_PREFIX = "Failed to load article: "

Sleep = Callable[[float], Awaitable[None]]


def failure_placeholder(error: str) -> str:
    return f"{_FAILURE_PREFIX}{error}\n\n{OPEN_EXTERNALLY_HINT}"


def is_placeholder(text: str) -> bool:
    """True for the sentinel and failure texts, which are not article bodies."""
    return text == EXTRACTION_FAILED or text.startswith(_FAILURE_PREFIX)


def clean_article_text(text: str) -> str:
    lines: List[str] = []
    prev_empty = False
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            if not prev_empty:
                lines.append("")
                prev_empty = True
            continue
        lines.append(stripped)
        prev_empty = False
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def _from_selectors(soup: BeautifulSoup) -> Optional[str]:
    for selector in CONTENT_SELECTORS:
        texts = [s for el in soup.select(selector) for s in el.stripped_strings]
        combined = "\n".join(texts)
        if len(combined) > MIN_SELECTOR_CHARS:
            return clean_article_text(combined)
    return None


def _from_paragraphs(soup: BeautifulSoup) -> Optional[str]:
    paragraphs = [p.get_text().strip() for p in soup.find_all("p")]
    paragraphs = [p for p in paragraphs if len(p) > MIN_PARAGRAPH_CHARS]
    if not paragraphs:
        return None
    return clean_article_text("\n\n".join(paragraphs))


def extract_meta_description(soup: BeautifulSoup) -> Optional[str]:
    for selector in META_SELECTORS:
        el = soup.select_one(selector)
        if el is None:
            continue
        content = str(el.get("content") or "").strip()
        if content:
            return content
    return None


def extract_article_text(html: str | bytes) -> str:
    """Run the extraction chain over one document. Never raises."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    text = _from_selectors(soup) or _from_paragraphs(soup)
    if text:
        return text
    description = extract_meta_description(soup)
    if description and len(description) > MIN_META_CHARS:
        return description
    return EXTRACTION_FAILED


async def fetch_article_content(
    fetcher: Fetcher,
    url: str,
    *,
    user_agents: Sequence[str] = USER_AGENTS,
    retry_delay: float = RETRY_DELAY_SECONDS,
    timeout: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> str:
    """Return extracted body text for ``url``.

    Returns ``EXTRACTION_FAILED`` when pages were received but nothing could
    be extracted from any of them. Raises ``ContentFetchError`` with the last
    transport error when no identity got a response at all.
    """
    last_error = ""
    responded = False
    for attempt, agent in enumerate(user_agents, start=1):
        try:
            payload = await fetcher.get(url, headers={"User-Agent": agent}, timeout=timeout)
        except NetworkError as exc:
            last_error = f"Attempt {attempt}: {exc}"
            logger.info("content.retry", extra={"url": url, "attempt": attempt, "error": str(exc)})
        else:
            responded = True
            text = await asyncio.to_thread(extract_article_text, payload)
            if text != EXTRACTION_FAILED:
                logger.info("content.extracted", extra={"url": url, "attempt": attempt, "chars": len(text)})
                return text
            last_error = "Content extraction failed"
        if attempt < len(user_agents):
            await sleep(retry_delay)

    if responded:
        return EXTRACTION_FAILED
    raise ContentFetchError(last_error or "no user agents configured")
