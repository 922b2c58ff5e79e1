"""Keyword-based tagging of feed titles: IDX tickers and sentiment."""

from __future__ import annotations

import re
from typing import List

from stocknews.models.domain import Sentiment

# IDX tickers are four uppercase letters (BBCA, TLKM, BBRI, ...)
TICKER_RE = re.compile(r"\b[A-Z]{4}\b")

TICKER_STOPLIST = frozenset(
    {
        "DARI", "YANG", "AKAN", "BISA", "JADI", "BARU", "HARI", "JUGA",
        "OLEH", "PADA", "PARA", "LAGI", "BAIK", "BAGI", "KATA", "SAAT",
        "TAPI", "MAKA", "DEMI", "AGAR", "JIKA", "SOAL", "THIS", "THAT",
        "WITH", "FROM", "HAVE", "BEEN", "WILL", "THEY", "WHAT", "WHEN",
        "INTO", "THAN", "THEM", "EACH", "JUST", "ONLY", "ALSO", "VERY",
        "MORE", "SOME", "OVER", "SUCH", "BACK", "YEAR", "MOST",
    }
)

POSITIVE_KEYWORDS = (
    "naik", "melonjak", "menguat", "rally", "cetak laba", "rekor",
    "surplus", "tumbuh", "positif", "optimis", "bullish",
    "melesat", "melejit", "cuan", "untung", "laba bersih",
    "beats", "record", "upgrade", "growth", "raises",
    "outperform", "buy", "overweight",
)

NEGATIVE_KEYWORDS = (
    "turun", "anjlok", "melemah", "jatuh", "rugi", "defisit",
    "resesi", "pesimis", "bearish", "koreksi", "tekanan",
    "merosot", "ambles", "buntung", "gagal bayar",
    "misses", "downgrade", "layoffs", "slows", "cuts",
    "underperform", "sell", "underweight",
)


def extract_tickers(text: str) -> List[str]:
    """Return candidate tickers in order of appearance, duplicates kept."""
    return [m.group(0) for m in TICKER_RE.finditer(text) if m.group(0) not in TICKER_STOPLIST]


def analyze_sentiment(title: str) -> Sentiment:
    lower = title.lower()
    pos = sum(1 for word in POSITIVE_KEYWORDS if word in lower)
    neg = sum(1 for word in NEGATIVE_KEYWORDS if word in lower)
    if pos > neg:
        return Sentiment.POSITIVE
    if neg > pos:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL
