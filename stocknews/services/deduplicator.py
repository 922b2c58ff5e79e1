"""Near-duplicate story detection by normalized title word sets.

Titles are reduced to lowercase word sets (punctuation stripped, one-letter
tokens and common Indonesian/English function words dropped) and compared by
Jaccard index. Clustering is greedy over the input order: the earliest title
not yet claimed opens a cluster and absorbs every later unclaimed title whose
similarity reaches the threshold. Claimed titles never open clusters and are
never compared again, so the outcome depends on ordering by construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, List, Sequence, Tuple

DEFAULT_THRESHOLD = 0.7

STOP_WORDS = frozenset(
    {
        # Indonesian
        "dan", "di", "ke", "dari", "yang", "untuk", "dengan", "ini", "itu",
        # English
        "the", "a", "an", "in", "on", "of", "to", "and", "for", "is", "at",
    }
)


@dataclass(frozen=True)
class Cluster:
    """Indices judged to report the same story."""

    representative: int
    duplicates: Tuple[int, ...] = ()

    @property
    def members(self) -> Tuple[int, ...]:
        return (self.representative,) + self.duplicates


def normalize_title(title: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch == " " else " " for ch in title.lower())
    return " ".join(w for w in cleaned.split() if len(w) > 1 and w not in STOP_WORDS)


def _word_set(title: str) -> FrozenSet[str]:
    return frozenset(normalize_title(title).split())


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def title_similarity(a: str, b: str) -> float:
    return jaccard(_word_set(a), _word_set(b))


def cluster_titles(titles: Sequence[str], threshold: float = DEFAULT_THRESHOLD) -> List[Cluster]:
    words = [_word_set(t) for t in titles]
    consumed = [False] * len(titles)
    clusters: List[Cluster] = []

    for i in range(len(titles)):
        if consumed[i]:
            continue
        dupes: List[int] = []
        for j in range(i + 1, len(titles)):
            if consumed[j]:
                continue
            if jaccard(words[i], words[j]) >= threshold:
                dupes.append(j)
                consumed[j] = True
        clusters.append(Cluster(representative=i, duplicates=tuple(dupes)))
    return clusters
