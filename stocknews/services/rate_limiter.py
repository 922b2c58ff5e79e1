"""Per-source fetch eligibility with exponential backoff."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

BACKOFF_BASE_SECONDS = 60.0
BACKOFF_MAX_EXPONENT = 6

Clock = Callable[[], float]


def backoff_seconds(consecutive_failures: int) -> float:
    """Backoff window after ``consecutive_failures`` failures in a row.

    1 -> 120s, 2 -> 240s, ... capped at 60 * 2**6 = 3840s.
    """
    if consecutive_failures <= 0:
        return 0.0
    return BACKOFF_BASE_SECONDS * 2 ** min(consecutive_failures, BACKOFF_MAX_EXPONENT)


@dataclass
class SourceFetchState:
    """Bookkeeping for one source. Times are monotonic clock readings."""

    last_fetch: Optional[float] = None
    consecutive_failures: int = 0
    backoff_until: Optional[float] = None

    def can_fetch(self, min_interval: float, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        if self.backoff_until is not None and now < self.backoff_until:
            return False
        if self.last_fetch is None:
            return True
        return now - self.last_fetch >= min_interval

    def record_success(self, now: Optional[float] = None) -> None:
        self.last_fetch = time.monotonic() if now is None else now
        self.consecutive_failures = 0
        self.backoff_until = None

    def record_failure(self, now: Optional[float] = None) -> None:
        now = time.monotonic() if now is None else now
        self.consecutive_failures += 1
        self.backoff_until = now + backoff_seconds(self.consecutive_failures)
        # a failed attempt still counts against the minimum interval
        self.last_fetch = now


class RateLimiter:
    """Owns the ``source name -> SourceFetchState`` map.

    Only the consumer loop touches this object; fetch tasks report outcomes
    through a queue instead of writing here.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._states: Dict[str, SourceFetchState] = {}

    def now(self) -> float:
        return self._clock()

    def state(self, name: str) -> Optional[SourceFetchState]:
        return self._states.get(name)

    def is_eligible(self, name: str, min_interval: float) -> bool:
        state = self._states.get(name)
        if state is None:
            return True
        return state.can_fetch(min_interval, self._clock())

    def record(self, name: str, ok: bool) -> SourceFetchState:
        state = self._states.setdefault(name, SourceFetchState())
        if ok:
            state.record_success(self._clock())
        else:
            state.record_failure(self._clock())
        return state

    def backoff_remaining(self, name: str) -> float:
        state = self._states.get(name)
        if state is None or state.backoff_until is None:
            return 0.0
        return max(0.0, state.backoff_until - self._clock())

    def forget(self, name: str) -> None:
        self._states.pop(name, None)

    def rename(self, old: str, new: str) -> None:
        if old == new or old not in self._states:
            return
        self._states[new] = self._states.pop(old)

    def __contains__(self, name: object) -> bool:
        return name in self._states

    def __len__(self) -> int:
        return len(self._states)
