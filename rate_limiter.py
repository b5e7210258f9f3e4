"""
rate_limiter.py — per-client fixed-window request limiting.

A client gets RATE_LIMIT_MAX_REQUESTS requests per window. The window starts
at the client's first request and the count resets to 1 on the first request
after it expires. Bursts straddling a window boundary are possible; that is
the accepted cost of a fixed window.

The store is an object the server owns (and tests inject), not a module
global. Swap InMemoryRateLimitStore for a shared store to limit across
processes.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimited(Exception):
    """Transient: the caller should back off for retry_after seconds."""

    def __init__(self, retry_after: int):
        super().__init__(f"Rate limit exceeded; retry after {retry_after}s")
        self.retry_after = retry_after


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after: int = 0


class RateLimitStore(ABC):
    """Interface every rate-limit backend implements."""

    max_requests: int
    window_secs: int

    @abstractmethod
    def hit(self, key: str, now: Optional[float] = None) -> RateLimitDecision:
        """Record one request for key and say whether it is allowed."""
        ...

    @abstractmethod
    def sweep(self, now: Optional[float] = None) -> int:
        """Drop expired entries. Returns how many were removed."""
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    def check(self, key: str) -> None:
        """Raise RateLimited if this request is over the limit."""
        decision = self.hit(key)
        if not decision.allowed:
            raise RateLimited(decision.retry_after)


class InMemoryRateLimitStore(RateLimitStore):

    def __init__(self, max_requests: int = 20, window_secs: int = 60, max_entries: int = 10_000):
        self.max_requests = max_requests
        self.window_secs  = window_secs
        self.max_entries  = max_entries
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, now: Optional[float] = None) -> RateLimitDecision:
        now = time.monotonic() if now is None else now
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                if entry is None and len(self._entries) >= self.max_entries:
                    self._sweep_locked(now)
                self._entries[key] = RateLimitEntry(count=1, reset_at=now + self.window_secs)
                return RateLimitDecision(True, 1)

            if entry.count >= self.max_requests:
                logger.info("Rate limit hit for %s (%d requests)", key, entry.count)
                return RateLimitDecision(False, entry.count, retry_after=self.window_secs)

            entry.count += 1
            return RateLimitDecision(True, entry.count)

    def sweep(self, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now > e.reset_at]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug("Evicted %d expired rate-limit entries", len(expired))
        return len(expired)

    def get(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            return self._entries.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
