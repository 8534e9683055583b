# coinvault/ratelimit.py
"""
Sliding-window rate limiting for free-tier provider quotas.

Each limit dimension of a provider ("20 per minute", "10,000 per month") is its
own window record keyed ``<provider>:<limit name>``. A separate usage log per
provider (31 days deep) feeds the minute/hour/day/month usage view.

Usage:
    limiter = SlidingWindowRateLimiter()
    limits = [RateLimit("minute", 20, 60), RateLimit("month", 10_000, MONTH)]
    violated = limiter.try_acquire("coinranking", limits)
    if violated is not None:
        raise QuotaExceeded("coinranking", violated.name, limiter.retry_after(...))
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Sequence, Set

from pydantic import BaseModel

from coinvault.notices import NoticeBus
from coinvault.storage import KeyValueStore

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 60 * MINUTE
DAY = 24 * HOUR
MONTH = 30 * DAY
USAGE_RETENTION = 31 * DAY
PERSIST_MIN_WINDOW = HOUR
WARNING_RATIO = 0.9
STORAGE_KEY = "rate_windows"


@dataclass(frozen=True)
class RateLimit:
    name: str
    max_requests: int
    window_seconds: float


class UsageStats(BaseModel):
    provider: str
    last_minute: int
    last_hour: int
    last_day: int
    last_month: int
    limits: Dict[str, int]
    percentages: Dict[str, float]


class SlidingWindowRateLimiter:
    """
    Ordered timestamp list per key; on each check, timestamps older than the
    window are dropped and the remainder must be strictly below the maximum.

    All mutation happens under one threading lock, so ``try_acquire`` is an
    atomic check-and-record for event-loop and thread callers alike.
    """

    def __init__(self, clock: Callable[[], float] = time.time,
                 notices: Optional[NoticeBus] = None,
                 store: Optional[KeyValueStore] = None):
        self._clock = clock
        self._notices = notices
        self._store = store
        self._windows: Dict[str, Deque[float]] = {}
        self._lengths: Dict[str, float] = {}
        self._warned: Set[str] = set()
        self._lock = threading.Lock()

    # ----------------------------- primitive -----------------------------

    def can_make_request(self, key: str, max_requests: int, window_seconds: float) -> bool:
        with self._lock:
            return self._count(key, window_seconds, self._clock()) < max_requests

    def record_request(self, key: str) -> None:
        with self._lock:
            self._window(key).append(self._clock())

    # ----------------------------- provider level -----------------------------

    def try_acquire(self, provider: str, limits: Sequence[RateLimit]) -> Optional[RateLimit]:
        """Record one request in every dimension, or return the limit that blocks it."""
        with self._lock:
            now = self._clock()
            for limit in limits:
                key = _dim_key(provider, limit)
                self._lengths[key] = limit.window_seconds
                if self._count(key, limit.window_seconds, now) >= limit.max_requests:
                    return limit
            for limit in limits:
                self._window(_dim_key(provider, limit)).append(now)
            usage = self._window(provider)
            usage.append(now)
            self._lengths[provider] = USAGE_RETENTION
            self._prune_deque(usage, now - USAGE_RETENTION)
        if self._store is not None and any(
                limit.window_seconds >= PERSIST_MIN_WINDOW for limit in limits):
            self.save()
        self._maybe_warn(provider, limits)
        return None

    def retry_after(self, provider: str, limit: RateLimit) -> float:
        with self._lock:
            q = self._windows.get(_dim_key(provider, limit))
            if not q:
                return 0.0
            return max(0.0, q[0] + limit.window_seconds - self._clock())

    def count(self, provider: str, window_seconds: float) -> int:
        """Requests in the provider usage log within the trailing window."""
        with self._lock:
            q = self._windows.get(provider)
            if not q:
                return 0
            cutoff = self._clock() - window_seconds
            return sum(1 for ts in q if ts > cutoff)

    def usage(self, provider: str, limits: Sequence[RateLimit]) -> UsageStats:
        counts = {
            "last_minute": self.count(provider, MINUTE),
            "last_hour": self.count(provider, HOUR),
            "last_day": self.count(provider, DAY),
            "last_month": self.count(provider, MONTH),
        }
        percentages = {
            limit.name: round(self.count(provider, limit.window_seconds) / limit.max_requests * 100, 2)
            for limit in limits if limit.max_requests > 0
        }
        return UsageStats(
            provider=provider,
            limits={limit.name: limit.max_requests for limit in limits},
            percentages=percentages,
            **counts,
        )

    def reset_quota_warning(self, provider: str) -> None:
        self._warned.discard(provider)

    def prune(self) -> None:
        with self._lock:
            now = self._clock()
            for key, q in self._windows.items():
                self._prune_deque(q, now - self._lengths.get(key, USAGE_RETENTION))

    # ----------------------------- persistence -----------------------------

    def load(self, store: Optional[KeyValueStore] = None) -> None:
        store = store or self._store
        if store is None:
            return
        raw = store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("failed to load rate window history: %s", exc)
            return
        cutoff = self._clock() - USAGE_RETENTION
        with self._lock:
            for key, record in payload.items():
                stamps = sorted(float(ts) for ts in record.get("timestamps", []) if float(ts) >= cutoff)
                self._windows[key] = deque(stamps)
                self._lengths[key] = float(record.get("window", USAGE_RETENTION))

    def save(self, store: Optional[KeyValueStore] = None) -> None:
        store = store or self._store
        if store is None:
            return
        with self._lock:
            payload = {
                key: {"window": self._lengths.get(key, USAGE_RETENTION), "timestamps": list(q)}
                for key, q in self._windows.items()
                if self._lengths.get(key, USAGE_RETENTION) >= PERSIST_MIN_WINDOW
            }
        try:
            store.set(STORAGE_KEY, json.dumps(payload))
        except OSError as exc:
            logger.error("failed to save rate window history: %s", exc)

    # ----------------------------- internals -----------------------------

    def _window(self, key: str) -> Deque[float]:
        q = self._windows.get(key)
        if q is None:
            q = deque()
            self._windows[key] = q
        return q

    def _count(self, key: str, window_seconds: float, now: float) -> int:
        q = self._window(key)
        self._prune_deque(q, now - window_seconds)
        return len(q)

    @staticmethod
    def _prune_deque(q: Deque[float], cutoff: float) -> None:
        while q and q[0] <= cutoff:
            q.popleft()

    def _maybe_warn(self, provider: str, limits: Sequence[RateLimit]) -> None:
        if not limits or provider in self._warned or self._notices is None:
            return
        longest = max(limits, key=lambda limit: limit.window_seconds)
        used = self.count(provider, longest.window_seconds)
        if used >= longest.max_requests * WARNING_RATIO:
            self._warned.add(provider)
            logger.warning("%s at %d/%d of its %s quota", provider, used, longest.max_requests, longest.name)
            self._notices.notify(
                "API Usage Warning",
                f"You are approaching your {longest.name} {provider} API usage limit",
                variant="destructive",
            )


def _dim_key(provider: str, limit: RateLimit) -> str:
    return f"{provider}:{limit.name}"
