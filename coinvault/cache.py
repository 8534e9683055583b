# coinvault/cache.py
from __future__ import annotations
import time
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def alive(self, now: float) -> bool:
        return now - self.inserted_at < self.ttl


class TTLCache:
    """
    Async-safe TTL cache with per-entry TTL and best-effort LRU eviction.

    Expiry is lazy (checked on read, and the read evicts), backed by an
    eviction timer on the running loop at the TTL boundary so keys that are
    never read again do not pin memory.
    """
    def __init__(self, max_items: int = 2048, default_ttl: float = 300.0,
                 clock: Callable[[], float] = time.monotonic):
        self.max_items = max_items
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._touch: Dict[str, float] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if not entry.alive(self._clock()):
                self._drop(key)
                return None
            self._touch[key] = self._clock()
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None):
        ttl = self.default_ttl if ttl is None else ttl
        async with self._lock:
            if key not in self._store and len(self._store) >= self.max_items:
                # evict least recently touched
                victim = min(self._touch.items(), key=lambda kv: kv[1])[0] if self._touch else None
                if victim is not None:
                    self._drop(victim)
            self._drop(key)
            now = self._clock()
            self._store[key] = CacheEntry(key=key, value=value, inserted_at=now, ttl=ttl)
            self._touch[key] = now
            self._schedule(key, ttl)

    async def invalidate(self, key: str):
        async with self._lock:
            self._drop(key)

    async def clear(self):
        async with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            self._store.clear()
            self._touch.clear()

    def _schedule(self, key: str, ttl: float):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[key] = loop.call_later(max(ttl, 0.0), self._expire, key)

    def _expire(self, key: str):
        # timer callback runs on the loop thread between awaits, so no lock
        self._timers.pop(key, None)
        entry = self._store.get(key)
        if entry is None:
            return
        now = self._clock()
        if entry.alive(now):
            # loop timers may fire a clock tick early
            self._schedule(key, entry.inserted_at + entry.ttl - now)
            return
        self._store.pop(key, None)
        self._touch.pop(key, None)

    def _drop(self, key: str):
        self._store.pop(key, None)
        self._touch.pop(key, None)
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
