# coinvault/dedupe.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, TypeVar

T = TypeVar("T")


class RequestDeduplicator:
    """
    One in-flight call per key. Concurrent callers with the same key await the
    same task and observe the same result or the same exception; the entry is
    dropped as soon as the task settles, so later calls start fresh.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def dedupe(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._settled(k, t))
        # shield: one caller being cancelled must not cancel the shared call
        return await asyncio.shield(task)

    def _settled(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled():
            # mark retrieved so an unobserved failure is not reported at GC
            task.exception()
