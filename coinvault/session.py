# coinvault/session.py
"""
Idle-session state machine.

    ACTIVE --idle >= timeout - warning--> WARNING --idle >= timeout--> LOCKED
    ACTIVE/WARNING --activity--> ACTIVE (idle clock restarts)
    LOCKED --unlock()--> ACTIVE

LOCKED ignores activity. Transitions are evaluated by ``poll()`` against an
injectable clock; ``start()`` runs a task on the current loop that sleeps
until the next deadline and polls, and ``stop()`` disposes of it.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel, field_validator

from coinvault.notices import NoticeBus
from coinvault.storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_LOCKED_KEY = "session_locked"


class SessionState(str, enum.Enum):
    ACTIVE = "active"
    WARNING = "warning"
    LOCKED = "locked"


class SessionConfig(BaseModel):
    timeout_minutes: float = 30.0
    warning_minutes: float = 5.0

    @field_validator("timeout_minutes")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_minutes must be positive")
        return v

    @field_validator("warning_minutes")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("warning_minutes must not be negative")
        return v

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60

    @property
    def warning_at_seconds(self) -> float:
        return max(0.0, self.timeout_minutes - self.warning_minutes) * 60


Callback = Callable[[], None]


class SessionMonitor:
    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        *,
        on_warning: Optional[Callback] = None,
        on_timeout: Optional[Callback] = None,
        notices: Optional[NoticeBus] = None,
        storage: Optional[KeyValueStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SessionConfig()
        self.on_warning = on_warning
        self.on_timeout = on_timeout
        self._notices = notices
        self._storage = storage
        self._clock = clock
        self._last_activity = clock()
        self._warned = False
        self._paused = False
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        persisted = storage is not None and storage.get(SESSION_LOCKED_KEY) == "true"
        self._state = SessionState.LOCKED if persisted else SessionState.ACTIVE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state is SessionState.LOCKED

    @property
    def paused(self) -> bool:
        return self._paused

    # ----------------------------- events -----------------------------

    def touch(self) -> bool:
        """User activity. Returns False when the session is LOCKED (ignored)."""
        if self._state is SessionState.LOCKED:
            return False
        self._restart_clock()
        self._state = SessionState.ACTIVE
        return True

    def lock(self) -> None:
        if self._state is SessionState.LOCKED:
            return
        self._state = SessionState.LOCKED
        self._persist(True)
        self._kick()

    def unlock(self) -> None:
        self._state = SessionState.ACTIVE
        self._persist(False)
        self._restart_clock()

    def pause(self) -> None:
        self._paused = True
        self._kick()

    def resume(self) -> None:
        self._paused = False
        self._restart_clock()

    def update_config(self, timeout_minutes: Optional[float] = None,
                      warning_minutes: Optional[float] = None) -> SessionConfig:
        changes = {k: v for k, v in (("timeout_minutes", timeout_minutes),
                                     ("warning_minutes", warning_minutes)) if v is not None}
        self.config = SessionConfig(**{**self.config.model_dump(), **changes})
        self._kick()
        return self.config

    # ----------------------------- evaluation -----------------------------

    def idle_seconds(self) -> float:
        return max(0.0, self._clock() - self._last_activity)

    def time_remaining(self) -> float:
        if self._paused or self._state is SessionState.LOCKED:
            return 0.0
        return max(0.0, self.config.timeout_seconds - self.idle_seconds())

    def next_deadline(self) -> Optional[float]:
        """Seconds until the next transition, or None when nothing is pending."""
        if self._paused or self._state is SessionState.LOCKED:
            return None
        idle = self.idle_seconds()
        if not self._warned and idle < self.config.warning_at_seconds:
            return self.config.warning_at_seconds - idle
        return max(0.0, self.config.timeout_seconds - idle)

    def poll(self) -> SessionState:
        if self._paused or self._state is SessionState.LOCKED:
            return self._state
        idle = self.idle_seconds()
        if idle >= self.config.timeout_seconds:
            self._expire()
        elif idle >= self.config.warning_at_seconds and not self._warned:
            self._warned = True
            self._state = SessionState.WARNING
            self._fire_warning()
        return self._state

    def _fire_warning(self) -> None:
        logger.info("session idle for %.0fs; locking in %.1f min", self.idle_seconds(), self.config.warning_minutes)
        if self.on_warning is not None:
            _safely(self.on_warning, "warning")
        elif self._notices is not None:
            self._notices.notify(
                "Session Timeout Warning",
                f"Your wallet will be locked in {self.config.warning_minutes:g} minutes due to inactivity.",
                variant="warning",
            )

    def _expire(self) -> None:
        self._state = SessionState.LOCKED
        self._persist(True)
        logger.info("session timed out after %.0fs idle", self.idle_seconds())
        if self.on_timeout is not None:
            _safely(self.on_timeout, "timeout")
        if self._notices is not None:
            self._notices.notify("Session Expired", "You have been logged out due to inactivity")

    # ----------------------------- lifecycle -----------------------------

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._wake = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="session-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        wake = self._wake
        if wake is None:
            return
        while True:
            wake.clear()
            delay = self.next_deadline()
            try:
                await asyncio.wait_for(wake.wait(), timeout=delay)
                continue  # state changed; recompute the deadline
            except asyncio.TimeoutError:
                pass
            self.poll()

    # ----------------------------- internals -----------------------------

    def _restart_clock(self) -> None:
        self._last_activity = self._clock()
        self._warned = False
        self._kick()

    def _kick(self) -> None:
        if self._wake is not None:
            self._wake.set()

    def _persist(self, locked: bool) -> None:
        if self._storage is None:
            return
        if locked:
            self._storage.set(SESSION_LOCKED_KEY, "true")
        else:
            self._storage.delete(SESSION_LOCKED_KEY)


def _safely(callback: Callback, what: str) -> None:
    try:
        callback()
    except Exception:
        logger.exception("session %s callback failed", what)
