# tests/test_session.py
import asyncio

import pytest
from pydantic import ValidationError

from coinvault.notices import NoticeBus
from coinvault.session import SESSION_LOCKED_KEY, SessionConfig, SessionMonitor, SessionState
from coinvault.storage import MemoryStore


def run_async(coro):
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _monitor(**kwargs):
    clock = FakeClock()
    events = []
    monitor = SessionMonitor(
        SessionConfig(timeout_minutes=5, warning_minutes=1),
        on_warning=lambda: events.append("warning"),
        on_timeout=lambda: events.append("timeout"),
        clock=clock,
        **kwargs,
    )
    return monitor, clock, events


def test_warning_at_four_minutes_and_lock_at_five():
    monitor, clock, events = _monitor()
    clock.now += 239
    assert monitor.poll() is SessionState.ACTIVE
    clock.now += 1
    assert monitor.poll() is SessionState.WARNING
    assert events == ["warning"]
    clock.now += 30
    monitor.poll()
    assert events == ["warning"]
    clock.now += 30
    assert monitor.poll() is SessionState.LOCKED
    assert events == ["warning", "timeout"]
    clock.now += 600
    monitor.poll()
    assert events == ["warning", "timeout"]


def test_activity_restarts_the_idle_period():
    monitor, clock, events = _monitor()
    clock.now += 250
    monitor.poll()
    assert monitor.touch()
    assert monitor.state is SessionState.ACTIVE
    clock.now += 250
    monitor.poll()
    assert monitor.state is SessionState.WARNING
    assert events == ["warning", "warning"]
    clock.now += 49
    assert monitor.poll() is SessionState.WARNING


def test_locked_session_ignores_activity_until_unlock():
    store = MemoryStore()
    monitor, clock, events = _monitor(storage=store)
    clock.now += 300
    monitor.poll()
    assert store.get(SESSION_LOCKED_KEY) == "true"
    assert not monitor.touch()
    assert monitor.is_locked

    monitor.unlock()
    assert monitor.state is SessionState.ACTIVE
    assert store.get(SESSION_LOCKED_KEY) is None
    assert monitor.time_remaining() == 300


def test_lock_state_survives_restart():
    store = MemoryStore()
    monitor, _, _ = _monitor(storage=store)
    monitor.lock()
    restarted = SessionMonitor(storage=store)
    assert restarted.is_locked


def test_expiry_notice_when_no_warning_callback():
    bus = NoticeBus()
    clock = FakeClock()
    monitor = SessionMonitor(SessionConfig(timeout_minutes=5, warning_minutes=1), notices=bus, clock=clock)
    clock.now += 240
    monitor.poll()
    clock.now += 60
    monitor.poll()
    titles = [n.title for n in bus.recent()]
    assert titles == ["Session Timeout Warning", "Session Expired"]
    assert bus.recent()[0].variant == "warning"


def test_pause_suspends_transitions():
    monitor, clock, events = _monitor()
    monitor.pause()
    clock.now += 1000
    assert monitor.poll() is SessionState.ACTIVE
    assert monitor.next_deadline() is None
    assert monitor.paused
    monitor.resume()
    assert not monitor.paused
    assert monitor.time_remaining() == 300
    assert events == []


def test_update_config_changes_deadlines():
    monitor, clock, _ = _monitor()
    monitor.update_config(timeout_minutes=10)
    assert monitor.config.warning_minutes == 1
    clock.now += 300
    assert monitor.poll() is SessionState.ACTIVE
    assert monitor.next_deadline() == 240


def test_config_validation():
    with pytest.raises(ValidationError):
        SessionConfig(timeout_minutes=0)
    with pytest.raises(ValidationError):
        SessionConfig(warning_minutes=-1)
    assert SessionConfig(timeout_minutes=3, warning_minutes=5).warning_at_seconds == 0


def test_failing_callback_does_not_break_the_monitor():
    clock = FakeClock()

    def boom():
        raise RuntimeError("ui gone")

    monitor = SessionMonitor(SessionConfig(timeout_minutes=1, warning_minutes=0),
                             on_timeout=boom, clock=clock)
    clock.now += 60
    assert monitor.poll() is SessionState.LOCKED


def test_background_task_fires_timeout_and_stops_cleanly():
    events = []
    # 0.05 s timeout, 0.03 s warning window, on the real clock
    monitor = SessionMonitor(
        SessionConfig(timeout_minutes=0.05 / 60, warning_minutes=0.03 / 60),
        on_warning=lambda: events.append("warning"),
        on_timeout=lambda: events.append("timeout"),
    )

    async def scenario():
        monitor.start()
        assert monitor.running
        for _ in range(100):
            if monitor.is_locked:
                break
            await asyncio.sleep(0.01)
        await monitor.stop()

    run_async(scenario())
    assert events == ["warning", "timeout"]
    assert not monitor.running


def test_loop_without_start_has_nothing_to_wait_on():
    monitor, _, events = _monitor()
    assert run_async(monitor._run()) is None
    assert events == []
