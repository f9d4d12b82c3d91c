import pytest
from conftest import FakeTimers

from cursor_usage.scheduler import Scheduler


def test_timer_repeats_until_cancelled(timers: FakeTimers):
    fired = []
    scheduler = Scheduler(timers.call_later)
    scheduler.start("usage", 30, lambda: fired.append(timers.now))

    timers.advance(95)
    assert fired == [30, 60, 90]

    assert scheduler.cancel("usage") is True
    timers.advance(100)
    assert fired == [30, 60, 90]
    assert not scheduler.is_active("usage")
    assert scheduler.cancel("usage") is False


def test_restart_replaces_previous_timer(timers: FakeTimers):
    fired = []
    scheduler = Scheduler(timers.call_later)
    scheduler.start("usage", 30, lambda: fired.append("old"))
    timers.advance(10)
    scheduler.start("usage", 5, lambda: fired.append("new"))

    assert len(timers.pending()) == 1
    assert scheduler.interval("usage") == 5
    timers.advance(25)
    assert fired == ["new"] * 5


def test_cancel_all(timers: FakeTimers):
    scheduler = Scheduler(timers.call_later)
    scheduler.start("usage", 30, lambda: None)
    scheduler.start("updates", 1800, lambda: None)
    scheduler.cancel_all()
    assert timers.pending() == []
    assert not scheduler.is_active("usage") and not scheduler.is_active("updates")


@pytest.mark.parametrize("interval", [0, -5])
def test_non_positive_interval_rejected(timers: FakeTimers, interval):
    scheduler = Scheduler(timers.call_later)
    with pytest.raises(ValueError):
        scheduler.start("usage", interval, lambda: None)
    assert timers.pending() == []
