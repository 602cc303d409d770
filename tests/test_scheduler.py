"""Tests for the background monitor scheduler."""

from __future__ import annotations

import threading

import pytest

from draftwatch.ingestion.scheduler import MonitorScheduler


class StubMonitor:
    """Count ticks and optionally fail on the first one."""

    def __init__(self, *, fail_first: bool = False, expected_ticks: int = 1) -> None:
        self.ticks = 0
        self.fail_first = fail_first
        self.expected_ticks = expected_ticks
        self.done = threading.Event()

    def run_tick(self) -> None:
        self.ticks += 1
        if self.ticks >= self.expected_ticks:
            self.done.set()
        if self.fail_first and self.ticks == 1:
            raise RuntimeError("tick exploded")


def test_start_runs_first_tick_immediately_and_is_idempotent() -> None:
    monitor = StubMonitor()
    scheduler = MonitorScheduler(monitor, tick_seconds=60)  # type: ignore[arg-type]

    assert scheduler.start() is True
    assert scheduler.start() is False
    assert monitor.done.wait(5)
    assert scheduler.is_running

    assert scheduler.stop(timeout=5) is True
    assert not scheduler.is_running
    assert scheduler.stop() is False
    assert monitor.ticks == 1


def test_failing_tick_does_not_stop_the_loop() -> None:
    monitor = StubMonitor(fail_first=True, expected_ticks=2)
    scheduler = MonitorScheduler(monitor, tick_seconds=0.01)  # type: ignore[arg-type]

    scheduler.start()
    try:
        assert monitor.done.wait(5)
    finally:
        scheduler.stop(timeout=5)

    assert monitor.ticks >= 2


def test_scheduler_can_restart_after_stop() -> None:
    monitor = StubMonitor()
    scheduler = MonitorScheduler(monitor, tick_seconds=60)  # type: ignore[arg-type]

    scheduler.start()
    assert monitor.done.wait(5)
    scheduler.stop(timeout=5)
    monitor.done.clear()
    monitor.expected_ticks = 2

    assert scheduler.start() is True
    try:
        assert monitor.done.wait(5)
    finally:
        scheduler.stop(timeout=5)


def test_tick_seconds_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MonitorScheduler(StubMonitor(), tick_seconds=0)  # type: ignore[arg-type]


def test_concurrent_start_launches_exactly_one_loop() -> None:
    monitor = StubMonitor()
    scheduler = MonitorScheduler(monitor, tick_seconds=60)  # type: ignore[arg-type]
    barrier = threading.Barrier(8)
    results: list[bool] = []
    results_lock = threading.Lock()

    def race() -> None:
        barrier.wait(5)
        started = scheduler.start()
        with results_lock:
            results.append(started)

    callers = [threading.Thread(target=race) for _ in range(8)]
    for caller in callers:
        caller.start()
    for caller in callers:
        caller.join(5)
    try:
        assert monitor.done.wait(5)
    finally:
        scheduler.stop(timeout=5)

    assert sorted(results) == [False] * 7 + [True]
    assert monitor.ticks == 1
