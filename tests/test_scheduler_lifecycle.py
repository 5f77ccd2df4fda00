"""Background timer behaviour: scheduling, resilience and shutdown."""

from __future__ import annotations

import logging
import threading
import time

from conftest import RecordingModule, RecordingTimingStrategy, wait_for
from timerdriven.schedule import scheduler as scheduler_module
from timerdriven.schedule.timing import NEVER_RUN, UNKNOWN
from timerdriven.schedule.types import SchedulerState


def test_ticks_run_in_background_and_rotate(make_scheduler, calls):
    strategy = RecordingTimingStrategy()
    scheduler = make_scheduler(strategy)
    scheduler.register_module_and_context(RecordingModule("m1", calls), None)
    scheduler.register_module_and_context(RecordingModule("m2", calls), None)

    scheduler.start()
    assert wait_for(lambda: len(calls) >= 6)
    scheduler.stop()

    assert calls[:6] == ["m1", "m2"] * 3
    assert strategy.initialized == 1
    assert strategy.durations[0] == NEVER_RUN
    assert all(d >= 0 for d in strategy.durations[1:])
    assert scheduler.state is SchedulerState.Stopped


def test_all_ticks_run_on_one_worker_thread(make_scheduler, calls):
    threads = set()
    scheduler = make_scheduler()
    scheduler.register_module_and_context(
        RecordingModule("m1", calls, on_call=lambda m: threads.add(threading.get_ident())),
        None,
    )

    scheduler.start()
    assert wait_for(lambda: len(calls) >= 5)
    scheduler.stop()

    assert len(threads) == 1
    assert threading.get_ident() not in threads


def test_failing_module_does_not_stop_rotation(make_scheduler, calls):
    strategy = RecordingTimingStrategy()
    scheduler = make_scheduler(strategy)
    scheduler.register_module_and_context(RecordingModule("bad", calls, fail=True), None)
    scheduler.register_module_and_context(RecordingModule("good", calls), None)

    scheduler.start()
    assert wait_for(lambda: calls.count("good") >= 3)
    scheduler.stop()

    assert calls.count("bad") >= 2
    assert UNKNOWN in strategy.durations
    stats = scheduler.get_stats()
    assert stats["tasks_failed"] >= 2
    assert stats["tasks_completed"] >= 3
    assert scheduler.last_failure.module_id == "bad"


def test_stop_waits_for_in_flight_tick(make_scheduler, calls):
    release = threading.Event()
    module = RecordingModule("slow", calls, block=release)
    scheduler = make_scheduler(shutdown_grace_seconds=5.0)
    scheduler.register_module_and_context(module, None)

    scheduler.start()
    assert module.started.wait(5)
    threading.Timer(0.2, release.set).start()

    started = time.monotonic()
    scheduler.stop()
    elapsed = time.monotonic() - started

    assert module.finished.is_set()
    assert elapsed < 5.0
    assert calls == ["slow"]


def test_stop_gives_up_after_grace_period(make_scheduler, calls, caplog):
    release = threading.Event()
    module = RecordingModule("stuck", calls, block=release)
    scheduler = make_scheduler(shutdown_grace_seconds=0.2)
    scheduler.register_module_and_context(module, None)

    scheduler.start()
    assert module.started.wait(5)

    try:
        with caplog.at_level(logging.WARNING, logger="timerdriven.scheduler"):
            started = time.monotonic()
            scheduler.stop()
            elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert not module.finished.is_set()
        assert "未能在 0.2 秒内完成所有任务" in caplog.text
        assert not scheduler._registry.has_cursor()
    finally:
        release.set()
        assert module.finished.wait(5)

    # the abandoned tick finished but nothing was rescheduled
    time.sleep(0.1)
    assert calls == ["stuck"]


def test_second_start_is_ignored(make_scheduler, calls, caplog):
    strategy = RecordingTimingStrategy(delay=60)
    scheduler = make_scheduler(strategy)
    scheduler.register_module_and_context(RecordingModule("m1", calls), None)

    scheduler.start()
    with caplog.at_level(logging.WARNING, logger="timerdriven.scheduler"):
        scheduler.start()

    assert strategy.initialized == 1
    assert "忽略 start()" in caplog.text


def test_stop_twice_is_harmless(make_scheduler, calls):
    scheduler = make_scheduler(RecordingTimingStrategy(delay=60))
    scheduler.register_module_and_context(RecordingModule("m1", calls), None)
    scheduler.start()

    scheduler.stop()
    scheduler.stop()

    assert scheduler.state is SchedulerState.Stopped


def test_manual_tick_waits_for_in_flight_tick(make_scheduler, calls):
    release = threading.Event()
    overlapped = []
    slow = RecordingModule("slow", calls, block=release)
    other = RecordingModule(
        "other", calls, on_call=lambda m: overlapped.append(not slow.finished.is_set())
    )
    scheduler = make_scheduler(RecordingTimingStrategy(delay=60))
    scheduler.register_module_and_context(slow, None)
    scheduler.register_module_and_context(other, None)

    scheduler.start()
    assert slow.started.wait(5)
    threading.Timer(0.2, release.set).start()

    picked = scheduler.run_next_task()

    assert slow.finished.is_set()
    assert picked is other
    assert calls == ["slow", "other"]
    assert overlapped == [False]


class BrokenTimingStrategy(RecordingTimingStrategy):
    def next_delay(self, last_task_duration: float) -> float:
        self.durations.append(last_task_duration)
        if last_task_duration == NEVER_RUN:
            return 0.0
        raise ArithmeticError("broken strategy")


def test_rotation_continues_when_timing_strategy_fails(
    make_scheduler, calls, caplog, monkeypatch
):
    monkeypatch.setattr(scheduler_module, "FALLBACK_DELAY_SECONDS", 0.01)
    scheduler = make_scheduler(BrokenTimingStrategy())
    scheduler.register_module_and_context(RecordingModule("m1", calls), None)

    with caplog.at_level(logging.ERROR, logger="timerdriven.scheduler"):
        scheduler.start()
        assert wait_for(lambda: len(calls) >= 3)
        scheduler.stop()

    assert "时间策略计算延迟失败" in caplog.text
    assert scheduler.get_stats()["next_delay"] == 0.01
