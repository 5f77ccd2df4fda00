from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

import pytest

from timerdriven.metadata.repository import SqlModuleMetadataRepository
from timerdriven.models.database import Database
from timerdriven.modules.base import TimerDrivenModule, TimerDrivenModuleContext
from timerdriven.schedule.scheduler import RotatingTaskScheduler
from timerdriven.schedule.timing import NEVER_RUN, TimingStrategy


class CounterContext(TimerDrivenModuleContext):
    runs: int = 0


class RecordingModule(TimerDrivenModule[CounterContext]):
    """Test module that records each invocation in a shared list.

    `next_call_at` is copied into every returned context, so a test can make
    the module decline its following turns.
    """

    context_type = CounterContext

    def __init__(
        self,
        module_id: str,
        calls: List[str],
        *,
        next_call_at: float = 0.0,
        fail: bool = False,
        block: Optional[threading.Event] = None,
        on_call: Optional[Callable[["RecordingModule"], None]] = None,
    ):
        super().__init__(module_id)
        self.calls = calls
        self.next_call_at = next_call_at
        self.fail = fail
        self.block = block
        self.on_call = on_call
        self.started = threading.Event()
        self.finished = threading.Event()
        self.shutdown_called = False
        self.initial_context: Optional[CounterContext] = None

    def create_initial_context(self, database):
        return self.initial_context

    def do_some_work(self, last_context, database):
        self.calls.append(self.id)
        self.started.set()
        try:
            if self.block is not None:
                self.block.wait(10)
            if self.on_call is not None:
                self.on_call(self)
            if self.fail:
                raise RuntimeError(f"{self.id} always fails")
            runs = last_context.runs if last_context is not None else 0
            return CounterContext(runs=runs + 1, earliest_next_call_at=self.next_call_at)
        finally:
            self.finished.set()

    def shutdown(self) -> None:
        self.shutdown_called = True


class RecordingTimingStrategy(TimingStrategy):
    """Short fixed delays; remembers every duration it was asked about."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.durations: List[float] = []
        self.initialized = 0

    def initialize(self, database) -> None:
        self.initialized += 1

    def next_delay(self, last_task_duration: float) -> float:
        self.durations.append(last_task_duration)
        if last_task_duration == NEVER_RUN:
            return 0.0
        return self.delay


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / "timerdriven.db"))
    yield db
    db.shutdown()


@pytest.fixture
def repository(database):
    return SqlModuleMetadataRepository(database)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def calls():
    return []


@pytest.fixture
def make_scheduler(database, repository, clock):
    """Build schedulers bound to the test database; stops them afterwards."""

    created = []

    def factory(timing_strategy=None, **kwargs):
        kwargs.setdefault("clock", clock)
        scheduler = RotatingTaskScheduler(
            database,
            kwargs.pop("repository", repository),
            timing_strategy or RecordingTimingStrategy(),
            **kwargs,
        )
        created.append(scheduler)
        return scheduler

    yield factory

    for scheduler in created:
        if scheduler.is_running():
            scheduler.stop()
