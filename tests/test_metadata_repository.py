from __future__ import annotations

import time

import pytest

from conftest import CounterContext, RecordingModule
from timerdriven.errors import ResourceUnavailable
from timerdriven.models.module_metadata import ModuleMetadata
from timerdriven.modules.base import TimerDrivenModule, TimerDrivenModuleContext


class CursorContext(TimerDrivenModuleContext):
    last_id: int


class CursorModule(TimerDrivenModule[CursorContext]):
    context_type = CursorContext

    def do_some_work(self, last_context, database):
        return CursorContext(last_id=(last_context.last_id if last_context else 0) + 1)


def test_persisted_context_is_restored_with_its_type(database, repository, calls):
    module = RecordingModule("m1", calls)
    context = CounterContext(runs=3, earliest_next_call_at=55.5)

    with database.unit_of_work():
        repository.persist(module, context)

    restored = repository.load(module)
    assert isinstance(restored, CounterContext)
    assert restored == context


def test_persist_updates_existing_record(database, repository, calls):
    module = RecordingModule("m1", calls)

    with database.unit_of_work():
        repository.persist(module, CounterContext(runs=1))
    with database.unit_of_work():
        repository.persist(module, CounterContext(runs=2))

    record = repository.get_record("m1")
    assert record["persist_count"] == 2
    assert record["context"]["runs"] == 2
    assert record["context_type"].endswith("CounterContext")


def test_persist_is_rolled_back_with_the_unit_of_work(database, repository, calls):
    module = RecordingModule("m1", calls)

    with pytest.raises(RuntimeError):
        with database.unit_of_work():
            repository.persist(module, CounterContext(runs=1))
            raise RuntimeError("commit never happens")

    assert repository.load(module) is None
    assert repository.module_ids() == []


def test_missing_or_empty_context_loads_as_none(database, repository, calls):
    module = RecordingModule("m1", calls)
    assert repository.load(module) is None

    with database.unit_of_work():
        repository.persist(module, None)

    assert repository.load(module) is None
    assert repository.module_ids() == ["m1"]


def test_incompatible_context_loads_as_none(database, repository, calls, caplog):
    with database.unit_of_work():
        repository.persist(RecordingModule("shared", calls), CounterContext(runs=1))

    restored = repository.load(CursorModule("shared"))

    assert restored is None
    assert "无法恢复" in caplog.text


def test_remove_and_module_ids(database, repository, calls):
    with database.unit_of_work():
        repository.persist(RecordingModule("b", calls), None)
        repository.persist(RecordingModule("a", calls), None)

    assert repository.module_ids() == ["a", "b"]
    assert repository.remove("a") is True
    assert repository.remove("a") is False
    assert repository.module_ids() == ["b"]


def test_cleanup_stale_removes_old_records_only(database, repository, calls):
    with database.unit_of_work():
        repository.persist(RecordingModule("old", calls), None)
        repository.persist(RecordingModule("fresh", calls), None)
    with database.unit_of_work() as session:
        session.get(ModuleMetadata, "old").updated_at = time.time() - 40 * 24 * 3600

    assert repository.cleanup_stale(retention_days=30) == 1
    assert repository.module_ids() == ["fresh"]


def test_unit_of_work_refuses_after_shutdown(database):
    assert database.is_available(0)

    database.shutdown()

    assert not database.is_available(0.1)
    with pytest.raises(ResourceUnavailable):
        with database.unit_of_work():
            pass
