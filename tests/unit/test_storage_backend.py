from datetime import UTC, datetime, timedelta

import pytest

from workspace_agent.errors import PersistenceError, RecordStateError
from workspace_agent.storage import (
    ExecutionRecord,
    InMemoryProjectStore,
    LearningEntry,
    MemoryEntry,
    PostgresProjectStore,
)


def test_retrieve_is_scoped_ordered_and_limited() -> None:
    store = InMemoryProjectStore()
    base = datetime(2026, 1, 1, tzinfo=UTC)
    for index in range(4):
        store.store(
            "p1",
            MemoryEntry(type="note", content=f"m{index}", created_at=base + timedelta(minutes=index)),
        )
    store.store("p2", MemoryEntry(type="note", content="other project"))

    newest = store.retrieve("p1", "memory", 2)
    oldest = store.retrieve("p1", "memory", 2, most_recent_first=False)

    assert [item.content for item in newest] == ["m3", "m2"]
    assert [item.content for item in oldest] == ["m0", "m1"]
    assert all(item.last_accessed_at > base for item in newest)


def test_learnings_are_kept_apart_from_memories() -> None:
    store = InMemoryProjectStore()
    store.store("p1", LearningEntry(learning_type="error_pattern", pattern="x", insight="y"))

    assert store.retrieve("p1", "memory", 10) == []
    assert [item.pattern for item in store.retrieve("p1", "learning", 10)] == ["x"]


def test_record_create_update_and_latest() -> None:
    store = InMemoryProjectStore()
    first = ExecutionRecord(project_id="p1", goal="first")
    second = ExecutionRecord(
        project_id="p1", goal="second", started_at=first.started_at + timedelta(seconds=1)
    )

    first_id = store.create_record("p1", first)
    second_id = store.create_record("p1", second)
    second.finalize(
        "completed",
        plan=None,
        execution_steps=[],
        evaluation_results=[],
        lessons_learned=[],
        total_iterations=3,
    )
    store.update_record(second_id, second)

    latest = store.get_latest_record("p1")
    assert first_id != second_id
    assert latest.record_id == second_id
    assert latest.final_outcome == "completed"
    assert latest.completed_at is not None
    assert store.get_latest_record("unknown") is None


def test_update_of_unknown_record_raises() -> None:
    with pytest.raises(PersistenceError):
        InMemoryProjectStore().update_record("missing", ExecutionRecord(project_id="p", goal="g"))


def test_record_reaches_exactly_one_terminal_state() -> None:
    record = ExecutionRecord(project_id="p1", goal="g")
    kwargs = {
        "plan": None,
        "execution_steps": [],
        "evaluation_results": [],
        "lessons_learned": [],
        "total_iterations": 0,
    }

    with pytest.raises(RecordStateError):
        record.finalize("in_progress", **kwargs)
    record.finalize("partial", **kwargs)
    with pytest.raises(RecordStateError):
        record.finalize("completed", **kwargs)
    assert record.final_outcome == "partial"


def test_postgres_store_requires_database_url() -> None:
    with pytest.raises(ValueError, match="DATABASE_URL"):
        PostgresProjectStore("")
