"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from uuid import uuid4

from workspace_agent.errors import PersistenceError
from workspace_agent.storage.models import (
    EntryKind,
    ExecutionRecord,
    LearningEntry,
    MemoryEntry,
)


class InMemoryProjectStore:
    """Simple in-memory implementation keyed by project id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._memories: dict[str, list[MemoryEntry]] = {}
        self._learnings: dict[str, list[LearningEntry]] = {}
        self._records: dict[str, ExecutionRecord] = {}

    def migrate(self) -> None:
        return None

    def retrieve(
        self,
        project_id: str,
        kind: EntryKind,
        limit: int,
        most_recent_first: bool = True,
    ) -> list[MemoryEntry] | list[LearningEntry]:
        with self._lock:
            if kind == "memory":
                entries = sorted(
                    self._memories.get(project_id, []),
                    key=lambda item: item.created_at,
                    reverse=most_recent_first,
                )[: max(0, limit)]
                now = datetime.now(UTC)
                for entry in entries:
                    entry.last_accessed_at = now
                return [entry.model_copy(deep=True) for entry in entries]
            learnings = sorted(
                self._learnings.get(project_id, []),
                key=lambda item: item.created_at,
                reverse=most_recent_first,
            )[: max(0, limit)]
            return [entry.model_copy(deep=True) for entry in learnings]

    def store(self, project_id: str, entry: MemoryEntry | LearningEntry) -> None:
        with self._lock:
            if isinstance(entry, MemoryEntry):
                self._memories.setdefault(project_id, []).append(entry.model_copy(deep=True))
            else:
                self._learnings.setdefault(project_id, []).append(entry.model_copy(deep=True))

    def create_record(self, project_id: str, record: ExecutionRecord) -> str:
        record_id = str(uuid4())
        with self._lock:
            self._records[record_id] = record.model_copy(
                update={"record_id": record_id, "project_id": project_id}, deep=True
            )
        return record_id

    def update_record(self, record_id: str, record: ExecutionRecord) -> None:
        with self._lock:
            if record_id not in self._records:
                raise PersistenceError(f"Execution record {record_id} does not exist")
            self._records[record_id] = record.model_copy(
                update={"record_id": record_id}, deep=True
            )

    def get_latest_record(self, project_id: str) -> ExecutionRecord | None:
        with self._lock:
            candidates = [
                record for record in self._records.values() if record.project_id == project_id
            ]
        if not candidates:
            return None
        # dicts keep insertion order, so the last candidate is the newest on ties.
        latest = max(enumerate(candidates), key=lambda pair: (pair[1].started_at, pair[0]))[1]
        return latest.model_copy(deep=True)
