"""Storage interface for cross-invocation memory and execution records."""

from __future__ import annotations

from typing import Protocol

from workspace_agent.storage.models import (
    EntryKind,
    ExecutionRecord,
    LearningEntry,
    MemoryEntry,
)


class ProjectStore(Protocol):
    def migrate(self) -> None: ...

    def retrieve(
        self,
        project_id: str,
        kind: EntryKind,
        limit: int,
        most_recent_first: bool = True,
    ) -> list[MemoryEntry] | list[LearningEntry]: ...

    def store(self, project_id: str, entry: MemoryEntry | LearningEntry) -> None: ...

    def create_record(self, project_id: str, record: ExecutionRecord) -> str: ...

    def update_record(self, record_id: str, record: ExecutionRecord) -> None: ...

    def get_latest_record(self, project_id: str) -> ExecutionRecord | None: ...
