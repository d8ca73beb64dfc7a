"""Storage backends and models."""

from workspace_agent.storage.base import ProjectStore
from workspace_agent.storage.memory import InMemoryProjectStore
from workspace_agent.storage.models import (
    EntryKind,
    ExecutionRecord,
    LearningEntry,
    MemoryEntry,
)
from workspace_agent.storage.postgres import PostgresProjectStore

__all__ = [
    "EntryKind",
    "ExecutionRecord",
    "InMemoryProjectStore",
    "LearningEntry",
    "MemoryEntry",
    "PostgresProjectStore",
    "ProjectStore",
]
