"""Storage models for cross-invocation memory and the execution audit trail."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from workspace_agent.errors import RecordStateError
from workspace_agent.models import FinalOutcome

EntryKind = Literal["memory", "learning"]
LearningType = Literal["success_pattern", "failure_pattern", "error_pattern"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MemoryEntry(BaseModel):
    """Persisted project context that informs later planning."""

    type: str
    category: str | None = None
    content: str
    metadata: dict[str, Any] | None = None
    importance: int = Field(default=5, ge=1, le=10)
    created_at: datetime = Field(default_factory=_utcnow)
    last_accessed_at: datetime = Field(default_factory=_utcnow)


class LearningEntry(BaseModel):
    """A pattern distilled from a finished run."""

    learning_type: LearningType
    pattern: str
    insight: str
    applicable_contexts: list[str] | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ExecutionRecord(BaseModel):
    """Append-only audit record of one invocation."""

    record_id: str | None = None
    project_id: str
    goal: str
    plan: dict[str, Any] | None = None
    execution_steps: list[dict[str, Any]] = Field(default_factory=list)
    evaluation_results: list[dict[str, Any]] = Field(default_factory=list)
    final_outcome: FinalOutcome = "in_progress"
    lessons_learned: list[str] = Field(default_factory=list)
    total_iterations: int = 0
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.final_outcome != "in_progress"

    def finalize(
        self,
        outcome: FinalOutcome,
        *,
        plan: dict[str, Any] | None,
        execution_steps: list[dict[str, Any]],
        evaluation_results: list[dict[str, Any]],
        lessons_learned: list[str],
        total_iterations: int,
    ) -> None:
        if outcome == "in_progress":
            raise RecordStateError("An execution record cannot be finalized as in_progress")
        if self.is_terminal:
            raise RecordStateError(
                f"Execution record already finalized as {self.final_outcome}"
            )
        self.plan = plan
        self.execution_steps = execution_steps
        self.evaluation_results = evaluation_results
        self.lessons_learned = lessons_learned
        self.total_iterations = total_iterations
        self.final_outcome = outcome
        self.completed_at = _utcnow()
