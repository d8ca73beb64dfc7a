"""Best-effort persistence around a ProjectStore, plus learning derivation.

Storage is never allowed to break a run: failed reads come back empty and
failed writes are logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from workspace_agent.models import ExecutionPlan, ExecutionState, OutcomeVerification
from workspace_agent.storage.base import ProjectStore
from workspace_agent.storage.models import ExecutionRecord, LearningEntry, MemoryEntry

logger = logging.getLogger(__name__)


class GuardedStore:
    def __init__(self, store: ProjectStore | None) -> None:
        self.store = store

    def memories(self, project_id: str, limit: int) -> list[MemoryEntry]:
        return self._retrieve(project_id, "memory", limit)

    def learnings(self, project_id: str, limit: int) -> list[LearningEntry]:
        return self._retrieve(project_id, "learning", limit)

    def save(self, project_id: str, entries: Iterable[MemoryEntry | LearningEntry]) -> int:
        """Store each entry independently; returns how many were written."""
        if self.store is None:
            return 0
        written = 0
        for entry in entries:
            try:
                self.store.store(project_id, entry)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Store write failed project=%s kind=%s reason=%s",
                    project_id,
                    type(entry).__name__,
                    exc,
                )
                continue
            written += 1
        return written

    def create_record(self, project_id: str, record: ExecutionRecord) -> str | None:
        if self.store is None:
            return None
        try:
            return self.store.create_record(project_id, record)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Execution record create failed project=%s reason=%s", project_id, exc)
            return None

    def update_record(self, record_id: str | None, record: ExecutionRecord) -> bool:
        if self.store is None or record_id is None:
            return False
        try:
            self.store.update_record(record_id, record)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Execution record update failed record=%s reason=%s", record_id, exc)
            return False
        return True

    def _retrieve(self, project_id: str, kind, limit: int) -> list:
        if self.store is None or limit <= 0:
            return []
        try:
            return list(self.store.retrieve(project_id, kind, limit, most_recent_first=True))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Store retrieval failed project=%s kind=%s reason=%s", project_id, kind, exc
            )
            return []


def derive_learnings(plan: ExecutionPlan) -> list[LearningEntry]:
    """Distill reusable patterns from a finished plan.

    - one ``success_pattern`` per step completed on its first attempt
    - one ``failure_pattern`` per failed step
    - one ``error_pattern`` per distinct tool error seen in any attempt
    """
    learnings: list[LearningEntry] = []
    seen_errors: set[tuple[str, str]] = set()

    for step in plan.steps:
        if step.status == "completed" and step.retry_count == 0:
            tools = sorted({result.tool for result in step.tool_results if result.success})
            learnings.append(
                LearningEntry(
                    learning_type="success_pattern",
                    pattern=step.action or step.description,
                    insight=(
                        f"'{step.description}' succeeded on the first attempt"
                        + (f" using {', '.join(tools)}." if tools else ".")
                    ),
                    applicable_contexts=tools or None,
                )
            )
        elif step.status == "failed":
            issues = step.evaluation.issues if step.evaluation else []
            learnings.append(
                LearningEntry(
                    learning_type="failure_pattern",
                    pattern=step.action or step.description,
                    insight=(
                        f"'{step.description}' failed after {step.retry_count} retries"
                        + (f": {'; '.join(issues)}" if issues else ".")
                    ),
                    applicable_contexts=list(step.tools_needed) or None,
                )
            )

        for attempt in step.attempts:
            for result in attempt.tool_results:
                if result.success:
                    continue
                key = (result.tool, result.error or "Unknown error")
                if key in seen_errors:
                    continue
                seen_errors.add(key)
                learnings.append(
                    LearningEntry(
                        learning_type="error_pattern",
                        pattern=f"{key[0]}: {key[1]}",
                        insight=f"Tool {key[0]} returned an error during '{step.description}'.",
                        applicable_contexts=[key[0]],
                    )
                )
    return learnings


def summarize_run(
    plan: ExecutionPlan,
    state: ExecutionState,
    verification: OutcomeVerification,
) -> MemoryEntry:
    total = len(plan.steps)
    content = (
        f"Goal: {plan.goal}\n"
        f"Steps: {len(state.completed_steps)}/{total} completed, "
        f"{len(state.failed_steps)} failed, {len(state.skipped_steps)} skipped.\n"
        f"Completeness: {verification.completeness}%"
        f" (goal achieved: {'yes' if verification.goal_achieved else 'no'})."
    )
    if verification.gaps:
        content += "\nGaps: " + "; ".join(verification.gaps)
    return MemoryEntry(
        type="execution_summary",
        category=plan.complexity,
        content=content,
        metadata={
            "completed_steps": list(state.completed_steps),
            "failed_steps": list(state.failed_steps),
            "skipped_steps": list(state.skipped_steps),
            "iterations": state.iterations,
            "cancelled": state.cancelled,
        },
        importance=7 if verification.goal_achieved else 5,
    )
