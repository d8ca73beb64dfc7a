"""End-of-run verification of goal achievement against the final workspace."""

from __future__ import annotations

import json
import logging
import math

from pydantic import BaseModel, Field

from workspace_agent.errors import VerificationError
from workspace_agent.llm import LLMAdapter
from workspace_agent.models import ExecutionPlan, OutcomeVerification, WorkspaceManifest

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 400


class VerificationDraft(BaseModel):
    """Structured response requested from the model."""

    goal_achieved: bool
    completeness: float
    gaps: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class OutcomeVerifier:
    """Ask the model whether the goal was met; fall back to step counts."""

    def __init__(self, *, llm_adapter: LLMAdapter | None, timeout_s: float = 60.0) -> None:
        self.llm_adapter = llm_adapter
        self.timeout_s = timeout_s

    def verify(
        self,
        goal: str,
        plan: ExecutionPlan,
        workspace: WorkspaceManifest,
    ) -> OutcomeVerification:
        if self.llm_adapter is None:
            return fallback_verification(plan)
        try:
            draft = self.llm_adapter.generate_structured(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=_user_prompt(goal, plan, workspace),
                response_model=VerificationDraft,
                timeout_s=self.timeout_s,
            )
            return normalize_verification(draft)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Outcome verification failed; using step heuristic. reason=%s", exc)
            return fallback_verification(plan)


def normalize_verification(draft: VerificationDraft) -> OutcomeVerification:
    if not math.isfinite(draft.completeness):
        raise VerificationError(f"Verifier returned unusable completeness {draft.completeness!r}")
    completeness = int(round(max(0.0, min(draft.completeness, 100.0))))
    return OutcomeVerification(
        goal_achieved=draft.goal_achieved,
        completeness=completeness,
        gaps=[gap.strip() for gap in draft.gaps if gap.strip()],
        suggestions=[item.strip() for item in draft.suggestions if item.strip()],
        source="model",
    )


def fallback_verification(plan: ExecutionPlan) -> OutcomeVerification:
    total = len(plan.steps)
    completed = sum(1 for step in plan.steps if step.status == "completed")
    return OutcomeVerification(
        goal_achieved=completed == total,
        completeness=round(100 * completed / total) if total else 0,
        gaps=[step.description for step in plan.steps if step.status == "failed"],
        suggestions=[],
        source="fallback",
    )


_SYSTEM_PROMPT = (
    "You verify whether an autonomous build run achieved the user's goal. "
    "Judge only from the plan outcome and the final project files provided. "
    "Return JSON with keys: goal_achieved (bool), completeness (0-100), "
    "gaps (list of what is missing or broken), suggestions (list of next steps)."
)


def _user_prompt(goal: str, plan: ExecutionPlan, workspace: WorkspaceManifest) -> str:
    steps = [
        {
            "id": step.id,
            "description": step.description,
            "status": step.status,
            "issues": step.evaluation.issues if step.evaluation else [],
        }
        for step in plan.steps
    ]
    files = [
        {
            "path": item.path,
            "language": item.language,
            "preview": item.content[:_PREVIEW_CHARS],
        }
        for item in workspace.files
    ]
    return (
        f"Goal:\n{goal}\n\n"
        f"Plan outcome JSON:\n{json.dumps(steps, ensure_ascii=True)}\n\n"
        f"Final files JSON:\n{json.dumps(files, ensure_ascii=True)}\n\n"
        f"Installed packages: {', '.join(workspace.packages) or 'none'}"
    )
