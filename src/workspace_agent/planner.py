"""Strategic planning: one structured model call that decomposes a goal.

The model output is never trusted directly. Steps are normalized (fresh
status, unique ids, known tools only) and any failure falls back to a
single-step plan that carries the literal goal, so a run always has
something to execute.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from workspace_agent.errors import PlanningError
from workspace_agent.llm import LLMAdapter
from workspace_agent.models import ExecutionPlan, PlanStep, WorkspaceManifest
from workspace_agent.storage.models import LearningEntry, MemoryEntry
from workspace_agent.tools.registry import COMPLETE_STEP_TOOL, list_tools

logger = logging.getLogger(__name__)

COMPLEXITY_VALUES = ("simple", "moderate", "complex")
FALLBACK_STEP_ID = "step_1"


class StepDraft(BaseModel):
    id: str | None = None
    description: str = ""
    action: str = ""
    tools_needed: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    expected_outcome: str = ""


class PlanDraft(BaseModel):
    """Structured response requested from the model."""

    analysis: str = ""
    complexity: str = "moderate"
    steps: list[StepDraft] = Field(default_factory=list)
    proactive_enhancements: list[str] = Field(default_factory=list)
    estimated_tool_count: int = 0


class StrategicPlanner:
    def __init__(
        self,
        *,
        llm_adapter: LLMAdapter | None,
        timeout_s: float = 60.0,
        max_steps: int = 10,
    ) -> None:
        self.llm_adapter = llm_adapter
        self.timeout_s = timeout_s
        self.max_steps = max_steps

    def build_plan(
        self,
        goal: str,
        workspace: WorkspaceManifest,
        *,
        memories: Sequence[MemoryEntry] = (),
        learnings: Sequence[LearningEntry] = (),
        context_summary: str = "",
    ) -> ExecutionPlan:
        if self.llm_adapter is None:
            logger.warning("No model adapter configured; using single-step plan.")
            return fallback_plan(goal)
        try:
            draft = self.llm_adapter.generate_structured(
                system_prompt=_system_prompt(),
                user_prompt=_user_prompt(goal, workspace, memories, learnings, context_summary),
                response_model=PlanDraft,
                timeout_s=self.timeout_s,
            )
            return normalize_plan(goal, draft, max_steps=self.max_steps)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Planner failed; falling back to single-step plan. reason=%s", exc)
            return fallback_plan(goal)


def fallback_plan(goal: str) -> ExecutionPlan:
    return ExecutionPlan(
        goal=goal,
        analysis="Fallback plan: the goal is executed as a single step.",
        complexity="simple",
        steps=[
            PlanStep(
                id=FALLBACK_STEP_ID,
                description=goal,
                action="execute_goal",
                # Empty hint: the whole tool catalogue is offered for this step.
                tools_needed=[],
                dependencies=[],
                expected_outcome="The goal is satisfied in the project workspace.",
            )
        ],
        proactive_enhancements=[],
        estimated_tool_count=1,
    )


def normalize_plan(goal: str, draft: PlanDraft, *, max_steps: int = 10) -> ExecutionPlan:
    known_tools = set(list_tools()) - {COMPLETE_STEP_TOOL}
    steps: list[PlanStep] = []
    seen_ids: set[str] = set()

    for index, raw in enumerate(draft.steps[:max_steps]):
        description = raw.description.strip()
        if not description:
            continue
        step_id = _unique_id((raw.id or "").strip() or f"step_{index + 1}", seen_ids)
        seen_ids.add(step_id)
        tools_needed = _dedupe([tool for tool in raw.tools_needed if tool in known_tools])
        steps.append(
            PlanStep(
                id=step_id,
                description=description,
                action=raw.action.strip(),
                tools_needed=tools_needed,
                dependencies=_dedupe([dep.strip() for dep in raw.dependencies if dep.strip()]),
                expected_outcome=raw.expected_outcome.strip(),
            )
        )

    if not steps:
        raise PlanningError("Planner returned no usable steps")

    _log_forward_dependencies(steps)
    complexity = draft.complexity.lower().strip()
    return ExecutionPlan(
        goal=goal,
        analysis=draft.analysis.strip(),
        complexity=complexity if complexity in COMPLEXITY_VALUES else "moderate",
        steps=steps,
        proactive_enhancements=[item.strip() for item in draft.proactive_enhancements if item.strip()],
        estimated_tool_count=max(0, draft.estimated_tool_count),
    )


def _log_forward_dependencies(steps: Sequence[PlanStep]) -> None:
    # Forward or unknown references are kept; the engine skips such steps.
    earlier: set[str] = set()
    for step in steps:
        dangling = [dep for dep in step.dependencies if dep not in earlier]
        if dangling:
            logger.warning(
                "Plan step depends on ids not earlier in the plan step=%s deps=%s",
                step.id,
                dangling,
            )
        earlier.add(step.id)


def _unique_id(candidate: str, seen: set[str]) -> str:
    if candidate not in seen:
        return candidate
    suffix = 2
    while f"{candidate}_{suffix}" in seen:
        suffix += 1
    return f"{candidate}_{suffix}"


def _dedupe(values: Sequence[str]) -> list[str]:
    output: list[str] = []
    for value in values:
        if value not in output:
            output.append(value)
    return output


def _system_prompt() -> str:
    tools = ", ".join(tool for tool in list_tools() if tool != COMPLETE_STEP_TOOL)
    return (
        "You are the strategic planner of an autonomous website-building agent. "
        "Decompose the user's goal into 3 to 10 ordered steps that act on the project "
        "workspace. Each step has: id (short, unique), description, action, "
        "tools_needed (subset of the allowed tools), dependencies (ids of EARLIER steps "
        "only), expected_outcome. Classify complexity as simple, moderate or complex. "
        "List proactive_enhancements: valuable additions beyond the literal request. "
        "Estimate estimated_tool_count. Return JSON only. "
        f"Allowed tools: {tools}."
    )


def _user_prompt(
    goal: str,
    workspace: WorkspaceManifest,
    memories: Sequence[MemoryEntry],
    learnings: Sequence[LearningEntry],
    context_summary: str,
) -> str:
    memory_rows = [{"type": item.type, "content": item.content} for item in memories]
    learning_rows = [
        {"type": item.learning_type, "pattern": item.pattern, "insight": item.insight}
        for item in learnings
    ]
    files = [item.path for item in workspace.files]
    return (
        f"Goal:\n{goal}\n\n"
        f"Current files JSON:\n{json.dumps(files, ensure_ascii=True)}\n\n"
        f"Memories JSON:\n{json.dumps(memory_rows, ensure_ascii=True)}\n\n"
        f"Learnings JSON:\n{json.dumps(learning_rows, ensure_ascii=True)}\n\n"
        f"Context:\n{context_summary or '(none)'}\n\n"
        "Return a plan that conforms to the provided schema."
    )
