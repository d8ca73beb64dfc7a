"""Finalize node: fold results, persist learnings and close the execution record."""

from __future__ import annotations

import logging

from workspace_agent.graph.state import AgentRuntime, AgentState
from workspace_agent.memory import derive_learnings, summarize_run
from workspace_agent.models import (
    ExecutionPlan,
    ExecutionState,
    FinalOutcome,
    InvocationResult,
    PlanSummary,
)
from workspace_agent.workspace import apply_tool_results, collect_tool_outputs

logger = logging.getLogger(__name__)


def run(state: AgentState, runtime: AgentRuntime) -> AgentState:
    request = state["request"]
    plan = state["execution_plan"]
    execution_state = state["execution_state"]
    verification = state["verification"]
    tool_results = state.get("tool_results", [])

    # Already folded per call by the engine; this pass is a no-op unless a
    # result slipped past it.
    workspace = apply_tool_results(
        state["workspace"],
        tool_results,
        image_directory=runtime.settings.image_directory,
    ).model_copy(update={"applied_result_ids": []})
    final_outcome = resolve_final_outcome(plan, execution_state)

    learnings = derive_learnings(plan)
    summary = summarize_run(plan, execution_state, verification)
    runtime.memory.save(request.project_id, [*learnings, summary])

    record = state["record"]
    record.finalize(
        final_outcome,
        plan=plan.model_dump(mode="json", exclude={"steps"}),
        execution_steps=[step.model_dump(mode="json") for step in plan.steps],
        evaluation_results=[
            {"step_id": step.id, **step.evaluation.model_dump(mode="json")}
            for step in plan.steps
            if step.evaluation is not None
        ],
        lessons_learned=[learning.insight for learning in learnings],
        total_iterations=execution_state.iterations,
    )
    runtime.memory.update_record(state.get("record_id"), record)
    logger.info(
        "Invocation finished project=%s outcome=%s completed=%d failed=%d skipped=%d",
        request.project_id,
        final_outcome,
        len(execution_state.completed_steps),
        len(execution_state.failed_steps),
        len(execution_state.skipped_steps),
    )

    result = InvocationResult(
        plan_summary=PlanSummary.from_plan(plan),
        execution_state=execution_state,
        outcome_verification=verification,
        updated_files=workspace,
        tool_outputs=collect_tool_outputs(tool_results),
        history_was_compacted=state.get("history_was_compacted", False),
        final_outcome=final_outcome,
        record_id=state.get("record_id"),
    )
    return {"workspace": workspace, "record": record, "result": result}


def resolve_final_outcome(plan: ExecutionPlan, state: ExecutionState) -> FinalOutcome:
    if state.cancelled or not state.completed_steps:
        return "failed"
    if len(state.completed_steps) == len(plan.steps):
        return "completed"
    return "partial"
