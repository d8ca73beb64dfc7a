"""Local, deterministic scoring of one step attempt."""

from __future__ import annotations

from collections.abc import Sequence

from workspace_agent.models import StepEvaluation, ToolResult

NO_TOOL_EXECUTIONS = "No tool executions for this step"


def evaluate_step(tool_results: Sequence[ToolResult]) -> StepEvaluation:
    """Score an attempt from its tool outcomes.

    An attempt with no tool results always fails, so narration without action
    never completes a step.
    """
    if not tool_results:
        return StepEvaluation(success=False, score=0, issues=[NO_TOOL_EXECUTIONS])

    issues = [
        f"Tool {result.tool} failed: {result.error or 'Unknown error'}"
        for result in tool_results
        if not result.success
    ]
    success_count = len(tool_results) - len(issues)
    score = round(100 * success_count / len(tool_results))
    return StepEvaluation(success=not issues, score=score, issues=issues)
