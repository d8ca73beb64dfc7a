"""Plan node: build the execution plan from goal, workspace and memory."""

from __future__ import annotations

import logging

from workspace_agent.graph.state import AgentRuntime, AgentState

logger = logging.getLogger(__name__)


def run(state: AgentState, runtime: AgentRuntime) -> AgentState:
    request = state["request"]
    context = state["context"]
    workspace = state["workspace"]

    plan = runtime.planner.build_plan(
        request.goal,
        workspace,
        memories=context.memories,
        learnings=context.learnings,
        context_summary=context.render(workspace),
    )
    logger.info(
        "Plan built project=%s steps=%d complexity=%s",
        request.project_id,
        len(plan.steps),
        plan.complexity,
    )
    return {"execution_plan": plan}
