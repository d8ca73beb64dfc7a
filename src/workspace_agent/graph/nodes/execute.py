"""Execute node: run the plan through the execution engine."""

from __future__ import annotations

from workspace_agent.graph.state import AgentRuntime, AgentState


def run(state: AgentState, runtime: AgentRuntime) -> AgentState:
    outcome = runtime.engine.run(
        state["execution_plan"],
        state["workspace"],
        project_id=state["request"].project_id,
        context=state["context"],
        cancel_event=state.get("cancel_event"),
    )
    return {
        "execution_plan": outcome.plan,
        "execution_state": outcome.state,
        "workspace": outcome.workspace,
        "tool_results": outcome.tool_results,
    }
