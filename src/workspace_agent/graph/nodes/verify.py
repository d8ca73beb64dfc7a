"""Verify node: judge goal achievement against the final workspace."""

from __future__ import annotations

from workspace_agent.graph.state import AgentRuntime, AgentState


def run(state: AgentState, runtime: AgentRuntime) -> AgentState:
    verification = runtime.verifier.verify(
        state["request"].goal,
        state["execution_plan"],
        state["workspace"],
    )
    return {"verification": verification}
