"""Invocation workflow: retrieve -> plan -> execute -> verify -> finalize."""

from workspace_agent.graph.state import AgentRuntime, AgentState, initial_state
from workspace_agent.graph.workflow import build_graph

__all__ = ["AgentRuntime", "AgentState", "build_graph", "initial_state"]
