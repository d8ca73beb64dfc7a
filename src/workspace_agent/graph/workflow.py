"""LangGraph workflow assembly for one invocation."""

from langgraph.graph import END, StateGraph

from workspace_agent.graph.nodes import execute, finalize, plan, retrieve, verify
from workspace_agent.graph.state import AgentRuntime, AgentState


def build_graph(runtime: AgentRuntime):
    def _retrieve(state: AgentState) -> AgentState:
        return retrieve.run(state, runtime)

    def _plan(state: AgentState) -> AgentState:
        return plan.run(state, runtime)

    def _execute(state: AgentState) -> AgentState:
        return execute.run(state, runtime)

    def _verify(state: AgentState) -> AgentState:
        return verify.run(state, runtime)

    def _finalize(state: AgentState) -> AgentState:
        return finalize.run(state, runtime)

    graph = StateGraph(AgentState)

    graph.add_node("retrieve", _retrieve)
    graph.add_node("plan", _plan)
    graph.add_node("execute", _execute)
    graph.add_node("verify", _verify)
    graph.add_node("finalize", _finalize)

    graph.set_entry_point("retrieve")
    graph.add_edge("retrieve", "plan")
    graph.add_edge("plan", "execute")
    graph.add_edge("execute", "verify")
    graph.add_edge("verify", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()
