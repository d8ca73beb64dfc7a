"""Retrieve node: compact history and load project memory before planning."""

from __future__ import annotations

import logging

from workspace_agent.context import RunContext, compact_history
from workspace_agent.graph.state import AgentRuntime, AgentState

logger = logging.getLogger(__name__)


def run(state: AgentState, runtime: AgentRuntime) -> AgentState:
    settings = runtime.settings
    request = state["request"]

    compaction = compact_history(
        request.conversation_history,
        threshold=settings.history_compaction_threshold,
        recent_ratio=settings.history_recent_ratio,
        max_pairs=settings.summary_max_pairs,
        max_chars=settings.summary_chars_per_turn,
    )
    if compaction.compacted:
        logger.info(
            "History compacted project=%s before=%d after=%d",
            request.project_id,
            len(request.conversation_history),
            len(compaction.messages),
        )

    context = RunContext(
        goal=request.goal,
        memories=runtime.memory.memories(request.project_id, settings.memory_context_limit),
        learnings=runtime.memory.learnings(request.project_id, settings.learning_context_limit),
        history=compaction.messages,
        memory_limit=settings.memory_context_limit,
        learning_limit=settings.learning_context_limit,
    )
    return {"context": context, "history_was_compacted": compaction.compacted}
