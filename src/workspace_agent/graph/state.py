"""Typed state contract for the invocation workflow."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TypedDict

from workspace_agent.config.settings import Settings
from workspace_agent.context import RunContext
from workspace_agent.engine import ExecutionEngine
from workspace_agent.memory import GuardedStore
from workspace_agent.models import (
    ExecutionPlan,
    ExecutionState,
    InvocationRequest,
    InvocationResult,
    OutcomeVerification,
    ToolResult,
    WorkspaceManifest,
)
from workspace_agent.planner import StrategicPlanner
from workspace_agent.storage.models import ExecutionRecord
from workspace_agent.verifier import OutcomeVerifier


@dataclass
class AgentRuntime:
    """Collaborators shared by every node of one compiled workflow."""

    settings: Settings
    planner: StrategicPlanner
    engine: ExecutionEngine
    verifier: OutcomeVerifier
    memory: GuardedStore


class AgentState(TypedDict, total=False):
    request: InvocationRequest
    record: ExecutionRecord
    record_id: str | None
    cancel_event: threading.Event | None
    context: RunContext
    history_was_compacted: bool
    execution_plan: ExecutionPlan
    execution_state: ExecutionState
    workspace: WorkspaceManifest
    tool_results: list[ToolResult]
    verification: OutcomeVerification
    result: InvocationResult


def initial_state(
    request: InvocationRequest,
    *,
    record: ExecutionRecord,
    record_id: str | None = None,
    cancel_event: threading.Event | None = None,
) -> AgentState:
    return {
        "request": request,
        "record": record,
        "record_id": record_id,
        "cancel_event": cancel_event,
        "history_was_compacted": False,
        "workspace": request.current_files.model_copy(deep=True),
        "tool_results": [],
    }
