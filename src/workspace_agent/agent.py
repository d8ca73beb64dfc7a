"""Invocation entry point: one goal in, one best-effort result out."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

from workspace_agent.config.settings import Settings, get_settings
from workspace_agent.engine import ExecutionEngine, StepExecutor
from workspace_agent.graph.state import AgentRuntime, initial_state
from workspace_agent.graph.workflow import build_graph
from workspace_agent.llm import LLMAdapter
from workspace_agent.memory import GuardedStore
from workspace_agent.models import InvocationRequest, InvocationResult
from workspace_agent.planner import StrategicPlanner
from workspace_agent.storage.base import ProjectStore
from workspace_agent.storage.models import ExecutionRecord
from workspace_agent.tools import ToolDispatcher, ToolHandler, build_registry
from workspace_agent.verifier import OutcomeVerifier

logger = logging.getLogger(__name__)


class WorkspaceAgent:
    """Plans, executes and verifies a goal against one project workspace.

    The store is optional; without one the run still completes, it just
    starts without memory and leaves no execution record.
    """

    def __init__(
        self,
        *,
        llm_adapter: LLMAdapter | None,
        store: ProjectStore | None = None,
        tool_handlers: Mapping[str, ToolHandler] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.memory = GuardedStore(store)
        self.registry = build_registry(tool_handlers)
        self.runtime = AgentRuntime(
            settings=self.settings,
            planner=StrategicPlanner(
                llm_adapter=llm_adapter,
                timeout_s=self.settings.llm_timeout_s,
                max_steps=self.settings.max_plan_steps,
            ),
            engine=ExecutionEngine(
                step_executor=StepExecutor(
                    llm_adapter=llm_adapter,
                    registry=self.registry,
                    timeout_s=self.settings.llm_timeout_s,
                ),
                dispatcher=ToolDispatcher(
                    registry=self.registry,
                    tool_timeout_s=self.settings.tool_timeout_s,
                ),
                max_retries=self.settings.max_retries,
                max_iterations_per_step=self.settings.max_iterations_per_step,
                max_iterations=self.settings.max_iterations,
                image_directory=self.settings.image_directory,
            ),
            verifier=OutcomeVerifier(
                llm_adapter=llm_adapter,
                timeout_s=self.settings.llm_timeout_s,
            ),
            memory=self.memory,
        )
        self.workflow = build_graph(self.runtime)

    def invoke(
        self,
        request: InvocationRequest,
        cancel_event: threading.Event | None = None,
    ) -> InvocationResult:
        record = ExecutionRecord(project_id=request.project_id, goal=request.goal)
        record_id = self.memory.create_record(request.project_id, record)
        record.record_id = record_id
        logger.info("Invocation started project=%s record=%s", request.project_id, record_id)

        state = initial_state(
            request,
            record=record,
            record_id=record_id,
            cancel_event=cancel_event,
        )
        try:
            result = self.workflow.invoke(state)
        except Exception:
            if not record.is_terminal:
                record.finalize(
                    "failed",
                    plan=None,
                    execution_steps=[],
                    evaluation_results=[],
                    lessons_learned=[],
                    total_iterations=0,
                )
                self.memory.update_record(record_id, record)
            raise
        return result["result"]
