"""Execution engine: walks a plan step by step through bounded attempts.

Step lifecycle::

    pending -> in_progress -> completed | failed | skipped

Steps run strictly in plan order against one workspace snapshot that is
updated in place as tool outcomes arrive, so a later step can read what an
earlier one wrote. Dependencies are checked once, when a step's turn comes:
a dependency that is not ``completed`` by then (including one that points
forward in the plan) makes the step ``skipped``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from workspace_agent.context import RunContext
from workspace_agent.evaluator import evaluate_step
from workspace_agent.llm import LLMAdapter, ToolCallRequest
from workspace_agent.models import (
    ExecutionPlan,
    ExecutionState,
    PlanStep,
    StepAttempt,
    ToolResult,
    WorkspaceManifest,
)
from workspace_agent.tools.context import ToolContext
from workspace_agent.tools.gateway import ToolDispatcher
from workspace_agent.tools.registry import (
    COMPLETE_STEP_TOOL,
    ToolSpec,
    declared_tool_names,
    tool_declarations,
)
from workspace_agent.workspace import DEFAULT_IMAGE_DIRECTORY, apply_tool_results

logger = logging.getLogger(__name__)

NO_ACTION_FEEDBACK = (
    "The previous attempt produced neither tool calls nor a completion signal. "
    "Use the declared tools to act on the workspace, then call complete_step."
)
UNDECLARED_TOOL_ERROR = "not declared for this step"


@dataclass
class StepResponse:
    """What one model round-trip asked for."""

    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    completion_signaled: bool = False
    summary: str | None = None
    text: str | None = None
    error: str | None = None


@dataclass
class EngineOutcome:
    plan: ExecutionPlan
    state: ExecutionState
    workspace: WorkspaceManifest
    # Every result of every attempt, in execution order.
    tool_results: list[ToolResult]


class StepExecutor:
    """One model round-trip for one step, with the step's declared tool set."""

    def __init__(
        self,
        *,
        llm_adapter: LLMAdapter | None,
        registry: dict[str, ToolSpec],
        timeout_s: float = 60.0,
    ) -> None:
        self.llm_adapter = llm_adapter
        self.registry = registry
        self.timeout_s = timeout_s

    def execute(
        self,
        step: PlanStep,
        plan: ExecutionPlan,
        *,
        workspace: WorkspaceManifest,
        context: RunContext,
        feedback: Sequence[str] = (),
    ) -> StepResponse:
        names = declared_tool_names(step.tools_needed, self.registry)
        completed = [item for item in plan.steps if item.status == "completed"]
        system_prompt = _step_system_prompt(
            plan,
            step,
            context_text=context.render(workspace, completed),
            feedback=feedback,
        )
        if self.llm_adapter is None:
            logger.warning("No model adapter configured; step=%s cannot act", step.id)
            return StepResponse(error="No model adapter configured")
        messages = [
            *context.history_payload(),
            {"role": "user", "content": f"Execute step {step.id}: {step.description}"},
        ]
        try:
            turn = self.llm_adapter.complete_with_tools(
                system_prompt=system_prompt,
                messages=messages,
                tools=tool_declarations(self.registry, names),
                timeout_s=self.timeout_s,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Step round-trip failed step=%s reason=%s", step.id, exc)
            return StepResponse(error=str(exc))

        response = StepResponse(text=turn.content)
        for call in turn.tool_calls:
            if call.name == COMPLETE_STEP_TOOL:
                response.completion_signaled = True
                summary = call.arguments.get("summary")
                response.summary = str(summary) if summary else None
                continue
            response.tool_calls.append(call)
        return response


class ExecutionEngine:
    def __init__(
        self,
        *,
        step_executor: StepExecutor,
        dispatcher: ToolDispatcher,
        max_retries: int = 2,
        max_iterations_per_step: int = 5,
        max_iterations: int = 50,
        image_directory: str = DEFAULT_IMAGE_DIRECTORY,
    ) -> None:
        self.step_executor = step_executor
        self.dispatcher = dispatcher
        self.max_retries = max_retries
        self.max_iterations_per_step = max_iterations_per_step
        self.max_iterations = max_iterations
        self.image_directory = image_directory

    def run(
        self,
        plan: ExecutionPlan,
        workspace: WorkspaceManifest,
        *,
        project_id: str,
        context: RunContext,
        cancel_event: threading.Event | None = None,
    ) -> EngineOutcome:
        state = ExecutionState()
        # The dedupe ledger only spans this run; a manifest handed back from an
        # earlier run must not shadow this run's results.
        current = workspace.model_copy(deep=True, update={"applied_result_ids": []})
        run_token = uuid.uuid4().hex[:12]
        executed: list[ToolResult] = []
        halted: str | None = None

        for step in plan.steps:
            if halted is None and _is_cancelled(cancel_event):
                state.cancelled = True
                halted = "run cancelled"
            if halted is None and state.iterations >= self.max_iterations:
                halted = "overall iteration ceiling reached"
            if halted is not None:
                step.status = "skipped"
                state.skipped_steps.append(step.id)
                logger.info("Step skipped step=%s reason=%s", step.id, halted)
                continue

            step.status = "in_progress"
            unmet = [dep for dep in step.dependencies if not _dependency_met(plan, dep)]
            if unmet:
                step.status = "skipped"
                state.skipped_steps.append(step.id)
                logger.info("Step skipped step=%s unmet_dependencies=%s", step.id, unmet)
                continue

            current = self._run_step(
                step,
                plan,
                current,
                project_id=project_id,
                context=context,
                state=state,
                executed=executed,
                run_token=run_token,
                cancel_event=cancel_event,
            )
            if step.status == "completed":
                state.completed_steps.append(step.id)
            else:
                state.failed_steps.append(step.id)
            logger.info(
                "Step finished step=%s status=%s retries=%d",
                step.id,
                step.status,
                step.retry_count,
            )
            if state.cancelled:
                halted = "run cancelled"

        state.overall_success = bool(plan.steps) and len(state.completed_steps) == len(plan.steps)
        return EngineOutcome(plan=plan, state=state, workspace=current, tool_results=executed)

    def _run_step(
        self,
        step: PlanStep,
        plan: ExecutionPlan,
        workspace: WorkspaceManifest,
        *,
        project_id: str,
        context: RunContext,
        state: ExecutionState,
        executed: list[ToolResult],
        run_token: str,
        cancel_event: threading.Event | None,
    ) -> WorkspaceManifest:
        current = workspace
        feedback: list[str] = []
        declared = set(declared_tool_names(step.tools_needed, self.dispatcher.registry))

        for attempt in range(1, self.max_iterations_per_step + 1):
            if _is_cancelled(cancel_event):
                state.cancelled = True
                break
            if state.iterations >= self.max_iterations:
                break
            state.iterations += 1
            step.tool_results = []

            response = self.step_executor.execute(
                step, plan, workspace=current, context=context, feedback=feedback
            )
            for index, call in enumerate(response.tool_calls):
                call_id = f"{run_token}:{step.id}:{state.iterations}:{call.id or index}"
                if call.name in self.dispatcher.registry and call.name not in declared:
                    logger.warning("Undeclared tool call step=%s tool=%s", step.id, call.name)
                    result = ToolResult(
                        tool=call.name,
                        success=False,
                        error=UNDECLARED_TOOL_ERROR,
                        step_id=step.id,
                        call_id=call_id,
                    )
                else:
                    result = self.dispatcher.dispatch(
                        call.name,
                        call.arguments,
                        step_id=step.id,
                        call_id=call_id,
                        context=ToolContext(
                            project_id=project_id,
                            workspace=current,
                            step_id=step.id,
                            image_directory=self.image_directory,
                        ),
                    )
                step.tool_results.append(result)
                executed.append(result)
                current = apply_tool_results(
                    current, [result], image_directory=self.image_directory
                )

            if not (response.completion_signaled or response.tool_calls):
                self._archive(step, attempt, response, evaluation=None)
                feedback = [NO_ACTION_FEEDBACK]
                continue

            evaluation = evaluate_step(step.tool_results)
            step.evaluation = evaluation
            self._archive(step, attempt, response, evaluation=evaluation)
            if evaluation.success:
                state.evaluations_passed += 1
                step.status = "completed"
                return current

            state.evaluations_failed += 1
            step.retry_count += 1
            logger.info(
                "Step attempt failed step=%s attempt=%d retry_count=%d issues=%s",
                step.id,
                attempt,
                step.retry_count,
                evaluation.issues,
            )
            if step.retry_count > self.max_retries:
                step.status = "failed"
                return current
            feedback = list(evaluation.issues)

        step.status = "failed"
        if step.evaluation is None:
            step.evaluation = evaluate_step(step.tool_results)
        return current

    @staticmethod
    def _archive(step: PlanStep, attempt: int, response: StepResponse, *, evaluation) -> None:
        step.attempts.append(
            StepAttempt(
                attempt=attempt,
                tool_results=list(step.tool_results),
                evaluation=evaluation,
                completion_signaled=response.completion_signaled,
                summary=response.summary or response.error,
            )
        )


def _dependency_met(plan: ExecutionPlan, dependency_id: str) -> bool:
    dependency = plan.step_by_id(dependency_id)
    return dependency is not None and dependency.status == "completed"


def _is_cancelled(cancel_event: threading.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _step_system_prompt(
    plan: ExecutionPlan,
    step: PlanStep,
    *,
    context_text: str,
    feedback: Sequence[str],
) -> str:
    lines = [
        "You are the executor of an autonomous website-building agent.",
        "Carry out exactly the current step by calling tools. Address files by file_id "
        "from the project listing; read files before editing them. When the step is "
        f"done, call {COMPLETE_STEP_TOOL} with a one-sentence summary.",
        "",
        f"Overall goal: {plan.goal}",
        f"Current step ({step.id}): {step.description}",
    ]
    if step.action:
        lines.append(f"Action: {step.action}")
    if step.expected_outcome:
        lines.append(f"Expected outcome: {step.expected_outcome}")
    if plan.proactive_enhancements:
        lines.append("Enhancements worth including: " + "; ".join(plan.proactive_enhancements))
    if feedback:
        lines.append("The previous attempt was rejected:")
        lines.extend(f"- {issue}" for issue in feedback)
    lines.extend(["", context_text])
    return "\n".join(lines)
