"""Pydantic models shared by the planner, engine, verifier, storage and API.

Terms used in this file:
- Workspace: the file manifest of one project plus installed packages and
  captured command output.
- Plan: ordered steps produced by the planner and mutated in place by the engine.
- ToolResult: the outcome of one tool call inside one step attempt.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

StepStatus = Literal["pending", "in_progress", "completed", "failed", "skipped"]
Complexity = Literal["simple", "moderate", "complex"]
FinalOutcome = Literal["in_progress", "completed", "partial", "failed"]
MessageRole = Literal["system", "user", "assistant"]


class ProjectFile(BaseModel):
    """One file in the project workspace."""

    id: str
    name: str
    path: str
    content: str = ""
    language: str = "plaintext"
    # Images are stored as files whose content is the synthesized image URL.
    kind: Literal["file", "image"] = "file"


class TerminalEntry(BaseModel):
    """Captured output of one command run."""

    id: str
    command: str
    output: str = ""
    exit_code: int = 0


class WorkspaceManifest(BaseModel):
    """The mutable project snapshot tools read from and the reducer writes to."""

    files: list[ProjectFile] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    terminal: list[TerminalEntry] = Field(default_factory=list)
    # call ids of tool results already folded in during the current run; makes
    # re-application a no-op. Emptied before the manifest leaves the agent.
    applied_result_ids: list[str] = Field(default_factory=list)

    def file_by_id(self, file_id: str) -> ProjectFile | None:
        for item in self.files:
            if item.id == file_id:
                return item
        return None

    def file_by_path(self, path: str) -> ProjectFile | None:
        normalized = path.strip().lstrip("/")
        for item in self.files:
            if item.path.lstrip("/") == normalized:
                return item
        return None


class ToolResult(BaseModel):
    """Outcome of one tool invocation within a step attempt."""

    tool: str
    success: bool
    result: Any = None
    error: str | None = None
    step_id: str
    call_id: str
    duration_ms: float = 0.0


class StepEvaluation(BaseModel):
    success: bool
    score: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)


class StepAttempt(BaseModel):
    """Audit copy of one attempt; never merged back into the scored results."""

    attempt: int
    tool_results: list[ToolResult] = Field(default_factory=list)
    evaluation: StepEvaluation | None = None
    completion_signaled: bool = False
    summary: str | None = None


class PlanStep(BaseModel):
    id: str
    description: str
    action: str = ""
    tools_needed: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    expected_outcome: str = ""
    status: StepStatus = "pending"
    retry_count: int = 0
    # Results of the current attempt only.
    tool_results: list[ToolResult] = Field(default_factory=list)
    evaluation: StepEvaluation | None = None
    attempts: list[StepAttempt] = Field(default_factory=list)


class ExecutionPlan(BaseModel):
    goal: str
    analysis: str = ""
    complexity: Complexity = "simple"
    steps: list[PlanStep] = Field(default_factory=list)
    proactive_enhancements: list[str] = Field(default_factory=list)
    estimated_tool_count: int = 0

    def step_by_id(self, step_id: str) -> PlanStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class ExecutionState(BaseModel):
    completed_steps: list[str] = Field(default_factory=list)
    failed_steps: list[str] = Field(default_factory=list)
    skipped_steps: list[str] = Field(default_factory=list)
    evaluations_passed: int = 0
    evaluations_failed: int = 0
    overall_success: bool = False
    iterations: int = 0
    cancelled: bool = False


class OutcomeVerification(BaseModel):
    goal_achieved: bool
    completeness: int = Field(ge=0, le=100)
    gaps: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    source: Literal["model", "fallback"] = "model"


class ChatMessage(BaseModel):
    role: MessageRole
    content: str


class CommandOutput(BaseModel):
    command: str
    output: str
    exit_code: int = 0


class GeneratedImage(BaseModel):
    path: str
    url: str
    prompt: str


class ToolOutputs(BaseModel):
    commands: list[CommandOutput] = Field(default_factory=list)
    installed_packages: list[str] = Field(default_factory=list)
    generated_images: list[GeneratedImage] = Field(default_factory=list)


class PlanStepSummary(BaseModel):
    id: str
    description: str
    status: StepStatus
    retry_count: int = 0
    score: int | None = None


class PlanSummary(BaseModel):
    goal: str
    analysis: str = ""
    complexity: Complexity = "simple"
    steps: list[PlanStepSummary] = Field(default_factory=list)
    proactive_enhancements: list[str] = Field(default_factory=list)

    @classmethod
    def from_plan(cls, plan: ExecutionPlan) -> PlanSummary:
        return cls(
            goal=plan.goal,
            analysis=plan.analysis,
            complexity=plan.complexity,
            steps=[
                PlanStepSummary(
                    id=step.id,
                    description=step.description,
                    status=step.status,
                    retry_count=step.retry_count,
                    score=step.evaluation.score if step.evaluation else None,
                )
                for step in plan.steps
            ],
            proactive_enhancements=list(plan.proactive_enhancements),
        )


class InvocationRequest(BaseModel):
    """Input of one invocation, as handed over by the presentation layer."""

    goal: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    current_files: WorkspaceManifest = Field(default_factory=WorkspaceManifest)
    conversation_history: list[ChatMessage] = Field(default_factory=list)


class InvocationResult(BaseModel):
    """Best-effort outcome of one invocation plus its completeness report."""

    plan_summary: PlanSummary
    execution_state: ExecutionState
    outcome_verification: OutcomeVerification
    updated_files: WorkspaceManifest
    tool_outputs: ToolOutputs
    history_was_compacted: bool = False
    final_outcome: FinalOutcome
    record_id: str | None = None
