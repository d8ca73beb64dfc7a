"""Exception taxonomy for the task-execution engine.

Most of these never escape the package: each one is raised where the failure
happens and recovered at the boundary that owns it (planner fallback, failed
tool result, heuristic verification, swallowed persistence error).
"""

from __future__ import annotations


class WorkspaceAgentError(RuntimeError):
    """Base class for engine errors."""


class PlanningError(WorkspaceAgentError):
    """The model returned a plan that could not be used."""


class ModelResponseError(WorkspaceAgentError):
    """The model capability returned a response that could not be parsed."""


class ToolExecutionError(WorkspaceAgentError):
    """A tool backend rejected or failed a call."""


class VerificationError(WorkspaceAgentError):
    """The outcome verification call failed or returned garbage."""


class PersistenceError(WorkspaceAgentError):
    """A memory, learning or record store operation failed."""


class RecordStateError(WorkspaceAgentError):
    """An execution record was finalized twice."""
