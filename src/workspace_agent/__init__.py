"""Autonomous planning and execution agent for website project workspaces."""

from workspace_agent.agent import WorkspaceAgent
from workspace_agent.models import InvocationRequest, InvocationResult

__all__ = ["InvocationRequest", "InvocationResult", "WorkspaceAgent"]

__version__ = "0.1.0"
