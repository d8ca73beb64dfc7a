"""Tooling layer for schema-validated execution."""

from workspace_agent.tools.context import ToolContext
from workspace_agent.tools.gateway import ToolDispatcher
from workspace_agent.tools.registry import (
    COMPLETE_STEP_TOOL,
    READ_TOOLS,
    ToolHandler,
    ToolSpec,
    build_registry,
    declared_tool_names,
    list_tools,
    tool_declarations,
)

__all__ = [
    "COMPLETE_STEP_TOOL",
    "READ_TOOLS",
    "ToolContext",
    "ToolDispatcher",
    "ToolHandler",
    "ToolSpec",
    "build_registry",
    "declared_tool_names",
    "list_tools",
    "tool_declarations",
]
