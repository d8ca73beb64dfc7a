"""Per-call context handed to tool handlers."""

from __future__ import annotations

from dataclasses import dataclass

from workspace_agent.models import WorkspaceManifest


@dataclass(frozen=True)
class ToolContext:
    """What a handler may observe about the run that is calling it.

    ``workspace`` is the engine's in-progress snapshot, so read tools see files
    written by earlier calls and earlier steps of the same run. Handlers must
    treat it as read-only; the engine only changes it through the reducer.
    """

    project_id: str
    workspace: WorkspaceManifest
    step_id: str = ""
    image_directory: str = "public/images"
