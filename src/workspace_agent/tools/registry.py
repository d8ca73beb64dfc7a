"""Tool catalogue: schemas, handlers and model-facing declarations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from workspace_agent.tools import handlers
from workspace_agent.tools.context import ToolContext
from workspace_agent.tools.schemas import (
    CompleteStepInput,
    CompleteStepOutput,
    CreateFileInput,
    DeleteFileInput,
    DeleteFileOutput,
    EditFileInput,
    FileOutput,
    GenerateImageInput,
    GenerateImageOutput,
    InstallPackageInput,
    InstallPackageOutput,
    ListFilesInput,
    ListFilesOutput,
    ReadFileInput,
    RunCommandInput,
    RunCommandOutput,
)

COMPLETE_STEP_TOOL = "complete_step"
READ_TOOLS = ("read_file", "list_files")

ToolHandler = Callable[[BaseModel, ToolContext], Any]


@dataclass(frozen=True)
class ToolSpec:
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    fn: ToolHandler
    description: str
    implementation: str = "simulated"


_CATALOGUE: dict[str, tuple[type[BaseModel], type[BaseModel], ToolHandler, str]] = {
    "create_file": (
        CreateFileInput,
        FileOutput,
        handlers.create_file,
        "Create a new file at a project-relative path with the given content.",
    ),
    "edit_file": (
        EditFileInput,
        FileOutput,
        handlers.edit_file,
        "Replace the content and/or name of an existing file, addressed by file_id.",
    ),
    "delete_file": (
        DeleteFileInput,
        DeleteFileOutput,
        handlers.delete_file,
        "Delete an existing file, addressed by file_id.",
    ),
    "read_file": (
        ReadFileInput,
        FileOutput,
        handlers.read_file,
        "Read a file of the current workspace by file_id or path.",
    ),
    "list_files": (
        ListFilesInput,
        ListFilesOutput,
        handlers.list_files,
        "List the files of the current workspace, optionally under a path prefix.",
    ),
    "run_command": (
        RunCommandInput,
        RunCommandOutput,
        handlers.run_command,
        "Run a shell command in the project and capture its output.",
    ),
    "install_package": (
        InstallPackageInput,
        InstallPackageOutput,
        handlers.install_package,
        "Install a package from the registry into the project.",
    ),
    "generate_image": (
        GenerateImageInput,
        GenerateImageOutput,
        handlers.generate_image,
        "Synthesize an image from a prompt and store it in the project.",
    ),
    COMPLETE_STEP_TOOL: (
        CompleteStepInput,
        CompleteStepOutput,
        handlers.complete_step,
        "Signal that the current step is done. Call it after the step's tool calls.",
    ),
}


def build_registry(tool_handlers: Mapping[str, ToolHandler] | None = None) -> dict[str, ToolSpec]:
    overrides = dict(tool_handlers or {})
    unknown = sorted(set(overrides) - set(_CATALOGUE))
    if unknown:
        raise ValueError(f"Unknown tool handlers: {', '.join(unknown)}")

    registry: dict[str, ToolSpec] = {}
    for name, (input_model, output_model, default_fn, description) in _CATALOGUE.items():
        custom = overrides.get(name)
        registry[name] = ToolSpec(
            input_model=input_model,
            output_model=output_model,
            fn=custom or default_fn,
            description=description,
            implementation="custom" if custom else "simulated",
        )
    return registry


def list_tools() -> list[str]:
    return sorted(_CATALOGUE.keys())


def declared_tool_names(tools_needed: Iterable[str], registry: Mapping[str, ToolSpec]) -> list[str]:
    """Tools offered to the model for one step.

    An empty hint means the step is generic and gets the whole catalogue.
    Otherwise the hint is widened with the read tools and the completion signal.
    """
    hinted = [name for name in tools_needed if name in registry]
    if not hinted:
        return list(registry.keys())

    names: list[str] = []
    for name in [*hinted, *READ_TOOLS, COMPLETE_STEP_TOOL]:
        if name in registry and name not in names:
            names.append(name)
    return names


def tool_declarations(
    registry: Mapping[str, ToolSpec], names: Iterable[str] | None = None
) -> list[dict[str, Any]]:
    selected = list(names) if names is not None else list(registry.keys())
    declarations: list[dict[str, Any]] = []
    for name in selected:
        spec = registry.get(name)
        if spec is None:
            continue
        declarations.append(
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": spec.description,
                    "parameters": spec.input_model.model_json_schema(),
                },
            }
        )
    return declarations
