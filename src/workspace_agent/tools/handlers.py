"""Simulated tool backends.

The real file storage, shell, package registry and image service live outside
the engine. These handlers honor the same contract against the in-progress
workspace so the engine can run end to end without them; swap any of them by
passing ``tool_handlers={name: fn}`` when building the registry.
"""

from __future__ import annotations

import posixpath
import shlex
import uuid
from urllib.parse import quote

from workspace_agent.errors import ToolExecutionError
from workspace_agent.tools.context import ToolContext
from workspace_agent.tools.schemas import (
    CompleteStepInput,
    CompleteStepOutput,
    CreateFileInput,
    DeleteFileInput,
    DeleteFileOutput,
    EditFileInput,
    FileListing,
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
from workspace_agent.workspace import image_path, infer_language, normalize_path

PLACEHOLDER_IMAGE_URL = "https://placehold.co/{size}/png?text={text}"


def create_file(payload: CreateFileInput, context: ToolContext) -> FileOutput:
    path = normalize_path(payload.path)
    if not path:
        raise ToolExecutionError(f"Invalid file path: {payload.path!r}")
    existing = context.workspace.file_by_path(path)
    if existing is not None:
        raise ToolExecutionError(
            f"File already exists at {path} (id={existing.id}); use edit_file instead"
        )
    return FileOutput(
        file_id=str(uuid.uuid4()),
        path=path,
        name=payload.name or posixpath.basename(path),
        content=payload.content,
        language=infer_language(path),
    )


def edit_file(payload: EditFileInput, context: ToolContext) -> FileOutput:
    current = context.workspace.file_by_id(payload.file_id)
    if current is None:
        raise ToolExecutionError(f"File not found: {payload.file_id}")
    return FileOutput(
        file_id=current.id,
        path=current.path,
        name=payload.name or current.name,
        content=payload.content if payload.content is not None else current.content,
        language=current.language,
    )


def delete_file(payload: DeleteFileInput, context: ToolContext) -> DeleteFileOutput:
    current = context.workspace.file_by_id(payload.file_id)
    if current is None:
        raise ToolExecutionError(f"File not found: {payload.file_id}")
    return DeleteFileOutput(file_id=current.id, path=current.path)


def read_file(payload: ReadFileInput, context: ToolContext) -> FileOutput:
    current = None
    if payload.file_id:
        current = context.workspace.file_by_id(payload.file_id)
    if current is None and payload.path:
        current = context.workspace.file_by_path(payload.path)
    if current is None:
        raise ToolExecutionError(f"File not found: {payload.file_id or payload.path}")
    return FileOutput(
        file_id=current.id,
        path=current.path,
        name=current.name,
        content=current.content,
        language=current.language,
    )


def list_files(payload: ListFilesInput, context: ToolContext) -> ListFilesOutput:
    prefix = normalize_path(payload.prefix) if payload.prefix else ""
    listings = [
        FileListing(
            file_id=item.id,
            path=item.path,
            language=item.language,
            size=len(item.content),
        )
        for item in context.workspace.files
        if not prefix or item.path.startswith(prefix)
    ]
    return ListFilesOutput(files=listings)


def run_command(payload: RunCommandInput, context: ToolContext) -> RunCommandOutput:
    try:
        argv = shlex.split(payload.command)
    except ValueError as exc:
        raise ToolExecutionError(f"Could not parse command: {exc}") from exc
    if not argv:
        raise ToolExecutionError("Empty command")
    return RunCommandOutput(
        command=payload.command,
        output=f"$ {payload.command}\n[simulated] {argv[0]} exited with status 0",
        exit_code=0,
    )


def install_package(payload: InstallPackageInput, context: ToolContext) -> InstallPackageOutput:
    spec = f"{payload.package}@{payload.version}" if payload.version else payload.package
    scope = "devDependencies" if payload.dev else "dependencies"
    return InstallPackageOutput(
        package=payload.package,
        version=payload.version,
        output=f"[simulated] added {spec} to {scope}",
    )


def generate_image(payload: GenerateImageInput, context: ToolContext) -> GenerateImageOutput:
    path = image_path(
        payload.prompt,
        filename=payload.filename,
        directory=context.image_directory,
    )
    text = quote(" ".join(payload.prompt.split()[:4]))
    return GenerateImageOutput(
        path=path,
        url=PLACEHOLDER_IMAGE_URL.format(size=payload.size, text=text),
        prompt=payload.prompt,
    )


def complete_step(payload: CompleteStepInput, context: ToolContext) -> CompleteStepOutput:
    return CompleteStepOutput(acknowledged=True, summary=payload.summary)
