"""Workspace reducer: folds tool outcomes into a file manifest.

``apply_tool_results`` is pure and idempotent. Results are folded once per
step by the engine and again in the end-of-run aggregate pass, so every rule
suppresses duplicates by call id, path or file id.
"""

from __future__ import annotations

import posixpath
import re
import uuid
from collections.abc import Callable, Iterable
from typing import Any

from workspace_agent.models import (
    CommandOutput,
    GeneratedImage,
    ProjectFile,
    TerminalEntry,
    ToolOutputs,
    ToolResult,
    WorkspaceManifest,
)

DEFAULT_IMAGE_DIRECTORY = "public/images"

LANGUAGE_BY_EXTENSION = {
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".js": "javascript",
    ".mjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".json": "json",
    ".md": "markdown",
    ".py": "python",
    ".svg": "svg",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
    ".webp": "image",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".txt": "plaintext",
}


def infer_language(path: str) -> str:
    _, ext = posixpath.splitext(path.lower())
    return LANGUAGE_BY_EXTENSION.get(ext, "plaintext")


def normalize_path(path: str) -> str:
    cleaned = posixpath.normpath(path.strip().lstrip("/"))
    return "" if cleaned == "." else cleaned


def image_path(
    prompt: str,
    *,
    filename: str | None = None,
    directory: str = DEFAULT_IMAGE_DIRECTORY,
) -> str:
    """Conventional location of a synthesized image."""
    if filename:
        stem = _slugify(posixpath.splitext(posixpath.basename(filename))[0])
    else:
        stem = _slugify(" ".join(prompt.split()[:6]))
    return posixpath.join(directory.strip("/"), f"{stem or 'image'}.png")


def apply_tool_results(
    manifest: WorkspaceManifest,
    results: Iterable[ToolResult],
    *,
    image_directory: str = DEFAULT_IMAGE_DIRECTORY,
) -> WorkspaceManifest:
    updated = manifest.model_copy(deep=True)
    applied = set(updated.applied_result_ids)

    for result in results:
        if not result.success or result.call_id in applied:
            continue
        reducer = _REDUCERS.get(result.tool)
        if reducer is None:
            continue
        payload = result.result if isinstance(result.result, dict) else {}
        reducer(updated, result, payload, image_directory)
        applied.add(result.call_id)
        updated.applied_result_ids.append(result.call_id)

    return updated


def collect_tool_outputs(results: Iterable[ToolResult]) -> ToolOutputs:
    outputs = ToolOutputs()
    seen: set[str] = set()
    for result in results:
        if not result.success or result.call_id in seen:
            continue
        seen.add(result.call_id)
        payload = result.result if isinstance(result.result, dict) else {}
        if result.tool == "run_command":
            outputs.commands.append(
                CommandOutput(
                    command=str(payload.get("command", "")),
                    output=str(payload.get("output", "")),
                    exit_code=int(payload.get("exit_code", 0)),
                )
            )
        elif result.tool == "install_package":
            spec = _package_spec(payload)
            if spec and spec not in outputs.installed_packages:
                outputs.installed_packages.append(spec)
        elif result.tool == "generate_image":
            outputs.generated_images.append(
                GeneratedImage(
                    path=str(payload.get("path", "")),
                    url=str(payload.get("url", "")),
                    prompt=str(payload.get("prompt", "")),
                )
            )
    return outputs


def _apply_create(
    manifest: WorkspaceManifest, result: ToolResult, payload: dict[str, Any], _: str
) -> None:
    path = normalize_path(str(payload.get("path", "")))
    file_id = str(payload.get("file_id") or "")
    if not path or manifest.file_by_path(path) is not None:
        return
    if file_id and manifest.file_by_id(file_id) is not None:
        return
    manifest.files.append(
        ProjectFile(
            id=file_id or str(uuid.uuid5(uuid.NAMESPACE_URL, path)),
            name=str(payload.get("name") or posixpath.basename(path)),
            path=path,
            content=str(payload.get("content", "")),
            language=str(payload.get("language") or infer_language(path)),
        )
    )


def _apply_edit(
    manifest: WorkspaceManifest, result: ToolResult, payload: dict[str, Any], _: str
) -> None:
    target = manifest.file_by_id(str(payload.get("file_id", "")))
    if target is None:
        return
    if payload.get("content") is not None:
        target.content = str(payload["content"])
    if payload.get("name"):
        target.name = str(payload["name"])


def _apply_delete(
    manifest: WorkspaceManifest, result: ToolResult, payload: dict[str, Any], _: str
) -> None:
    file_id = str(payload.get("file_id", ""))
    manifest.files = [item for item in manifest.files if item.id != file_id]


def _apply_install(
    manifest: WorkspaceManifest, result: ToolResult, payload: dict[str, Any], _: str
) -> None:
    spec = _package_spec(payload)
    if not spec:
        return
    name = str(payload.get("package", "")).strip()
    existing = [item for item in manifest.packages if _package_name(item) == name]
    if spec in existing:
        return
    manifest.packages = [item for item in manifest.packages if _package_name(item) != name]
    manifest.packages.append(spec)


def _apply_run_command(
    manifest: WorkspaceManifest, result: ToolResult, payload: dict[str, Any], _: str
) -> None:
    if any(entry.id == result.call_id for entry in manifest.terminal):
        return
    manifest.terminal.append(
        TerminalEntry(
            id=result.call_id,
            command=str(payload.get("command", "")),
            output=str(payload.get("output", "")),
            exit_code=int(payload.get("exit_code", 0)),
        )
    )


def _apply_image(
    manifest: WorkspaceManifest,
    result: ToolResult,
    payload: dict[str, Any],
    image_directory: str,
) -> None:
    prompt = str(payload.get("prompt", ""))
    path = normalize_path(str(payload.get("path") or image_path(prompt, directory=image_directory)))
    if manifest.file_by_path(path) is not None:
        return
    manifest.files.append(
        ProjectFile(
            id=str(uuid.uuid5(uuid.NAMESPACE_URL, path)),
            name=posixpath.basename(path),
            path=path,
            content=str(payload.get("url", "")),
            language="image",
            kind="image",
        )
    )


_REDUCERS: dict[
    str, Callable[[WorkspaceManifest, ToolResult, dict[str, Any], str], None]
] = {
    "create_file": _apply_create,
    "edit_file": _apply_edit,
    "delete_file": _apply_delete,
    "install_package": _apply_install,
    "run_command": _apply_run_command,
    "generate_image": _apply_image,
}


def _package_spec(payload: dict[str, Any]) -> str:
    name = str(payload.get("package", "")).strip()
    if not name:
        return ""
    version = payload.get("version")
    return f"{name}@{version}" if version else name


def _package_name(spec: str) -> str:
    # Scoped npm names start with '@', so split on the last '@' only.
    head, sep, _ = spec.rpartition("@")
    return head if sep and head else spec


def _slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:48].rstrip("-")
