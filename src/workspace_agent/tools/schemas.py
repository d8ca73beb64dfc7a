"""Strict Pydantic schemas for tool inputs and outputs."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid")


class CreateFileInput(StrictModel):
    path: str = Field(min_length=1, description="Project-relative path, e.g. 'index.html'.")
    content: str = ""
    name: str | None = None


class EditFileInput(StrictModel):
    file_id: str = Field(min_length=1)
    content: str | None = None
    name: str | None = None

    @model_validator(mode="after")
    def _require_change(self) -> EditFileInput:
        if self.content is None and self.name is None:
            raise ValueError("edit_file needs 'content' or 'name'")
        return self


class FileOutput(StrictModel):
    file_id: str
    path: str
    name: str
    content: str
    language: str


class DeleteFileInput(StrictModel):
    file_id: str = Field(min_length=1)


class DeleteFileOutput(StrictModel):
    file_id: str
    path: str


class ReadFileInput(StrictModel):
    file_id: str | None = None
    path: str | None = None

    @model_validator(mode="after")
    def _require_locator(self) -> ReadFileInput:
        if not self.file_id and not self.path:
            raise ValueError("read_file needs 'file_id' or 'path'")
        return self


class ListFilesInput(StrictModel):
    prefix: str | None = None


class FileListing(StrictModel):
    file_id: str
    path: str
    language: str
    size: int


class ListFilesOutput(StrictModel):
    files: list[FileListing]


class RunCommandInput(StrictModel):
    command: str = Field(min_length=1)


class RunCommandOutput(StrictModel):
    command: str
    output: str
    exit_code: int = 0


class InstallPackageInput(StrictModel):
    package: str = Field(min_length=1)
    version: str | None = None
    dev: bool = False


class InstallPackageOutput(StrictModel):
    package: str
    version: str | None = None
    output: str = ""


ImageSize = Literal["256x256", "512x512", "1024x1024"]


class GenerateImageInput(StrictModel):
    prompt: str = Field(min_length=1)
    filename: str | None = None
    size: ImageSize = "1024x1024"


class GenerateImageOutput(StrictModel):
    path: str
    url: str
    prompt: str


class CompleteStepInput(StrictModel):
    summary: str = ""


class CompleteStepOutput(StrictModel):
    acknowledged: bool
    summary: str = ""
