"""FastAPI app entrypoint for workspace-agent."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from workspace_agent.agent import WorkspaceAgent
from workspace_agent.config.settings import Settings, get_settings
from workspace_agent.llm import LLMAdapter, build_llm_adapter
from workspace_agent.models import (
    ChatMessage,
    InvocationRequest,
    InvocationResult,
    WorkspaceManifest,
)
from workspace_agent.storage.base import ProjectStore
from workspace_agent.storage.memory import InMemoryProjectStore
from workspace_agent.storage.models import ExecutionRecord
from workspace_agent.storage.postgres import PostgresProjectStore
from workspace_agent.tools import ToolHandler, list_tools

logger = logging.getLogger(__name__)


class GenerateRequest(BaseModel):
    goal: str = Field(min_length=1)
    current_files: WorkspaceManifest = Field(default_factory=WorkspaceManifest)
    conversation_history: list[ChatMessage] = Field(default_factory=list)


def _build_store(settings: Settings) -> ProjectStore:
    database_url = settings.resolved_database_url()
    if not database_url:
        logger.warning("No database URL configured; memory and records are kept in process.")
        return InMemoryProjectStore()
    return PostgresProjectStore(database_url)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store_override: ProjectStore | None,
    llm_adapter: LLMAdapter | None,
    tool_handlers: Mapping[str, ToolHandler] | None,
) -> None:
    if not hasattr(app.state, "store"):
        app.state.store = store_override or _build_store(settings)

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "agent"):
        app.state.agent = WorkspaceAgent(
            llm_adapter=llm_adapter or build_llm_adapter(settings),
            store=app.state.store,
            tool_handlers=tool_handlers,
            settings=settings,
        )


def create_app(
    *,
    store: ProjectStore | None = None,
    llm_adapter: LLMAdapter | None = None,
    tool_handlers: Mapping[str, ToolHandler] | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()

    def _ensure(app: FastAPI) -> None:
        _ensure_runtime_state(
            app,
            settings=settings,
            store_override=store,
            llm_adapter=llm_adapter,
            tool_handlers=tool_handlers,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure(app)
        yield

    app_lifespan = lifespan if store is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if store is not None:
        _ensure(app)

    def _get_agent(request: Request) -> WorkspaceAgent:
        if not hasattr(request.app.state, "agent"):
            _ensure(request.app)
        return request.app.state.agent

    def _get_store(request: Request) -> ProjectStore:
        if not hasattr(request.app.state, "store"):
            _ensure(request.app)
        return request.app.state.store

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools() -> dict[str, list[str]]:
        return {"tools": list_tools()}

    @app.post("/projects/{project_id}/generate", response_model=InvocationResult)
    def generate(project_id: str, payload: GenerateRequest, request: Request) -> InvocationResult:
        agent = _get_agent(request)
        invocation = InvocationRequest(
            goal=payload.goal,
            project_id=project_id,
            current_files=payload.current_files,
            conversation_history=payload.conversation_history,
        )
        try:
            return agent.invoke(invocation)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Invocation failed project=%s reason=%s", project_id, exc)
            raise HTTPException(status_code=500, detail="Invocation failed") from exc

    @app.get("/projects/{project_id}/runs/latest", response_model=ExecutionRecord)
    def get_latest_run(project_id: str, request: Request) -> ExecutionRecord:
        record = _get_store(request).get_latest_record(project_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Execution record not found")
        return record

    return app


app = create_app()
