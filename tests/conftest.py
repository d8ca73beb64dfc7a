from __future__ import annotations

from typing import Any

import pytest

from workspace_agent.config.settings import Settings
from workspace_agent.llm import ModelTurn
from workspace_agent.storage.memory import InMemoryProjectStore


class ScriptedLLM:
    """Test-only model adapter that replays scripted responses in order.

    ``turns`` feeds ``complete_with_tools``; an exhausted script answers with
    narration only. ``plan`` and ``verification`` feed ``generate_structured``
    by response model; an ``Exception`` instance is raised instead of returned.
    """

    def __init__(
        self,
        *,
        plan: dict[str, Any] | Exception | None = None,
        turns: list[ModelTurn | Exception] | None = None,
        verification: dict[str, Any] | Exception | None = None,
    ) -> None:
        self.plan = plan
        self.turns = list(turns or [])
        self.verification = verification
        self.tool_requests: list[dict[str, Any]] = []
        self.structured_requests: list[str] = []
        self.structured_prompts: list[str] = []

    def generate_structured(self, *, system_prompt, user_prompt, response_model, timeout_s):
        name = response_model.__name__
        self.structured_requests.append(name)
        self.structured_prompts.append(user_prompt)
        scripted = {"PlanDraft": self.plan, "VerificationDraft": self.verification}.get(name)
        if scripted is None:
            raise RuntimeError(f"No scripted response for {name}")
        if isinstance(scripted, Exception):
            raise scripted
        return response_model.model_validate(scripted)

    def complete_with_tools(self, *, system_prompt, messages, tools, timeout_s) -> ModelTurn:
        self.tool_requests.append(
            {
                "system_prompt": system_prompt,
                "messages": list(messages),
                "tools": [item["function"]["name"] for item in tools],
            }
        )
        if not self.turns:
            return ModelTurn(content="Nothing left to do.")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn


class FailingProjectStore:
    """Test-only store whose every operation raises."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def migrate(self) -> None:
        return None

    def retrieve(self, project_id, kind, limit, most_recent_first=True):
        self.calls.append("retrieve")
        raise ConnectionError("database unavailable")

    def store(self, project_id, entry) -> None:
        self.calls.append("store")
        raise ConnectionError("database unavailable")

    def create_record(self, project_id, record) -> str:
        self.calls.append("create_record")
        raise ConnectionError("database unavailable")

    def update_record(self, record_id, record) -> None:
        self.calls.append("update_record")
        raise ConnectionError("database unavailable")

    def get_latest_record(self, project_id):
        self.calls.append("get_latest_record")
        raise ConnectionError("database unavailable")


@pytest.fixture
def scripted_llm() -> type[ScriptedLLM]:
    return ScriptedLLM


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="",
        openai_api_key="",
        tool_timeout_s=2.0,
    )


@pytest.fixture
def store() -> InMemoryProjectStore:
    return InMemoryProjectStore()


@pytest.fixture
def failing_store() -> FailingProjectStore:
    return FailingProjectStore()
