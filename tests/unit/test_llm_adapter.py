import json

import pytest

import workspace_agent.llm as llm_module
from workspace_agent.config.settings import Settings
from workspace_agent.errors import ModelResponseError
from workspace_agent.llm import OpenAIChatCompletionsAdapter, build_llm_adapter, parse_model_turn
from workspace_agent.planner import PlanDraft


def _response(message: dict) -> dict:
    return {"choices": [{"message": message}]}


def test_parse_model_turn_reads_tool_calls() -> None:
    turn = parse_model_turn(
        _response(
            {
                "content": None,
                "tool_calls": [
                    {
                        "id": "call_1",
                        "type": "function",
                        "function": {
                            "name": "create_file",
                            "arguments": json.dumps({"path": "index.html", "content": "<p/>"}),
                        },
                    },
                    {"id": "call_2", "function": {"name": "complete_step", "arguments": ""}},
                ],
            }
        )
    )

    assert turn.content is None
    assert [call.name for call in turn.tool_calls] == ["create_file", "complete_step"]
    assert turn.tool_calls[0].arguments == {"path": "index.html", "content": "<p/>"}
    assert turn.tool_calls[1].arguments == {}


def test_parse_model_turn_keeps_unparseable_arguments_for_validation() -> None:
    turn = parse_model_turn(
        _response({"tool_calls": [{"function": {"name": "edit_file", "arguments": "{oops"}}]})
    )

    assert turn.tool_calls[0].arguments == {"__raw__": "{oops"}


def test_parse_model_turn_without_choices_raises() -> None:
    with pytest.raises(ModelResponseError):
        parse_model_turn({"choices": []})


def test_generate_structured_validates_json_content(monkeypatch) -> None:
    adapter = OpenAIChatCompletionsAdapter(api_key="dummy", max_retries=0)
    captured = {}

    def fake_request(payload, timeout_s):
        captured.update(payload)
        content = json.dumps({"analysis": "ok", "steps": [{"description": "a"}]})
        return _response({"content": content})

    monkeypatch.setattr(adapter, "_request", fake_request)

    draft = adapter.generate_structured(
        system_prompt="s", user_prompt="u", response_model=PlanDraft, timeout_s=1.0
    )

    assert draft.steps[0].description == "a"
    assert captured["response_format"]["json_schema"]["name"] == "plandraft"


def test_request_is_retried_then_raised(monkeypatch) -> None:
    adapter = OpenAIChatCompletionsAdapter(api_key="dummy", max_retries=1, backoff_s=0.0)
    calls = []

    def flaky_request(payload, timeout_s):
        calls.append(payload)
        raise TimeoutError("slow upstream")

    monkeypatch.setattr(adapter, "_request", flaky_request)

    with pytest.raises(TimeoutError):
        adapter.complete_with_tools(system_prompt="s", messages=[], tools=[], timeout_s=1.0)
    assert len(calls) == 2


def test_build_llm_adapter_requires_key(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert build_llm_adapter(Settings(_env_file=None, openai_api_key="")) is None
    other_provider = Settings(_env_file=None, llm_provider="other", openai_api_key="k")
    assert build_llm_adapter(other_provider) is None
    adapter = build_llm_adapter(Settings(_env_file=None, openai_api_key="k"))
    assert isinstance(adapter, llm_module.OpenAIChatCompletionsAdapter)
