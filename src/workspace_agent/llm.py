"""Model capability: structured completions and tool-calling round-trips.

The engine treats the model as opaque. ``LLMAdapter`` is the only surface it
depends on; ``OpenAIChatCompletionsAdapter`` is the production implementation
and tests inject scripted adapters instead.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol, TypeVar
from urllib import error, request

from pydantic import BaseModel, Field

from workspace_agent.config.settings import Settings
from workspace_agent.errors import ModelResponseError

TModel = TypeVar("TModel", bound=BaseModel)
logger = logging.getLogger(__name__)


class ToolCallRequest(BaseModel):
    """One tool invocation requested by the model."""

    id: str | None = None
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ModelTurn(BaseModel):
    """Either tool-invocation requests, final text, or both."""

    content: str | None = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)


class LLMAdapter(Protocol):
    """Interface for structured and tool-calling completions."""

    def generate_structured(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        response_model: type[TModel],
        timeout_s: float,
    ) -> TModel: ...

    def complete_with_tools(
        self,
        *,
        system_prompt: str,
        messages: list[dict[str, str]],
        tools: list[dict[str, Any]],
        timeout_s: float,
    ) -> ModelTurn: ...


class OpenAIChatCompletionsAdapter:
    """Small OpenAI adapter using the chat completions REST API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        max_retries: int = 1,
        backoff_s: float = 0.2,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)

    def generate_structured(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        response_model: type[TModel],
        timeout_s: float,
    ) -> TModel:
        payload = {
            "model": self.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": response_model.__name__.lower(),
                    # Free-form fields (tool args, metadata) rule out strict mode.
                    "strict": False,
                    "schema": response_model.model_json_schema(),
                },
            },
        }
        response_json = self._request_with_retry(payload, timeout_s=timeout_s)
        content = _message_text(_first_message(response_json))
        if not content:
            raise ModelResponseError("OpenAI response content was empty")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ModelResponseError("OpenAI response content was not valid JSON") from exc
        return response_model.model_validate(parsed)

    def complete_with_tools(
        self,
        *,
        system_prompt: str,
        messages: list[dict[str, str]],
        tools: list[dict[str, Any]],
        timeout_s: float,
    ) -> ModelTurn:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": 0,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        response_json = self._request_with_retry(payload, timeout_s=timeout_s)
        return parse_model_turn(response_json)

    def _request_with_retry(self, payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._request(payload, timeout_s=timeout_s)
            except (TimeoutError, ValueError, error.URLError, error.HTTPError) as exc:
                last_error = exc
                logger.warning(
                    "OpenAI request failed attempt=%d/%d model=%s reason=%s",
                    attempt + 1,
                    self.max_retries + 1,
                    self.model,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)
        if last_error is None:
            raise RuntimeError("LLM request failed with unknown error")
        raise last_error

    def _request(self, payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise error.HTTPError(
                exc.url,
                exc.code,
                f"OpenAI API request failed: {raw_error[:400]}",
                exc.headers,
                exc.fp,
            ) from exc
        return json.loads(body)


def parse_model_turn(response_json: dict[str, Any]) -> ModelTurn:
    message = _first_message(response_json)
    tool_calls: list[ToolCallRequest] = []
    for raw_call in message.get("tool_calls") or []:
        if not isinstance(raw_call, dict):
            continue
        function = raw_call.get("function") or {}
        name = function.get("name")
        if not isinstance(name, str) or not name:
            continue
        tool_calls.append(
            ToolCallRequest(
                id=raw_call.get("id"),
                name=name,
                arguments=_parse_arguments(function.get("arguments")),
            )
        )
    return ModelTurn(content=_message_text(message) or None, tool_calls=tool_calls)


def build_llm_adapter(settings: Settings) -> LLMAdapter | None:
    if settings.llm_provider.lower().strip() != "openai":
        logger.warning("Unsupported LLM provider=%s; no adapter built", settings.llm_provider)
        return None

    api_key = settings.resolved_openai_api_key()
    if not api_key:
        return None

    return OpenAIChatCompletionsAdapter(
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
    )


def _first_message(response_json: dict[str, Any]) -> dict[str, Any]:
    choices = response_json.get("choices", [])
    if not choices:
        raise ModelResponseError("OpenAI response did not contain choices")
    message = choices[0].get("message", {})
    return message if isinstance(message, dict) else {}


def _message_text(message: dict[str, Any]) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts).strip()
    return ""


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        # Unparseable arguments reach the dispatcher as a validation failure.
        return {"__raw__": raw}
    return parsed if isinstance(parsed, dict) else {"__raw__": parsed}
