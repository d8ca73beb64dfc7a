"""Schema-enforcing tool dispatcher with timeout handling.

The dispatcher is the boundary between the engine and the external tool
backends: every failure behind it comes back as a failed ``ToolResult``.
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from typing import Any

from pydantic import BaseModel, ValidationError

from workspace_agent.models import ToolResult
from workspace_agent.tools.context import ToolContext
from workspace_agent.tools.registry import ToolSpec, build_registry

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Invoke registered tools with strict validation and a per-call timeout."""

    def __init__(
        self,
        *,
        registry: dict[str, ToolSpec] | None = None,
        tool_timeout_s: float = 10.0,
    ) -> None:
        self.registry = registry or build_registry()
        self.tool_timeout_s = tool_timeout_s

    def dispatch(
        self,
        tool_name: str,
        args: Any,
        *,
        step_id: str,
        context: ToolContext,
        call_id: str | None = None,
    ) -> ToolResult:
        started_at = time.perf_counter()
        resolved_call_id = call_id or f"call_{uuid.uuid4().hex[:12]}"
        try:
            output = self._dispatch_once(tool_name, args, context)
        except Exception as exc:  # noqa: BLE001
            error = _describe_error(tool_name, exc)
            logger.warning(
                "Tool call failed project=%s step=%s tool=%s reason=%s",
                context.project_id,
                step_id,
                tool_name,
                error,
            )
            return ToolResult(
                tool=tool_name,
                success=False,
                error=error,
                step_id=step_id,
                call_id=resolved_call_id,
                duration_ms=_duration_ms(started_at),
            )

        return ToolResult(
            tool=tool_name,
            success=True,
            result=output,
            step_id=step_id,
            call_id=resolved_call_id,
            duration_ms=_duration_ms(started_at),
        )

    def _dispatch_once(self, tool_name: str, args: Any, context: ToolContext) -> dict[str, Any]:
        spec = self.registry.get(tool_name)
        if spec is None:
            raise ValueError(f"Unknown tool: {tool_name}")

        payload = spec.input_model.model_validate(args if args is not None else {})
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            future = pool.submit(spec.fn, payload, context)
            try:
                raw_output = future.result(timeout=self.tool_timeout_s)
            except TimeoutError as exc:
                raise TimeoutError(
                    f"Tool '{tool_name}' timed out after {self.tool_timeout_s:.2f}s"
                ) from exc
        finally:
            # Do not block on a handler that overran its timeout.
            pool.shutdown(wait=False)

        if isinstance(raw_output, BaseModel):
            raw_output = raw_output.model_dump(mode="json")
        validated_output = spec.output_model.model_validate(raw_output)
        return validated_output.model_dump(mode="json")


def _describe_error(tool_name: str, exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in item['loc']) or 'args'}: {item['msg']}"
            for item in exc.errors()
        )
        return f"Invalid arguments for {tool_name}: {details}"
    message = str(exc).strip()
    return message or exc.__class__.__name__


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
