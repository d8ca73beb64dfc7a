"""Context assembly and conversation-history compaction."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from workspace_agent.models import ChatMessage, PlanStep, WorkspaceManifest
from workspace_agent.storage.models import LearningEntry, MemoryEntry

DEFAULT_THRESHOLD = 20
DEFAULT_RECENT_RATIO = 0.7
DEFAULT_MAX_PAIRS = 10
DEFAULT_MAX_CHARS = 200


@dataclass(frozen=True)
class CompactionResult:
    messages: list[ChatMessage]
    compacted: bool


@dataclass
class RunContext:
    """Everything retrieved before planning that later prompts draw on."""

    goal: str
    memories: list[MemoryEntry] = field(default_factory=list)
    learnings: list[LearningEntry] = field(default_factory=list)
    history: list[ChatMessage] = field(default_factory=list)
    memory_limit: int = 10
    learning_limit: int = 5

    def render(
        self,
        workspace: WorkspaceManifest,
        completed_steps: Sequence[PlanStep] = (),
    ) -> str:
        return assemble_context(
            workspace,
            memories=self.memories,
            learnings=self.learnings,
            completed_steps=completed_steps,
            memory_limit=self.memory_limit,
            learning_limit=self.learning_limit,
        )

    def history_payload(self) -> list[dict[str, str]]:
        return [message.model_dump() for message in self.history]


def compact_history(
    messages: Sequence[ChatMessage],
    *,
    threshold: int = DEFAULT_THRESHOLD,
    recent_ratio: float = DEFAULT_RECENT_RATIO,
    max_pairs: int = DEFAULT_MAX_PAIRS,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> CompactionResult:
    """Fold everything but the most recent turns into one summary message.

    Histories at or under ``threshold`` come back unchanged. Longer ones keep a
    recent suffix of ``ceil(recent_ratio * threshold)`` messages verbatim.
    """
    history = list(messages)
    if len(history) <= threshold:
        return CompactionResult(messages=history, compacted=False)

    recent_size = max(1, math.ceil(round(recent_ratio * threshold, 6)))
    older = history[:-recent_size]
    recent = history[-recent_size:]

    pairs = _pair_turns(older)[-max_pairs:]
    summary = ChatMessage(
        role="system",
        content=_render_summary(pairs, older_count=len(older), max_chars=max_chars),
    )
    return CompactionResult(messages=[summary, *recent], compacted=True)


def assemble_context(
    workspace: WorkspaceManifest,
    *,
    memories: Sequence[MemoryEntry] = (),
    learnings: Sequence[LearningEntry] = (),
    completed_steps: Sequence[PlanStep] = (),
    memory_limit: int = 10,
    learning_limit: int = 5,
) -> str:
    lines: list[str] = [f"Project files ({len(workspace.files)}):"]
    if workspace.files:
        for item in workspace.files:
            lines.append(
                f"- {item.path} (id={item.id}, {item.language}, {len(item.content)} chars)"
            )
    else:
        lines.append("- (empty project)")

    if workspace.packages:
        lines.append("Installed packages: " + ", ".join(workspace.packages))

    selected_memories = list(memories)[:memory_limit]
    if selected_memories:
        lines.append("Relevant memories:")
        for memory in selected_memories:
            label = f"{memory.type}/{memory.category}" if memory.category else memory.type
            lines.append(f"- [{label}] {_truncate(memory.content, 300)}")

    selected_learnings = list(learnings)[:learning_limit]
    if selected_learnings:
        lines.append("Learnings from earlier runs:")
        for learning in selected_learnings:
            lines.append(
                f"- ({learning.learning_type}) {_truncate(learning.pattern, 120)}: "
                f"{_truncate(learning.insight, 200)}"
            )

    if completed_steps:
        lines.append("Completed steps:")
        for step in completed_steps:
            lines.append(f"- {step.id}: {step.description}")

    return "\n".join(lines)


@dataclass(frozen=True)
class _Exchange:
    user: str | None = None
    assistant: str | None = None
    # System messages (e.g. an earlier summary) are carried as notes.
    note: str | None = None


def _pair_turns(messages: Sequence[ChatMessage]) -> list[_Exchange]:
    pairs: list[_Exchange] = []
    pending_user: str | None = None
    for message in messages:
        if message.role == "user":
            if pending_user is not None:
                pairs.append(_Exchange(user=pending_user))
            pending_user = message.content
        elif message.role == "assistant":
            pairs.append(_Exchange(user=pending_user, assistant=message.content))
            pending_user = None
        else:
            if pending_user is not None:
                pairs.append(_Exchange(user=pending_user))
                pending_user = None
            pairs.append(_Exchange(note=message.content))
    if pending_user is not None:
        pairs.append(_Exchange(user=pending_user))
    return pairs


def _render_summary(pairs: Sequence[_Exchange], *, older_count: int, max_chars: int) -> str:
    lines = [f"Summary of {older_count} earlier messages:"]
    for index, exchange in enumerate(pairs, start=1):
        if exchange.note is not None:
            lines.append(f"{index}. Note: {_truncate(exchange.note, max_chars)}")
            continue
        if exchange.user is not None:
            lines.append(f"{index}. User: {_truncate(exchange.user, max_chars)}")
            if exchange.assistant is not None:
                lines.append(f"   Assistant: {_truncate(exchange.assistant, max_chars)}")
        elif exchange.assistant is not None:
            lines.append(f"{index}. Assistant: {_truncate(exchange.assistant, max_chars)}")
    return "\n".join(lines)


def _truncate(text: str, max_chars: int) -> str:
    compacted = " ".join(text.split())
    if len(compacted) <= max_chars:
        return compacted
    return compacted[: max_chars - 3].rstrip() + "..."
