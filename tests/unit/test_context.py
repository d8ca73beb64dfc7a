from workspace_agent.context import RunContext, assemble_context, compact_history
from workspace_agent.models import ChatMessage, PlanStep, ProjectFile, WorkspaceManifest
from workspace_agent.storage.models import LearningEntry, MemoryEntry


def _conversation(count: int) -> list[ChatMessage]:
    return [
        ChatMessage(role="user" if index % 2 == 0 else "assistant", content=f"message {index}")
        for index in range(count)
    ]


def test_history_at_threshold_is_unchanged() -> None:
    messages = _conversation(20)

    result = compact_history(messages, threshold=20)

    assert result.compacted is False
    assert result.messages == messages


def test_short_history_is_unchanged() -> None:
    messages = _conversation(10)

    result = compact_history(messages)

    assert result.compacted is False
    assert [item.content for item in result.messages] == [f"message {i}" for i in range(10)]


def test_long_history_keeps_summary_plus_recent_suffix() -> None:
    messages = _conversation(25)

    result = compact_history(messages, threshold=20, recent_ratio=0.7)

    assert result.compacted is True
    assert len(result.messages) == 15
    summary = result.messages[0]
    assert summary.role == "system"
    assert summary.content.startswith("Summary of 11 earlier messages:")
    assert result.messages[1:] == messages[-14:]
    assert "1. User: message 0" in summary.content
    assert "   Assistant: message 1" in summary.content


def test_summary_keeps_only_the_most_recent_pairs() -> None:
    messages = _conversation(60)

    result = compact_history(messages, threshold=20, max_pairs=3)

    summary = result.messages[0].content
    # 46 older messages form 23 pairs; only the last three survive.
    assert "message 40" in summary
    assert "message 45" in summary
    assert "message 39" not in summary
    assert summary.count("User:") == 3


def test_summary_truncates_long_turns() -> None:
    messages = [ChatMessage(role="user", content="x" * 500)] + _conversation(21)

    result = compact_history(messages, threshold=20, max_chars=50)

    first_line = result.messages[0].content.splitlines()[1]
    assert first_line.endswith("...")
    assert len(first_line) <= len("1. User: ") + 50


def test_unpaired_turns_become_one_sided_entries() -> None:
    messages = [
        ChatMessage(role="assistant", content="welcome"),
        ChatMessage(role="user", content="first"),
        ChatMessage(role="user", content="second"),
        ChatMessage(role="system", content="earlier summary"),
    ] + _conversation(20)

    result = compact_history(messages, threshold=20)

    summary = result.messages[0].content
    assert "1. Assistant: welcome" in summary
    assert "2. User: first" in summary
    assert "3. User: second" in summary
    assert "4. Note: earlier summary" in summary


def test_assemble_context_respects_limits() -> None:
    workspace = WorkspaceManifest(
        files=[
            ProjectFile(
                id="f1",
                name="index.html",
                path="index.html",
                content="<html></html>",
                language="html",
            )
        ],
        packages=["tailwindcss@3.4.0"],
    )
    memories = [MemoryEntry(type="preference", content=f"memory {i}") for i in range(12)]
    learnings = [
        LearningEntry(learning_type="success_pattern", pattern=f"pattern {i}", insight="ok")
        for i in range(7)
    ]

    text = assemble_context(
        workspace,
        memories=memories,
        learnings=learnings,
        completed_steps=[PlanStep(id="s1", description="Create the page", status="completed")],
    )

    assert "- index.html (id=f1, html, 13 chars)" in text
    assert "Installed packages: tailwindcss@3.4.0" in text
    assert "memory 9" in text
    assert "memory 10" not in text
    assert "pattern 4" in text
    assert "pattern 5" not in text
    assert "- s1: Create the page" in text


def test_run_context_history_payload_is_role_and_content() -> None:
    context = RunContext(goal="g", history=[ChatMessage(role="user", content="hi")])

    assert context.history_payload() == [{"role": "user", "content": "hi"}]
    assert "(empty project)" in context.render(WorkspaceManifest())
