import threading

from workspace_agent.context import RunContext
from workspace_agent.engine import UNDECLARED_TOOL_ERROR, ExecutionEngine, StepExecutor
from workspace_agent.errors import ToolExecutionError
from workspace_agent.evaluator import NO_TOOL_EXECUTIONS
from workspace_agent.llm import ModelTurn, ToolCallRequest
from workspace_agent.models import ExecutionPlan, PlanStep, ProjectFile, WorkspaceManifest
from workspace_agent.tools import ToolDispatcher, build_registry


def _turn(*calls: tuple[str, dict]) -> ModelTurn:
    return ModelTurn(
        tool_calls=[
            ToolCallRequest(id=f"call_{index}", name=name, arguments=arguments)
            for index, (name, arguments) in enumerate(calls)
        ]
    )


def _done(summary: str = "done") -> tuple[str, dict]:
    return ("complete_step", {"summary": summary})


def _plan(*steps: PlanStep) -> ExecutionPlan:
    return ExecutionPlan(goal="Build a site", steps=list(steps))


def _engine(llm, *, handlers=None, **bounds) -> ExecutionEngine:
    registry = build_registry(handlers)
    return ExecutionEngine(
        step_executor=StepExecutor(llm_adapter=llm, registry=registry),
        dispatcher=ToolDispatcher(registry=registry, tool_timeout_s=2.0),
        **bounds,
    )


def _run(engine: ExecutionEngine, plan: ExecutionPlan, **kwargs):
    return engine.run(
        plan,
        WorkspaceManifest(),
        project_id="p1",
        context=RunContext(goal=plan.goal),
        **kwargs,
    )


def test_steps_complete_in_order_and_later_steps_read_earlier_output(scripted_llm) -> None:
    llm = scripted_llm(
        turns=[
            _turn(("create_file", {"path": "index.html", "content": "<h1>Hi</h1>"}), _done()),
            _turn(("read_file", {"path": "index.html"}), _done()),
        ]
    )
    plan = _plan(
        PlanStep(id="s1", description="Write the page", tools_needed=["create_file"]),
        PlanStep(id="s2", description="Review the page", dependencies=["s1"]),
    )

    outcome = _run(_engine(llm), plan)

    assert outcome.state.completed_steps == ["s1", "s2"]
    assert outcome.state.overall_success is True
    assert outcome.state.iterations == 2
    assert [item.path for item in outcome.workspace.files] == ["index.html"]
    assert plan.steps[1].tool_results[0].result["content"] == "<h1>Hi</h1>"
    assert "index.html" in llm.tool_requests[1]["system_prompt"]
    assert "- s1: Write the page" in llm.tool_requests[1]["system_prompt"]
    # complete_step is a signal, never a scored result.
    assert all(result.tool != "complete_step" for result in outcome.tool_results)


def test_declared_tools_follow_the_step_hint(scripted_llm) -> None:
    llm = scripted_llm(turns=[_turn(("generate_image", {"prompt": "hero"}), _done())])
    plan = _plan(PlanStep(id="s1", description="Make art", tools_needed=["generate_image"]))

    _run(_engine(llm), plan)

    assert llm.tool_requests[0]["tools"] == [
        "generate_image",
        "read_file",
        "list_files",
        "complete_step",
    ]


def test_failed_attempt_is_retried_and_only_the_last_attempt_is_scored(scripted_llm) -> None:
    install_calls = []

    def flaky_install(payload, context):
        install_calls.append(payload.package)
        if len(install_calls) == 1:
            raise ToolExecutionError("registry unavailable")
        return {"package": payload.package, "version": payload.version}

    llm = scripted_llm(
        turns=[
            _turn(
                ("install_package", {"package": "gsap"}),
                ("create_file", {"path": "index.html", "content": "<main/>"}),
                _done(),
            ),
            _turn(("install_package", {"package": "gsap"}), _done()),
        ]
    )
    plan = _plan(PlanStep(id="s1", description="Set up animation"))

    outcome = _run(_engine(llm, handlers={"install_package": flaky_install}), plan)

    step = plan.steps[0]
    assert step.status == "completed"
    assert step.retry_count == 1
    assert [result.tool for result in step.tool_results] == ["install_package"]
    assert step.evaluation.score == 100
    assert len(step.attempts) == 2
    assert step.attempts[0].evaluation.score == 50
    assert step.attempts[0].evaluation.issues == [
        "Tool install_package failed: registry unavailable"
    ]
    assert "Tool install_package failed: registry unavailable" in llm.tool_requests[1]["system_prompt"]
    assert outcome.state.evaluations_failed == 1
    assert outcome.state.evaluations_passed == 1
    assert outcome.workspace.packages == ["gsap"]
    assert [item.path for item in outcome.workspace.files] == ["index.html"]


def test_narration_without_action_fails_after_iteration_bound(scripted_llm) -> None:
    llm = scripted_llm(turns=[])
    plan = _plan(PlanStep(id="s1", description="Describe the site"))

    outcome = _run(_engine(llm, max_iterations_per_step=5), plan)

    step = plan.steps[0]
    assert step.status == "failed"
    assert step.retry_count == 0
    assert step.evaluation.issues == [NO_TOOL_EXECUTIONS]
    assert len(step.attempts) == 5
    assert outcome.state.iterations == 5
    assert outcome.state.failed_steps == ["s1"]


def test_completion_signal_without_tools_exhausts_retries(scripted_llm) -> None:
    llm = scripted_llm(turns=[_turn(_done()) for _ in range(5)])
    plan = _plan(PlanStep(id="s1", description="Claim success"))

    outcome = _run(_engine(llm, max_retries=2), plan)

    step = plan.steps[0]
    assert step.status == "failed"
    assert step.retry_count == 3
    assert outcome.state.iterations == 3
    assert outcome.state.evaluations_failed == 3


def test_model_error_counts_as_no_action(scripted_llm) -> None:
    llm = scripted_llm(
        turns=[
            TimeoutError("model timed out"),
            _turn(("run_command", {"command": "npm run build"}), _done()),
        ]
    )
    plan = _plan(PlanStep(id="s1", description="Build"))

    outcome = _run(_engine(llm), plan)

    assert plan.steps[0].status == "completed"
    assert plan.steps[0].retry_count == 0
    assert plan.steps[0].attempts[0].summary == "model timed out"
    assert outcome.workspace.terminal[0].command == "npm run build"


def test_unmet_dependency_skips_step_and_counts_add_up(scripted_llm) -> None:
    llm = scripted_llm(
        turns=[
            _turn(("create_file", {"path": "a.html"}), _done()),
            # s2 only narrates until its bound; s3 depends on it.
        ]
    )
    plan = _plan(
        PlanStep(id="s1", description="Page A"),
        PlanStep(id="s2", description="Page B"),
        PlanStep(id="s3", description="Link B", dependencies=["s2"]),
        PlanStep(id="s4", description="Forward", dependencies=["s5"]),
        PlanStep(id="s5", description="Late"),
    )

    outcome = _run(_engine(llm, max_iterations_per_step=2), plan)

    state = outcome.state
    assert state.completed_steps == ["s1"]
    assert state.failed_steps == ["s2", "s5"]
    assert state.skipped_steps == ["s3", "s4"]
    assert len(state.completed_steps) + len(state.failed_steps) + len(state.skipped_steps) == 5
    assert all(step.status not in {"pending", "in_progress"} for step in plan.steps)
    assert state.overall_success is False


def test_cancellation_fails_current_step_and_skips_the_rest(scripted_llm) -> None:
    cancel_event = threading.Event()

    def cancelling_install(payload, context):
        cancel_event.set()
        raise ToolExecutionError("interrupted")

    llm = scripted_llm(turns=[_turn(("install_package", {"package": "vite"}), _done())])
    plan = _plan(
        PlanStep(id="s1", description="Install"),
        PlanStep(id="s2", description="Write"),
        PlanStep(id="s3", description="Style"),
    )

    outcome = _run(
        _engine(llm, handlers={"install_package": cancelling_install}),
        plan,
        cancel_event=cancel_event,
    )

    assert outcome.state.cancelled is True
    assert outcome.state.failed_steps == ["s1"]
    assert outcome.state.skipped_steps == ["s2", "s3"]
    assert len(llm.tool_requests) == 1


def test_cancelled_before_start_skips_everything(scripted_llm) -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    llm = scripted_llm(turns=[])
    plan = _plan(PlanStep(id="s1", description="a"), PlanStep(id="s2", description="b"))

    outcome = _run(_engine(llm), plan, cancel_event=cancel_event)

    assert outcome.state.skipped_steps == ["s1", "s2"]
    assert outcome.state.iterations == 0
    assert llm.tool_requests == []


def test_overall_iteration_ceiling_stops_the_plan(scripted_llm) -> None:
    llm = scripted_llm(turns=[])
    plan = _plan(PlanStep(id="s1", description="a"), PlanStep(id="s2", description="b"))

    outcome = _run(_engine(llm, max_iterations=2, max_iterations_per_step=5), plan)

    assert outcome.state.iterations == 2
    assert outcome.state.failed_steps == ["s1"]
    assert outcome.state.skipped_steps == ["s2"]


def test_call_to_undeclared_tool_is_scored_as_failure(scripted_llm) -> None:
    llm = scripted_llm(
        turns=[
            _turn(
                ("delete_file", {"file_id": "f-home"}),
                ("create_file", {"path": "index.html", "content": "<main/>"}),
                _done(),
            ),
            _turn(("list_files", {}), _done()),
        ]
    )
    plan = _plan(PlanStep(id="s1", description="Write the page", tools_needed=["create_file"]))
    workspace = WorkspaceManifest(
        files=[ProjectFile(id="f-home", name="home.html", path="home.html", content="<p/>")]
    )

    outcome = _engine(llm).run(
        plan, workspace, project_id="p1", context=RunContext(goal=plan.goal)
    )

    step = plan.steps[0]
    assert step.status == "completed"
    assert step.retry_count == 1
    assert step.attempts[0].evaluation.score == 50
    assert step.attempts[0].evaluation.issues == [
        f"Tool delete_file failed: {UNDECLARED_TOOL_ERROR}"
    ]
    assert [item.path for item in outcome.workspace.files] == ["home.html", "index.html"]


def test_stale_dedupe_ledger_does_not_hide_new_results(scripted_llm) -> None:
    llm = scripted_llm(
        turns=[_turn(("create_file", {"path": "about.html", "content": "<h1>About</h1>"}), _done())]
    )
    plan = _plan(PlanStep(id="s1", description="Add an about page"))
    handed_back = WorkspaceManifest(applied_result_ids=["s1:1:call_0"])

    outcome = _engine(llm).run(
        plan, handed_back, project_id="p1", context=RunContext(goal=plan.goal)
    )

    assert [item.path for item in outcome.workspace.files] == ["about.html"]
    assert "s1:1:call_0" not in outcome.workspace.applied_result_ids
    assert handed_back.applied_result_ids == ["s1:1:call_0"]
