import pytest

from workspace_agent.errors import PlanningError
from workspace_agent.models import WorkspaceManifest
from workspace_agent.planner import PlanDraft, StrategicPlanner, fallback_plan, normalize_plan

GOAL = "Build a landing page with a hero image"


def test_empty_step_list_falls_back_to_goal(scripted_llm) -> None:
    planner = StrategicPlanner(llm_adapter=scripted_llm(plan={"analysis": "?", "steps": []}))

    plan = planner.build_plan(GOAL, WorkspaceManifest())

    assert len(plan.steps) == 1
    assert plan.steps[0].description == GOAL
    assert plan.steps[0].tools_needed == []
    assert plan.steps[0].status == "pending"


def test_model_failure_falls_back(scripted_llm) -> None:
    planner = StrategicPlanner(llm_adapter=scripted_llm(plan=TimeoutError("model timed out")))

    plan = planner.build_plan(GOAL, WorkspaceManifest())

    assert plan == fallback_plan(GOAL)


def test_missing_adapter_falls_back() -> None:
    plan = StrategicPlanner(llm_adapter=None).build_plan(GOAL, WorkspaceManifest())

    assert [step.description for step in plan.steps] == [GOAL]


def test_model_plan_is_normalized(scripted_llm) -> None:
    draft = {
        "analysis": "Static page with generated art.",
        "complexity": "Complex",
        "steps": [
            {
                "id": "hero",
                "description": "Generate the hero image",
                "tools_needed": ["generate_image", "summon_unicorn"],
            },
            {"id": "hero", "description": "Write index.html", "dependencies": ["hero", "hero"]},
            {"description": "   "},
            {"description": "Style the page", "tools_needed": ["create_file", "complete_step"]},
        ],
        "proactive_enhancements": ["Add alt text", ""],
        "estimated_tool_count": 4,
    }
    workspace = WorkspaceManifest()

    plan = StrategicPlanner(llm_adapter=scripted_llm(plan=draft)).build_plan(GOAL, workspace)

    assert [step.id for step in plan.steps] == ["hero", "hero_2", "step_4"]
    assert plan.steps[0].tools_needed == ["generate_image"]
    assert plan.steps[1].dependencies == ["hero"]
    assert plan.steps[2].tools_needed == ["create_file"]
    assert plan.complexity == "complex"
    assert plan.proactive_enhancements == ["Add alt text"]
    assert all(step.status == "pending" and step.retry_count == 0 for step in plan.steps)
    assert workspace == WorkspaceManifest()


def test_unknown_complexity_is_coerced_and_steps_are_capped() -> None:
    draft = PlanDraft(
        complexity="galactic",
        steps=[{"description": f"step {i}"} for i in range(15)],
    )

    plan = normalize_plan(GOAL, draft, max_steps=10)

    assert plan.complexity == "moderate"
    assert len(plan.steps) == 10


def test_forward_dependencies_are_kept() -> None:
    draft = PlanDraft(
        steps=[
            {"id": "a", "description": "first", "dependencies": ["b"]},
            {"id": "b", "description": "second"},
        ]
    )

    plan = normalize_plan(GOAL, draft)

    assert plan.steps[0].dependencies == ["b"]


def test_normalize_rejects_plan_without_usable_steps() -> None:
    with pytest.raises(PlanningError):
        normalize_plan(GOAL, PlanDraft(steps=[{"description": ""}]))
