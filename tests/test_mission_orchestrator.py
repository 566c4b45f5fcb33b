"""
Tests for the mission orchestrator lifecycle.
"""

import pytest

from missionagent.core.config_manager import MissionAgentConfig
from missionagent.core.errors import InvalidTransitionError
from missionagent.execution.plan_executor import PlanExecutor
from missionagent.execution.task_executor import TaskExecutor
from missionagent.goals.goal_tracker import GoalTracker
from missionagent.missions.mission_orchestrator import MissionOrchestrator, build_orchestrator
from missionagent.models.model_caller import ModelInvocationError
from missionagent.models.reasoning_client import CompletionVerdict
from missionagent.planning.planning_engine import PlanningEngine
from missionagent.reflection.reflective_engine import ReflectiveEngine


@pytest.fixture
def orchestrator(store, registry, reasoning):
    planning = PlanningEngine(store, reasoning, registry)
    reflective = ReflectiveEngine(store, reasoning)
    return MissionOrchestrator(
        store,
        planning,
        PlanExecutor(store, TaskExecutor(store), reflective_engine=reflective),
        GoalTracker(store, reasoning, planning, completion_threshold=0.9),
        registry,
        reflective_engine=reflective,
    )


def _plan_with(*tasks):
    return {
        "title": "Plan",
        "description": "",
        "tasks": list(tasks),
        "reasoning": "because",
        "confidence": 0.9,
    }


class TestExecuteMission:
    """Tests for MissionOrchestrator.execute_mission."""

    @pytest.mark.asyncio
    async def test_happy_path_completes_mission(self, orchestrator, store, reasoning, echo_tool):
        reasoning.generate_plan.return_value = _plan_with(
            {"id": "fetch", "title": "Fetch", "tool_name": "echo", "tool_params": {"url": "u"}},
            {"title": "Index", "tool_name": "echo", "dependencies": ["fetch"]},
        )
        mission = orchestrator.create_mission("Docs", "Index the docs")

        result = await orchestrator.execute_mission(mission.id)

        assert result.success
        assert len(result.completed_tasks) == 2
        stored = store.get_mission(mission.id)
        assert stored.status == "completed"
        assert stored.completed_at is not None
        plan = store.get_current_plan(mission.id)
        assert plan.status == "completed"
        assert [c["params"] for c in echo_tool.calls] == [{"url": "u"}, {}]

    @pytest.mark.asyncio
    async def test_zero_task_plan_follows_the_judge(self, orchestrator, store, reasoning):
        reasoning.assess_completion.return_value = CompletionVerdict(completed=False, completion_percentage=0.2)
        mission = orchestrator.create_mission("Nothing", "Nothing to do")

        result = await orchestrator.execute_mission(mission.id)

        assert result.completed_tasks == []
        assert result.failed_tasks == []
        assert result.success is False
        assert store.get_mission(mission.id).status == "failed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("completed, percentage, expected", [
        (True, 1.0, "completed"),
        (True, 0.9, "completed"),
        (True, 0.89, "failed"),
        (False, 1.0, "failed"),
        (True, 95, "completed"),
    ])
    async def test_completion_needs_flag_and_threshold(
        self, orchestrator, store, reasoning, completed, percentage, expected
    ):
        reasoning.assess_completion.return_value = CompletionVerdict(
            completed=completed, completion_percentage=percentage
        )
        mission = orchestrator.create_mission("Judge", "Check the judge")

        result = await orchestrator.execute_mission(mission.id)

        assert store.get_mission(mission.id).status == expected
        assert result.success == (expected == "completed")

    @pytest.mark.asyncio
    async def test_judge_failure_fails_mission(self, orchestrator, store, reasoning):
        reasoning.assess_completion.side_effect = ModelInvocationError("down", model="m")
        mission = orchestrator.create_mission("Judge", "Judge is down")

        await orchestrator.execute_mission(mission.id)

        assert store.get_mission(mission.id).status == "failed"

    @pytest.mark.asyncio
    async def test_planning_failure_forces_failed_and_records_error(self, orchestrator, store, reasoning):
        reasoning.generate_plan.side_effect = ModelInvocationError("service unavailable", model="m")
        mission = orchestrator.create_mission("Broken", "Planner is down")

        result = await orchestrator.execute_mission(mission.id)

        assert not result.success
        assert result.completed_tasks == []
        assert result.failed_tasks == []
        assert "service unavailable" in result.error
        assert store.get_mission(mission.id).status == "failed"
        reflections = store.list_reflections(mission.id)
        assert [r.type for r in reflections] == ["error_analysis"]
        assert reflections[0].content.startswith("Mission execution failed")

    @pytest.mark.asyncio
    async def test_circular_plan_fails_mission(self, orchestrator, store, reasoning, echo_tool):
        reasoning.generate_plan.return_value = _plan_with(
            {"title": "A", "tool_name": "echo", "dependencies": ["B"]},
            {"title": "B", "tool_name": "echo", "dependencies": ["A"]},
        )
        mission = orchestrator.create_mission("Loop", "Circular plan")

        result = await orchestrator.execute_mission(mission.id)

        assert "Circular dependency" in result.error
        assert store.get_mission(mission.id).status == "failed"
        assert store.get_current_plan(mission.id).status == "failed"
        assert echo_tool.calls == []

    @pytest.mark.asyncio
    async def test_task_failure_is_contained(self, orchestrator, store, reasoning):
        reasoning.generate_plan.return_value = _plan_with(
            {"title": "A", "tool_name": "broken"},
            {"title": "B", "tool_name": "echo", "dependencies": [0]},
        )
        reasoning.assess_completion.return_value = CompletionVerdict(completed=False, completion_percentage=0.0)
        mission = orchestrator.create_mission("Partial", "One task fails")

        result = await orchestrator.execute_mission(mission.id)

        assert len(result.failed_tasks) == 1
        assert len(result.skipped_tasks) == 1
        assert result.error is None
        assert store.get_mission(mission.id).status == "failed"

    @pytest.mark.asyncio
    async def test_only_pending_missions_can_start(self, orchestrator, store):
        mission = orchestrator.create_mission("Done", "Already done")
        store.update_mission_status(mission.id, "completed")

        with pytest.raises(InvalidTransitionError):
            await orchestrator.execute_mission(mission.id)

        assert store.get_mission(mission.id).status == "completed"

    @pytest.mark.asyncio
    async def test_logs_are_recorded_for_the_run(self, orchestrator, store):
        mission = orchestrator.create_mission("Logs", "Check logs")

        await orchestrator.execute_mission(mission.id)

        messages = [log.message for log in store.list_logs(mission.id)]
        assert "Mission created: Logs" in messages
        assert "Starting mission execution: Logs" in messages


class TestStatusControl:
    """Tests for pause, cancel and resume."""

    def test_pause_requires_executing(self, orchestrator, store):
        mission = orchestrator.create_mission("Pause", "Pause me")

        with pytest.raises(InvalidTransitionError):
            orchestrator.pause_mission(mission.id)

        store.update_mission_status(mission.id, "executing")
        assert orchestrator.pause_mission(mission.id).status == "pending"

    def test_cancel_pending_mission(self, orchestrator):
        mission = orchestrator.create_mission("Cancel", "Cancel me")

        assert orchestrator.cancel_mission(mission.id).status == "failed"

    @pytest.mark.parametrize("status", ["completed", "failed"])
    def test_cancel_finished_mission_is_rejected(self, orchestrator, store, status):
        mission = orchestrator.create_mission("Cancel", "Too late")
        store.update_mission_status(mission.id, status)

        with pytest.raises(InvalidTransitionError):
            orchestrator.cancel_mission(mission.id)

    @pytest.mark.asyncio
    async def test_cancel_during_run_stops_before_next_task(
        self, orchestrator, store, reasoning, registry, fake_tool, echo_tool
    ):
        class Canceller(fake_tool):
            async def execute(self, params, ctx):
                orchestrator.cancel_mission(ctx.mission_id)
                return self.create_result(True, {})

        registry.register(Canceller("cancel"))
        reasoning.generate_plan.return_value = _plan_with(
            {"title": "First", "priority": 0, "tool_name": "cancel"},
            {"title": "Second", "priority": 1, "tool_name": "echo"},
        )
        mission = orchestrator.create_mission("Cancelled", "Gets cancelled")

        result = await orchestrator.execute_mission(mission.id)

        assert not result.success
        assert "interrupted" in result.error
        assert store.get_mission(mission.id).status == "failed"
        assert echo_tool.calls == []
        reasoning.assess_completion.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pause_during_run_keeps_mission_pending(
        self, orchestrator, store, reasoning, registry, fake_tool
    ):
        class Pauser(fake_tool):
            async def execute(self, params, ctx):
                orchestrator.pause_mission(ctx.mission_id)
                return self.create_result(True, {})

        registry.register(Pauser("pause"))
        reasoning.generate_plan.return_value = _plan_with(
            {"title": "First", "priority": 0, "tool_name": "pause"},
            {"title": "Second", "priority": 1, "tool_name": "echo"},
        )
        mission = orchestrator.create_mission("Paused", "Gets paused")

        result = await orchestrator.execute_mission(mission.id)

        assert "interrupted" in result.error
        assert store.get_mission(mission.id).status == "pending"
        assert store.get_current_plan(mission.id).status == "active"

    @pytest.mark.asyncio
    async def test_resume_restarts_planning_instead_of_continuing(
        self, orchestrator, store, reasoning, registry, fake_tool, echo_tool
    ):
        # Surprising but current behaviour: resume plans from scratch and the
        # work done under the paused plan is not carried over.
        paused = []

        class PauseOnce(fake_tool):
            async def execute(self, params, ctx):
                if not paused:
                    paused.append(ctx.mission_id)
                    orchestrator.pause_mission(ctx.mission_id)
                return self.create_result(True, {})

        registry.register(PauseOnce("pause_once"))
        reasoning.generate_plan.return_value = _plan_with(
            {"title": "First", "priority": 0, "tool_name": "pause_once"},
            {"title": "Second", "priority": 1, "tool_name": "echo"},
        )
        mission = orchestrator.create_mission("Resume", "Pause then resume")
        await orchestrator.execute_mission(mission.id)
        first_plan = store.get_current_plan(mission.id)

        result = await orchestrator.resume_mission(mission.id)

        assert result.success
        assert reasoning.generate_plan.await_count == 2
        plans = store.list_plans(mission.id)
        assert [p.version for p in plans] == [2, 1]
        assert store.get_plan(first_plan.id).status == "superseded"
        # "First" ran again under the new plan
        assert len(result.completed_tasks) == 2
        assert store.get_mission(mission.id).status == "completed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["completed", "failed", "executing"])
    async def test_resume_requires_pending(self, orchestrator, store, status):
        mission = orchestrator.create_mission("Resume", "Not resumable")
        store.update_mission_status(mission.id, status)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.resume_mission(mission.id)

    @pytest.mark.asyncio
    async def test_run_in_background(self, orchestrator, store):
        mission = orchestrator.create_mission("Background", "Runs detached")

        task = orchestrator.run_mission_in_background(mission.id)
        result = await task

        assert result.success
        assert store.get_mission(mission.id).status == "completed"


class TestBuildOrchestrator:
    """Tests for the default wiring."""

    def test_default_collaborators(self, store):
        config = MissionAgentConfig()
        config.execution.reflections_enabled = True

        orchestrator = build_orchestrator(store=store, config=config)

        assert orchestrator.store is store
        assert sorted(orchestrator.tool_registry.names()) == ["confluence_loader", "confluence_search"]
        assert orchestrator.reflective_engine is not None
        assert orchestrator.plan_executor.reflective_engine is orchestrator.reflective_engine
        assert orchestrator.cache.ttl_seconds == config.execution.cache_ttl_seconds

    def test_reflections_can_be_disabled(self, store):
        config = MissionAgentConfig()
        config.execution.reflections_enabled = False

        orchestrator = build_orchestrator(store=store, config=config)

        assert orchestrator.reflective_engine is None
        assert orchestrator.plan_executor.reflective_engine is None
