"""
Tests for stored reflections.
"""

import pytest

from missionagent.missions import TaskSpec
from missionagent.reflection.reflective_engine import ERROR_RECOMMENDATIONS, ReflectiveEngine


class TestReflectiveEngine:
    """Tests for ReflectiveEngine."""

    @pytest.mark.asyncio
    async def test_assess_progress_counts_statuses(self, store, reasoning, ctx, make_plan):
        plan = make_plan([TaskSpec("a"), TaskSpec("b"), TaskSpec("c")])
        store.update_task(plan.tasks[0].id, status="completed")
        plan = store.get_plan(plan.id)

        reflection = await ReflectiveEngine(store, reasoning).assess_progress(plan, ctx)

        reflection_type, data = reasoning.reflect.await_args.args
        assert reflection_type == "progress_assessment"
        assert data["task_statuses"] == {"completed": 1, "pending": 2}
        assert len(data["plan"]["tasks"]) == 3
        assert reflection.plan_id == plan.id
        assert reflection.content == "analysis"
        assert reflection.insights == ["insight"]
        assert reflection.confidence == 0.7
        assert store.list_reflections(ctx.mission_id) == [reflection]

    @pytest.mark.asyncio
    async def test_analyze_failure_targets_task(self, store, reasoning, ctx, make_plan):
        task = make_plan([TaskSpec("Fetch")]).tasks[0]

        reflection = await ReflectiveEngine(store, reasoning).analyze_failure(task, "timeout", ctx)

        reflection_type, data = reasoning.reflect.await_args.args
        assert reflection_type == "error_analysis"
        assert data["error"] == "timeout"
        assert data["task"]["id"] == task.id
        assert (reflection.type, reflection.task_id, reflection.plan_id) == ("error_analysis", task.id, task.plan_id)

    @pytest.mark.asyncio
    async def test_optimize_plan(self, store, reasoning, ctx, make_plan):
        plan = make_plan([TaskSpec("a")])

        reflection = await ReflectiveEngine(store, reasoning).optimize_plan(plan, ctx)

        assert reflection.type == "plan_optimization"
        assert reasoning.reflect.await_args.args[1]["plan"]["id"] == plan.id

    @pytest.mark.asyncio
    async def test_service_errors_propagate(self, store, reasoning, ctx, make_plan):
        reasoning.reflect.side_effect = RuntimeError("service down")
        plan = make_plan([])

        with pytest.raises(RuntimeError):
            await ReflectiveEngine(store, reasoning).assess_progress(plan, ctx)

        assert store.list_reflections(ctx.mission_id) == []

    def test_record_error_does_not_call_the_service(self, store, reasoning, ctx):
        reflection = ReflectiveEngine(store, reasoning).record_error("planner crashed", ctx)

        assert reflection.type == "error_analysis"
        assert reflection.content == "Mission execution failed: planner crashed"
        assert reflection.insights == ["Error occurred: planner crashed"]
        assert reflection.recommendations == ERROR_RECOMMENDATIONS
        assert reflection.confidence == 0.8
        reasoning.reflect.assert_not_called()
