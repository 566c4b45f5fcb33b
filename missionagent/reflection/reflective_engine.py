"""
Reflective Engine - stored assessments of progress, failures and plans.

Each reflection asks the reasoning service for an analysis and stores it
against the mission (and the plan/task it concerns). Reflections are
append-only and never change the state of the run.
"""

import logging
from collections import Counter
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..missions.mission_types import Plan, Reflection, ReflectionType, Task

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext
    from ..missions.mission_store import MissionStore
    from ..models.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)

ERROR_RECOMMENDATIONS = ["Review task parameters", "Check tool availability"]


class ReflectiveEngine:
    """
    Produces reflections for a mission run.

    Usage:
        engine = ReflectiveEngine(store, ReasoningClient())
        reflection = await engine.analyze_failure(task, "timeout", ctx)
    """

    def __init__(self, store: "MissionStore", reasoning: "ReasoningClient"):
        self.store = store
        self.reasoning = reasoning

    async def _reflect(
        self,
        reflection_type: ReflectionType,
        data: Dict[str, Any],
        ctx: "ExecutionContext",
        plan_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Reflection:
        analysis = await self.reasoning.reflect(reflection_type.value, data)
        reflection = self.store.add_reflection(
            mission_id=ctx.mission_id,
            type=reflection_type.value,
            content=analysis.reasoning,
            insights=analysis.insights,
            recommendations=analysis.recommendations,
            confidence=analysis.confidence,
            plan_id=plan_id or ctx.plan_id,
            task_id=task_id,
        )
        ctx.logger.debug(
            f"Stored {reflection_type.value} reflection",
            {"reflection_id": reflection.id, "insights": len(reflection.insights)},
        )
        return reflection

    async def assess_progress(self, plan: Plan, ctx: "ExecutionContext") -> Reflection:
        """Reflect on where a plan stands, with a count of task statuses."""
        data = {
            "plan": plan.to_dict(include_tasks=True),
            "task_statuses": dict(Counter(t.status for t in plan.tasks)),
        }
        return await self._reflect(ReflectionType.PROGRESS_ASSESSMENT, data, ctx, plan_id=plan.id)

    async def analyze_failure(self, task: Task, error: str, ctx: "ExecutionContext") -> Reflection:
        """Reflect on why a task failed."""
        data = {"task": task.to_dict(), "error": error}
        return await self._reflect(
            ReflectionType.ERROR_ANALYSIS, data, ctx, plan_id=task.plan_id, task_id=task.id
        )

    async def optimize_plan(self, plan: Plan, ctx: "ExecutionContext") -> Reflection:
        """Ask for improvements to a plan."""
        return await self._reflect(
            ReflectionType.PLAN_OPTIMIZATION, {"plan": plan.to_dict()}, ctx, plan_id=plan.id
        )

    def record_error(
        self,
        error: str,
        ctx: "ExecutionContext",
        plan_id: Optional[str] = None,
    ) -> Reflection:
        """
        Store a fixed error analysis for an orchestration failure.

        The reasoning service is not called; it may well be what failed.
        """
        logger.info(f"[ReflectiveEngine] Recording error for mission {ctx.mission_id}: {error}")
        return self.store.add_reflection(
            mission_id=ctx.mission_id,
            type=ReflectionType.ERROR_ANALYSIS.value,
            content=f"Mission execution failed: {error}",
            insights=[f"Error occurred: {error}"],
            recommendations=list(ERROR_RECOMMENDATIONS),
            confidence=0.8,
            plan_id=plan_id or ctx.plan_id,
        )
