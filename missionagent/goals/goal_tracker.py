"""
Goal Tracker - measures mission progress and judges completion.

Progress is a plain ratio over the tasks of the current plan. Completion is
decided by the reasoning service's judge, accepted only when the judge says
"completed" and its percentage reaches the configured threshold.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..core.config_manager import get_config
from ..missions.mission_types import (
    CompletionAssessment,
    ExecutionResult,
    Mission,
    Plan,
    TaskStatus,
)

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext
    from ..missions.mission_store import MissionStore
    from ..models.reasoning_client import ReasoningClient
    from ..planning.planning_engine import PlanningEngine

logger = logging.getLogger(__name__)


class GoalTracker:
    """
    Tracks mission goals.

    Usage:
        tracker = GoalTracker(store, ReasoningClient(), planning_engine)
        if await tracker.validate_completion(mission, result):
            ...
    """

    def __init__(
        self,
        store: "MissionStore",
        reasoning: "ReasoningClient",
        planning_engine: Optional["PlanningEngine"] = None,
        completion_threshold: Optional[float] = None,
        progress_threshold: Optional[float] = None,
    ):
        execution = get_config().execution
        self.store = store
        self.reasoning = reasoning
        self.planning_engine = planning_engine
        self.completion_threshold = (
            execution.completion_threshold if completion_threshold is None else completion_threshold
        )
        self.progress_threshold = (
            execution.progress_threshold if progress_threshold is None else progress_threshold
        )

    def track_progress(self, mission: Mission) -> float:
        """
        Fraction of completed tasks in the mission's current plan.

        Returns:
            Value in [0, 1]; 0.0 when there is no plan or the plan has no tasks
        """
        plan = self.store.get_current_plan(mission.id)
        if plan is None or not plan.tasks:
            return 0.0
        completed = sum(1 for t in plan.tasks if t.status == TaskStatus.COMPLETED.value)
        return completed / len(plan.tasks)

    async def assess_completion(self, mission: Mission, result: ExecutionResult) -> CompletionAssessment:
        """
        Ask the completion judge about a finished run.

        Percentages given on a 0-100 scale are normalized to a fraction.

        Raises:
            ModelInvocationError / ReasoningResponseError: On service failures
        """
        verdict = await self.reasoning.assess_completion(mission, result)
        percentage = verdict.completion_percentage
        if percentage > 1.0:
            percentage = percentage / 100.0
        return CompletionAssessment(
            completed=verdict.completed,
            completion_percentage=max(0.0, min(1.0, percentage)),
            remaining_tasks=list(verdict.remaining_work),
            recommendations=list(verdict.recommendations),
        )

    async def validate_completion(
        self,
        mission: Mission,
        result: ExecutionResult,
        ctx: Optional["ExecutionContext"] = None,
    ) -> bool:
        """True only when the judge says completed and the percentage reaches the threshold."""
        try:
            assessment = await self.assess_completion(mission, result)
        except Exception as e:
            logger.warning(f"[GoalTracker] Completion assessment failed for {mission.id}: {e}")
            if ctx is not None:
                ctx.logger.warn(f"Completion assessment failed: {e}")
            return False

        is_complete = (
            assessment.completed
            and assessment.completion_percentage >= self.completion_threshold
        )
        if ctx is not None:
            ctx.logger.info(
                f"Completion assessment: {assessment.completion_percentage:.0%}",
                {**assessment.to_dict(), "accepted": is_complete},
            )
        return is_complete

    async def adjust_strategy(
        self,
        mission: Mission,
        plan: Plan,
        ctx: Optional["ExecutionContext"] = None,
    ) -> Plan:
        """
        Revise the plan when progress is below the progress threshold.

        Returns:
            The revised plan version, or ``plan`` itself when progress is fine
            or no planning engine is available
        """
        progress = self.track_progress(mission)
        if progress >= self.progress_threshold or self.planning_engine is None:
            return plan

        if ctx is not None:
            ctx.logger.info(f"Progress {progress:.0%} below threshold, revising plan")
        result = await self.planning_engine.update_plan(
            plan,
            f"Only {progress:.0%} of the tasks are completed. "
            "Revise the plan to improve the chances of completing the mission.",
            ctx,
        )
        return result.plan
