"""
Plan Executor - drives a whole plan to a terminal outcome.

Tasks run strictly one after another in dependency order. A task whose
dependencies are not all completed is skipped and stays pending, so that
independent branches still make progress when one branch fails. A failing
task never stops the walk; only a dependency cycle aborts the plan before
any task runs.
"""

import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from ..core.errors import CircularDependencyError
from ..core.timeutil import minutes_between, utcnow
from ..missions.mission_types import (
    ExecutionResult,
    Plan,
    PlanStatus,
    Reflection,
    Task,
    TaskStatus,
)
from .context import ExecutionContext
from .task_executor import TaskExecutor
from .task_graph import find_unmet_dependencies, sort_tasks

if TYPE_CHECKING:
    from ..missions.mission_store import MissionStore
    from ..reflection.reflective_engine import ReflectiveEngine

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Plan execution interrupted"


class PlanExecutor:
    """
    Runs the tasks of a plan sequentially.

    Usage:
        executor = PlanExecutor(store, TaskExecutor(store))
        result = await executor.execute_plan(plan, ctx)
    """

    def __init__(
        self,
        store: "MissionStore",
        task_executor: TaskExecutor,
        reflective_engine: Optional["ReflectiveEngine"] = None,
    ):
        self.store = store
        self.task_executor = task_executor
        self.reflective_engine = reflective_engine

    async def execute_plan(
        self,
        plan: Plan,
        ctx: ExecutionContext,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> ExecutionResult:
        """
        Execute every runnable task of a plan.

        Args:
            plan: Plan to execute (tasks are re-read from the store)
            ctx: Execution context of the mission run
            should_continue: Checked before each task; returning False stops
                the walk, leaves the remaining tasks pending and the plan active

        Returns:
            ExecutionResult with completed, failed and skipped task ids

        Raises:
            CircularDependencyError: If the task dependencies form a cycle
                (the plan is marked failed and no task runs)
        """
        plan_ctx = ctx.for_plan(plan.id)
        started_at = utcnow()

        self.store.update_plan_status(plan.id, PlanStatus.ACTIVE.value)
        tasks = self.store.get_tasks(plan.id)
        plan_ctx.logger.info(
            f"Executing plan: {plan.title}",
            {"version": plan.version, "task_count": len(tasks)},
        )

        try:
            ordered = sort_tasks(tasks)
        except CircularDependencyError as e:
            self.store.update_plan_status(
                plan.id, PlanStatus.FAILED.value, minutes_between(started_at, utcnow())
            )
            plan_ctx.logger.error(str(e), {"task_id": e.task_id})
            raise

        completed: List[str] = []
        failed: List[str] = []
        skipped: List[str] = []
        reflections: List[Reflection] = []

        for task in ordered:
            if should_continue is not None and not should_continue():
                plan_ctx.logger.warn(
                    "Plan execution stopped before completion",
                    {"next_task_id": task.id},
                )
                return ExecutionResult(
                    success=False,
                    completed_tasks=completed,
                    failed_tasks=failed,
                    skipped_tasks=skipped,
                    reflections=reflections,
                    error=INTERRUPTED_MESSAGE,
                )

            statuses = self.store.get_task_statuses(plan.id)
            if statuses.get(task.id) != TaskStatus.PENDING.value:
                plan_ctx.logger.debug(
                    f"Task already {statuses.get(task.id)}, leaving it alone: {task.title}"
                )
                continue

            unmet = find_unmet_dependencies(task, statuses)
            if unmet:
                skipped.append(task.id)
                plan_ctx.logger.info(
                    f"Skipping task with unmet dependencies: {task.title}",
                    {"task_id": task.id, "unmet": unmet},
                )
                continue

            try:
                result = await self.task_executor.execute_task(task, plan_ctx)
            except Exception as e:
                failed.append(task.id)
                plan_ctx.logger.error(
                    f"Task execution error: {task.title}",
                    {"task_id": task.id, "error": str(e)},
                )
                await self._reflect_on_failure(task, str(e), plan_ctx, reflections)
                continue

            if result.success:
                completed.append(task.id)
            else:
                failed.append(task.id)
                await self._reflect_on_failure(task, result.error or "", plan_ctx, reflections)

        success = not failed
        final_status = PlanStatus.COMPLETED.value if success else PlanStatus.FAILED.value
        self.store.update_plan_status(plan.id, final_status, minutes_between(started_at, utcnow()))

        plan_ctx.logger.info(
            f"Plan finished: {final_status}",
            {"completed": len(completed), "failed": len(failed), "skipped": len(skipped)},
        )

        if self.reflective_engine is not None:
            try:
                reflections.append(
                    await self.reflective_engine.assess_progress(self.store.get_plan(plan.id), plan_ctx)
                )
            except Exception as e:
                plan_ctx.logger.warn(f"Progress assessment failed: {e}")

        return ExecutionResult(
            success=success,
            completed_tasks=completed,
            failed_tasks=failed,
            skipped_tasks=skipped,
            reflections=reflections,
        )

    async def _reflect_on_failure(
        self,
        task: Task,
        error: str,
        ctx: ExecutionContext,
        reflections: List[Reflection],
    ) -> None:
        if self.reflective_engine is None:
            return
        try:
            reflections.append(await self.reflective_engine.analyze_failure(task, error, ctx))
        except Exception as e:
            ctx.logger.warn(f"Failure analysis failed for task {task.title}: {e}")
