"""
Mission Orchestrator - owns the end-to-end mission lifecycle.

State machine of Mission.status:

    pending -> planning -> executing -> completed | failed

Outside a run, a pending/planning/executing mission may be cancelled (set
to failed) and an executing mission may be paused (set back to pending).
Every status change goes through MissionStore.transition_mission, so a run
notices a pause or cancel at its next step and stops without overwriting
it. Tool calls already in flight are not interrupted.

Usage:
    orchestrator = build_orchestrator()
    mission = orchestrator.create_mission("Index docs", "Load the team wiki")
    result = await orchestrator.execute_mission(mission.id)
"""

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from ..core.config_manager import MissionAgentConfig, get_config
from ..core.errors import (
    InvalidTransitionError,
    MissionInterruptedError,
    MissionNotFoundError,
)
from ..execution.context import AgentLogger, ExecutionContext, TTLCache
from ..execution.plan_executor import INTERRUPTED_MESSAGE, PlanExecutor
from ..execution.task_executor import TaskExecutor
from ..goals.goal_tracker import GoalTracker
from ..models.reasoning_client import ReasoningClient
from ..planning.planning_engine import PlanningEngine
from ..reflection.reflective_engine import ReflectiveEngine
from ..tools.base import ToolRegistry
from ..tools.confluence import create_confluence_tools
from .mission_store import MissionStore
from .mission_types import (
    CANCELLABLE_STATUSES,
    ExecutionResult,
    Mission,
    MissionPriority,
    MissionStatus,
)

if TYPE_CHECKING:
    from ..missions.mission_types import Plan

logger = logging.getLogger(__name__)


class MissionOrchestrator:
    """
    Drives missions through planning, execution and completion judgement.

    Collaborators are injected so tests can replace any of them.
    """

    def __init__(
        self,
        store: MissionStore,
        planning_engine: PlanningEngine,
        plan_executor: PlanExecutor,
        goal_tracker: GoalTracker,
        tool_registry: ToolRegistry,
        reflective_engine: Optional[ReflectiveEngine] = None,
        cache: Optional[TTLCache] = None,
        config: Optional[MissionAgentConfig] = None,
    ):
        self.config = config or get_config()
        self.store = store
        self.planning_engine = planning_engine
        self.plan_executor = plan_executor
        self.goal_tracker = goal_tracker
        self.tool_registry = tool_registry
        self.reflective_engine = reflective_engine
        self.cache = cache if cache is not None else TTLCache(self.config.execution.cache_ttl_seconds)
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_context(self, mission_id: str) -> ExecutionContext:
        return ExecutionContext(
            mission_id=mission_id,
            tools=self.tool_registry,
            logger=AgentLogger(self.store, mission_id=mission_id),
            cache=self.cache,
        )

    def _advance(self, mission_id: str, status: MissionStatus, expected: MissionStatus) -> Mission:
        """Move a running mission forward; a foreign status change interrupts the run."""
        try:
            return self.store.transition_mission(mission_id, status.value, [expected.value])
        except InvalidTransitionError as e:
            raise MissionInterruptedError(mission_id, e.current) from e

    def _is_executing(self, mission_id: str) -> bool:
        try:
            return self.store.get_mission(mission_id).status == MissionStatus.EXECUTING.value
        except MissionNotFoundError:
            return False

    def _force_failed(self, mission_id: str) -> None:
        try:
            self.store.update_mission_status(mission_id, MissionStatus.FAILED.value)
        except Exception as e:
            logger.error(f"[MissionOrchestrator] Could not mark mission {mission_id} failed: {e}")

    def _record_error(self, error: str, ctx: ExecutionContext, plan_id: Optional[str]) -> None:
        if self.reflective_engine is None:
            return
        try:
            self.reflective_engine.record_error(error, ctx, plan_id=plan_id)
        except Exception as e:
            logger.warning(f"[MissionOrchestrator] Could not store error reflection: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_mission(
        self,
        title: str,
        description: str,
        priority: str = MissionPriority.MEDIUM.value,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Mission:
        """Store a new pending mission."""
        mission = self.store.create_mission(title, description, priority=priority, metadata=metadata)
        AgentLogger(self.store, mission_id=mission.id).info(
            f"Mission created: {mission.title}", {"priority": mission.priority}
        )
        return mission

    async def execute_mission(self, mission_id: str) -> ExecutionResult:
        """
        Plan, execute and judge a pending mission.

        Failures after the mission has left ``pending`` never propagate: the
        mission is forced to failed and a failure result is returned. When
        the mission is paused or cancelled during the run, its status is left
        as set and a failure result naming the interruption is returned.

        Raises:
            MissionNotFoundError: If the mission does not exist
            InvalidTransitionError: If the mission is not pending
        """
        mission = self.store.transition_mission(
            mission_id, MissionStatus.PLANNING.value, [MissionStatus.PENDING.value]
        )
        ctx = self._build_context(mission_id)
        ctx.logger.info(f"Starting mission execution: {mission.title}")
        plan: Optional["Plan"] = None

        try:
            planning = await self.planning_engine.create_plan(mission, ctx)
            plan = planning.plan
            plan_ctx = ctx.for_plan(plan.id)

            self._advance(mission_id, MissionStatus.EXECUTING, MissionStatus.PLANNING)
            result = await self.plan_executor.execute_plan(
                plan,
                plan_ctx,
                should_continue=lambda: self._is_executing(mission_id),
            )
            if result.error == INTERRUPTED_MESSAGE:
                current = self.store.get_mission(mission_id).status
                raise MissionInterruptedError(mission_id, current)

            mission = self.store.get_mission(mission_id)
            completed = await self.goal_tracker.validate_completion(mission, result, plan_ctx)
            final = MissionStatus.COMPLETED if completed else MissionStatus.FAILED
            self._advance(mission_id, final, MissionStatus.EXECUTING)

            plan_ctx.logger.info(
                f"Mission execution {final.value}",
                {
                    "completed_tasks": len(result.completed_tasks),
                    "failed_tasks": len(result.failed_tasks),
                    "skipped_tasks": len(result.skipped_tasks),
                },
            )
            return replace(result, success=completed)

        except MissionInterruptedError as e:
            ctx.logger.warn(str(e))
            return ExecutionResult.failure(str(e))

        except Exception as e:
            ctx.logger.error(f"Mission execution failed: {e}")
            self._force_failed(mission_id)
            self._record_error(str(e), ctx, plan.id if plan is not None else None)
            return ExecutionResult.failure(str(e))

    def pause_mission(self, mission_id: str) -> Mission:
        """
        Return an executing mission to pending.

        Raises:
            InvalidTransitionError: If the mission is not executing
        """
        mission = self.store.transition_mission(
            mission_id, MissionStatus.PENDING.value, [MissionStatus.EXECUTING.value]
        )
        AgentLogger(self.store, mission_id=mission_id).info("Mission paused")
        return mission

    def cancel_mission(self, mission_id: str) -> Mission:
        """
        Force a pending, planning or executing mission to failed.

        Raises:
            InvalidTransitionError: If the mission already finished
        """
        mission = self.store.transition_mission(
            mission_id, MissionStatus.FAILED.value, CANCELLABLE_STATUSES
        )
        AgentLogger(self.store, mission_id=mission_id).info("Mission cancelled")
        return mission

    async def resume_mission(self, mission_id: str) -> ExecutionResult:
        """
        Resume a paused mission.

        This runs execute_mission from the start, so the mission is planned
        again and the previous plan is superseded. Tasks already completed
        under the old plan are not carried over.

        Raises:
            InvalidTransitionError: If the mission is not pending
        """
        mission = self.store.get_mission(mission_id)
        if mission.status != MissionStatus.PENDING.value:
            raise InvalidTransitionError(
                "mission", mission_id, mission.status, MissionStatus.PLANNING.value
            )
        AgentLogger(self.store, mission_id=mission_id).info("Mission resumed")
        return await self.execute_mission(mission_id)

    def run_mission_in_background(self, mission_id: str) -> "asyncio.Task[ExecutionResult]":
        """Schedule execute_mission on the running loop and return the task."""
        task = asyncio.create_task(self.execute_mission(mission_id))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: "asyncio.Task[ExecutionResult]") -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[MissionOrchestrator] Background mission run failed: {error}")


def build_orchestrator(
    store: Optional[MissionStore] = None,
    config: Optional[MissionAgentConfig] = None,
) -> MissionOrchestrator:
    """
    Wire an orchestrator with the default collaborators.

    Args:
        store: Store to use; a new one on the configured database otherwise
        config: Configuration; the global one otherwise

    Returns:
        A ready MissionOrchestrator
    """
    config = config or get_config()
    store = store or MissionStore()
    reasoning = ReasoningClient()

    registry = ToolRegistry(create_confluence_tools(store, reasoning))
    planning_engine = PlanningEngine(store, reasoning, registry)
    reflective_engine = (
        ReflectiveEngine(store, reasoning) if config.execution.reflections_enabled else None
    )
    plan_executor = PlanExecutor(
        store,
        TaskExecutor(store, tool_selector=reasoning),
        reflective_engine=reflective_engine,
    )
    goal_tracker = GoalTracker(store, reasoning, planning_engine)

    logger.info(f"[MissionOrchestrator] Tools available: {', '.join(registry.names())}")
    return MissionOrchestrator(
        store,
        planning_engine,
        plan_executor,
        goal_tracker,
        registry,
        reflective_engine=reflective_engine,
        cache=TTLCache(config.execution.cache_ttl_seconds),
        config=config,
    )
