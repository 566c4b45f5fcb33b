"""
Planning Engine - turns reasoning-service plans into stored plan versions.

Task descriptors returned by the service refer to each other by explicit
``id``, by 0-based position or by exact title. They are resolved to
positions here and to stored task ids by the store.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..core.errors import PlanningError
from ..missions.mission_types import Mission, Plan, PlanningResult, Task, TaskSpec
from ..models.reasoning_client import pick

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext
    from ..missions.mission_store import MissionStore
    from ..models.reasoning_client import ReasoningClient
    from ..tools.base import ToolRegistry

logger = logging.getLogger(__name__)

# Named priorities some models answer with
PRIORITY_NAMES = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


def _parse_priority(value: Any, default: int = 0) -> int:
    if isinstance(value, str) and value.strip().lower() in PRIORITY_NAMES:
        return PRIORITY_NAMES[value.strip().lower()]
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _optional_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def build_task_specs(descriptors: List[Dict[str, Any]]) -> List[TaskSpec]:
    """
    Convert task descriptors into TaskSpecs with positional dependencies.

    Args:
        descriptors: Task objects as returned by the reasoning service

    Returns:
        One TaskSpec per descriptor, in the same order

    Raises:
        PlanningError: If a descriptor is not an object or has no title
    """
    by_id: Dict[str, int] = {}
    by_title: Dict[str, int] = {}
    for index, item in enumerate(descriptors):
        if not isinstance(item, dict):
            raise PlanningError(f"Task descriptor #{index} is not an object")
        if item.get("id") is not None:
            by_id.setdefault(str(item["id"]), index)
        if item.get("title"):
            by_title.setdefault(str(item["title"]), index)

    def resolve(ref: Any) -> Optional[int]:
        if isinstance(ref, bool):
            return None
        key = str(ref)
        if key in by_id:
            return by_id[key]
        if isinstance(ref, int):
            return ref if 0 <= ref < len(descriptors) else None
        ref = key
        if ref in by_title:
            return by_title[ref]
        if ref.isdigit() and int(ref) < len(descriptors):
            return int(ref)
        return None

    specs = []
    for index, item in enumerate(descriptors):
        title = str(item.get("title") or "").strip()
        if not title:
            raise PlanningError(f"Task descriptor #{index} has no title")

        depends_on: List[int] = []
        for ref in item.get("dependencies") or []:
            resolved = resolve(ref)
            if resolved is None or resolved == index:
                logger.warning(f"[PlanningEngine] Dropping dependency {ref!r} of task '{title}'")
                continue
            if resolved not in depends_on:
                depends_on.append(resolved)

        params = pick(item, "tool_params", "toolParams", "parameters", default={})
        specs.append(TaskSpec(
            title=title,
            description=str(item.get("description") or ""),
            priority=_parse_priority(item.get("priority")),
            tool_name=pick(item, "tool_name", "toolName") or None,
            tool_params=params if isinstance(params, dict) else {},
            depends_on=depends_on,
            estimated_duration=_optional_float(pick(item, "estimated_duration", "estimatedDuration")),
        ))
    return specs


class PlanningEngine:
    """
    Creates, revises and decomposes plans.

    Usage:
        engine = PlanningEngine(store, ReasoningClient(), registry)
        result = await engine.create_plan(mission)
    """

    def __init__(
        self,
        store: "MissionStore",
        reasoning: "ReasoningClient",
        tools: Optional["ToolRegistry"] = None,
    ):
        self.store = store
        self.reasoning = reasoning
        self.tools = tools

    def _tool_descriptions(self) -> Optional[List[Dict[str, Any]]]:
        return self.tools.describe() if self.tools is not None and len(self.tools) else None

    async def create_plan(
        self,
        mission: Mission,
        ctx: Optional["ExecutionContext"] = None,
        context: Optional[str] = None,
    ) -> PlanningResult:
        """
        Ask for a plan and store it as the mission's next version.

        Raises:
            PlanningError: If the returned plan is unusable
            ModelInvocationError / ReasoningResponseError: On service failures
        """
        if ctx is not None:
            ctx.logger.info(f"Creating plan for mission: {mission.title}")
        data = await self.reasoning.generate_plan(
            mission, context=context, tools=self._tool_descriptions()
        )
        return self._store_plan(mission, data, ctx)

    async def update_plan(
        self,
        plan: Plan,
        feedback: str,
        ctx: Optional["ExecutionContext"] = None,
    ) -> PlanningResult:
        """Ask for a revision of ``plan``; the new version supersedes it."""
        mission = self.store.get_mission(plan.mission_id)
        if ctx is not None:
            ctx.logger.info(f"Revising plan v{plan.version}", {"feedback": feedback})
        data = await self.reasoning.generate_plan(
            mission,
            tools=self._tool_descriptions(),
            previous_plan=plan,
            feedback=feedback,
        )
        return self._store_plan(mission, data, ctx)

    async def decompose_task(
        self,
        task: Task,
        ctx: Optional["ExecutionContext"] = None,
    ) -> List[Task]:
        """Split a task into stored subtasks (children of ``task``)."""
        data = await self.reasoning.decompose_task(task, tools=self._tool_descriptions())
        specs = build_task_specs(data.get("tasks") or [])
        subtasks = self.store.add_subtasks(task.id, specs)
        if ctx is not None:
            ctx.logger.info(f"Decomposed task into {len(subtasks)} subtasks: {task.title}")
        return subtasks

    def _store_plan(
        self,
        mission: Mission,
        data: Dict[str, Any],
        ctx: Optional["ExecutionContext"],
    ) -> PlanningResult:
        specs = build_task_specs(data.get("tasks") or [])
        raw_confidence = _optional_float(data.get("confidence"))
        confidence = max(0.0, min(1.0, 0.5 if raw_confidence is None else raw_confidence))
        reasoning = str(data.get("reasoning") or "")

        plan = self.store.create_plan(
            mission.id,
            title=str(data.get("title") or f"Plan for {mission.title}"),
            description=str(data.get("description") or ""),
            tasks=specs,
            estimated_duration=_optional_float(pick(data, "estimated_duration", "estimatedDuration")),
            metadata={"reasoning": reasoning, "confidence": confidence},
        )
        if ctx is not None:
            ctx.logger.info(
                f"Plan v{plan.version} created with {len(plan.tasks)} tasks",
                {"plan_id": plan.id, "confidence": confidence},
            )
        return PlanningResult(plan=plan, reasoning=reasoning, confidence=confidence)
