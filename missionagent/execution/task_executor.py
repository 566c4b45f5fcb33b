"""
Task Executor - runs exactly one task.

The task is moved to in_progress (and committed) before any tool code
runs. Every tool invocation leaves exactly one tool usage row, whatever
its outcome. The executor never retries; retry policy belongs to tools.
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..core.errors import TaskExecutionError, TaskStateError, ToolResolutionError
from ..core.timeutil import minutes_between, utcnow
from ..missions.mission_types import Task, TaskStatus, ToolUsageRecord
from ..tools.base import Tool, ToolResult
from .context import ExecutionContext

if TYPE_CHECKING:
    from ..missions.mission_store import MissionStore
    from ..models.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)


class TaskExecutor:
    """
    Executes a single pending task through the tool registry.

    Usage:
        executor = TaskExecutor(store)
        result = await executor.execute_task(task, ctx)
    """

    def __init__(
        self,
        store: "MissionStore",
        tool_selector: Optional["ReasoningClient"] = None,
    ):
        """
        Args:
            store: Persistence store
            tool_selector: Optional reasoning client asked to pick a tool for
                tasks that do not name one
        """
        self.store = store
        self.tool_selector = tool_selector

    async def execute_task(self, task: Task, ctx: ExecutionContext) -> ToolResult:
        """
        Run one task to completion or failure.

        Args:
            task: Task to run; must be pending in the store
            ctx: Execution context of the mission run

        Returns:
            The tool's ToolResult (success or structured failure)

        Raises:
            TaskStateError: If the task is not pending (task untouched)
            ToolResolutionError: If no tool could be resolved (task failed)
            TaskExecutionError: If the tool raised (task failed)
        """
        current = self.store.get_task(task.id)
        if current.status != TaskStatus.PENDING.value:
            raise TaskStateError(task.id, current.status)

        task_ctx = ctx.for_task(task.id)
        started_at = utcnow()
        self.store.update_task(task.id, status=TaskStatus.IN_PROGRESS.value, started_at=started_at)
        task_ctx.logger.info(f"Starting task: {task.title}", {"task_id": task.id})

        tool, params = await self._resolve_tool(current, task_ctx)
        if tool is None:
            error = ToolResolutionError(task.id, task.title, current.tool_name)
            self._finish(task.id, started_at, TaskStatus.FAILED.value, {"error": str(error)})
            task_ctx.logger.error(str(error))
            raise error

        t0 = time.perf_counter()
        try:
            raw = await tool.execute(params, task_ctx)
        except Exception as e:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            self._record_usage(tool.name, params, task_ctx, duration_ms, success=False, error=str(e))
            self._finish(task.id, started_at, TaskStatus.FAILED.value, {"error": str(e)})
            task_ctx.logger.error(f"Task failed: {task.title}", {"error": str(e)})
            raise TaskExecutionError(task.id, f"Tool '{tool.name}' raised: {e}", cause=e) from e

        duration_ms = int((time.perf_counter() - t0) * 1000)
        result = self._coerce_result(raw)
        self._record_usage(
            tool.name,
            params,
            task_ctx,
            duration_ms,
            success=result.success,
            result=result.data,
            error=result.error,
        )

        if result.success:
            self._finish(task.id, started_at, TaskStatus.COMPLETED.value, result.data)
            task_ctx.logger.info(f"Task completed: {task.title}", {"duration_ms": duration_ms})
        else:
            error = result.error or f"Tool '{tool.name}' reported failure"
            self._finish(task.id, started_at, TaskStatus.FAILED.value, {"error": error})
            task_ctx.logger.error(f"Task failed: {task.title}", {"error": error})

        return result

    async def _resolve_tool(
        self,
        task: Task,
        ctx: ExecutionContext,
    ) -> Tuple[Optional[Tool], Dict[str, Any]]:
        if task.tool_name:
            return ctx.tools.get(task.tool_name), dict(task.tool_params)

        if self.tool_selector is None or not len(ctx.tools):
            return None, {}

        try:
            selection = await self.tool_selector.select_tool(task, ctx.tools.describe())
        except Exception as e:
            ctx.logger.warn(f"Tool selection failed: {e}")
            return None, {}

        tool = ctx.tools.get(selection.tool_name) if selection.tool_name else None
        if tool is None:
            return None, {}

        ctx.logger.info(
            f"Selected tool: {tool.name}",
            {"reasoning": selection.reasoning},
        )
        params = dict(selection.parameters)
        params.update(task.tool_params)
        return tool, params

    def _finish(self, task_id: str, started_at, status: str, result: Any) -> None:
        completed_at = utcnow()
        self.store.update_task(
            task_id,
            status=status,
            completed_at=completed_at,
            result=result,
            actual_duration=minutes_between(started_at, completed_at),
        )

    def _record_usage(
        self,
        tool_name: str,
        params: Dict[str, Any],
        ctx: ExecutionContext,
        duration_ms: int,
        success: bool,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        self.store.add_tool_usage(ToolUsageRecord(
            tool_name=tool_name,
            parameters=params,
            success=success,
            duration_ms=duration_ms,
            mission_id=ctx.mission_id,
            task_id=ctx.task_id,
            result=result,
            error_message=error,
        ))

    @staticmethod
    def _coerce_result(raw: Any) -> ToolResult:
        if isinstance(raw, ToolResult):
            return raw
        if isinstance(raw, dict):
            return ToolResult(
                success=bool(raw.get("success")),
                data=raw.get("data"),
                error=raw.get("error"),
                metadata=raw.get("metadata") or {},
            )
        return ToolResult(success=False, error=f"Tool returned an unexpected value: {type(raw).__name__}")
