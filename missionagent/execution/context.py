"""
Per-run execution context.

One ExecutionContext is built by the orchestrator for every mission run
and handed down to the plan executor, the task executor and the tools.
It carries the ids of what is running, the tool registry, a TTL cache and
an AgentLogger bound to the current mission/plan/task.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..missions.mission_types import LogLevel

if TYPE_CHECKING:
    from ..missions.mission_store import MissionStore
    from ..tools.base import ToolRegistry

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Small process-local cache with per-entry expiry.

    Guarded by a lock; expired entries are dropped lazily on read.
    """

    def __init__(self, ttl_seconds: float = 3600.0):
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._items: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        now = time.monotonic()
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return default
            expires_at, value = item
            if expires_at <= now:
                del self._items[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._items[key] = (time.monotonic() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __contains__(self, key: str) -> bool:
        marker = object()
        return self.get(key, marker) is not marker

    def __len__(self) -> int:
        now = time.monotonic()
        with self._lock:
            return sum(1 for expires_at, _ in self._items.values() if expires_at > now)


_STD_LEVELS = {
    LogLevel.DEBUG.value: logging.DEBUG,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.WARN.value: logging.WARNING,
    LogLevel.ERROR.value: logging.ERROR,
}


class AgentLogger:
    """
    Context-bound logger.

    Every call goes to the standard ``logging`` logger and is also stored as
    an execution log row for the bound mission/plan/task. A failure to store
    the row is reported on the standard logger and never raised.
    """

    def __init__(
        self,
        store: Optional["MissionStore"],
        mission_id: Optional[str] = None,
        plan_id: Optional[str] = None,
        task_id: Optional[str] = None,
        name: str = "missionagent.agent",
    ):
        self.store = store
        self.mission_id = mission_id
        self.plan_id = plan_id
        self.task_id = task_id
        self._logger = logging.getLogger(name)

    def bind(self, **ids: Optional[str]) -> "AgentLogger":
        """Return a copy bound to other ids (mission_id, plan_id, task_id)."""
        return AgentLogger(
            self.store,
            mission_id=ids.get("mission_id", self.mission_id),
            plan_id=ids.get("plan_id", self.plan_id),
            task_id=ids.get("task_id", self.task_id),
            name=self._logger.name,
        )

    def log(self, level: str, message: str, data: Any = None) -> None:
        level = LogLevel(level).value
        suffix = f" {data}" if data is not None else ""
        self._logger.log(_STD_LEVELS[level], f"[Agent:{level.upper()}] {message}{suffix}")

        if self.store is None:
            return
        try:
            self.store.add_log(
                level,
                message,
                mission_id=self.mission_id,
                plan_id=self.plan_id,
                task_id=self.task_id,
                data=data,
            )
        except Exception as e:
            logger.warning(f"[AgentLogger] Failed to persist log entry: {e}")

    def debug(self, message: str, data: Any = None) -> None:
        self.log(LogLevel.DEBUG.value, message, data)

    def info(self, message: str, data: Any = None) -> None:
        self.log(LogLevel.INFO.value, message, data)

    def warn(self, message: str, data: Any = None) -> None:
        self.log(LogLevel.WARN.value, message, data)

    warning = warn

    def error(self, message: str, data: Any = None) -> None:
        self.log(LogLevel.ERROR.value, message, data)


@dataclass
class ExecutionContext:
    """
    Typed context for one mission run.

    Attributes:
        mission_id: Mission being executed
        tools: Registry tools are resolved from
        logger: Logger bound to mission_id/plan_id/task_id
        cache: Cache shared by the tools during the run
        plan_id: Plan being executed, once there is one
        task_id: Task being executed, inside the task executor
    """
    mission_id: str
    tools: "ToolRegistry"
    logger: AgentLogger
    cache: TTLCache
    plan_id: Optional[str] = None
    task_id: Optional[str] = None

    def for_plan(self, plan_id: str) -> "ExecutionContext":
        return replace(
            self,
            plan_id=plan_id,
            task_id=None,
            logger=self.logger.bind(plan_id=plan_id, task_id=None),
        )

    def for_task(self, task_id: str) -> "ExecutionContext":
        return replace(self, task_id=task_id, logger=self.logger.bind(task_id=task_id))
