"""
Mission data types and persistence.

The orchestrator lives in ``missionagent.missions.mission_orchestrator``
and is imported from there.
"""

from .mission_types import (
    CANCELLABLE_STATUSES,
    TERMINAL_STATUSES,
    CompletionAssessment,
    ExecutionLog,
    ExecutionResult,
    KnowledgeEntry,
    KnowledgeSourceType,
    LogLevel,
    Mission,
    MissionPriority,
    MissionStatus,
    Plan,
    PlanningResult,
    PlanStatus,
    Reflection,
    ReflectionType,
    Task,
    TaskSpec,
    TaskStatus,
    ToolUsageRecord,
)
from .mission_store import MissionStore

__all__ = [
    "CANCELLABLE_STATUSES",
    "TERMINAL_STATUSES",
    "CompletionAssessment",
    "ExecutionLog",
    "ExecutionResult",
    "KnowledgeEntry",
    "KnowledgeSourceType",
    "LogLevel",
    "Mission",
    "MissionPriority",
    "MissionStatus",
    "Plan",
    "PlanningResult",
    "PlanStatus",
    "Reflection",
    "ReflectionType",
    "Task",
    "TaskSpec",
    "TaskStatus",
    "ToolUsageRecord",
    "MissionStore",
]
