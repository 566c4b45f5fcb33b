"""
Relational persistence: schema and engine helpers.
"""

from .models import (
    Base,
    MissionRow,
    PlanRow,
    TaskRow,
    ExecutionLogRow,
    ReflectionRow,
    KnowledgeEntryRow,
    ToolUsageRow,
)
from .database import create_db_engine, create_session_factory, init_db, build_engine_from_config

__all__ = [
    "Base",
    "MissionRow",
    "PlanRow",
    "TaskRow",
    "ExecutionLogRow",
    "ReflectionRow",
    "KnowledgeEntryRow",
    "ToolUsageRow",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "build_engine_from_config",
]
