"""
Execution engine: dependency ordering, task execution and plan execution.
"""

from .context import AgentLogger, ExecutionContext, TTLCache
from .task_graph import sort_tasks, validate_dependencies, find_unmet_dependencies
from .task_executor import TaskExecutor
from .plan_executor import PlanExecutor

__all__ = [
    "AgentLogger",
    "ExecutionContext",
    "TTLCache",
    "sort_tasks",
    "validate_dependencies",
    "find_unmet_dependencies",
    "TaskExecutor",
    "PlanExecutor",
]
