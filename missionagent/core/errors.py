"""
Exception hierarchy for MissionAgent.

Task-level errors (tool resolution, tool execution) are contained by the
plan executor; configuration errors (circular dependencies) and
orchestration-level errors terminate the mission run.
"""

from typing import Optional


class MissionAgentError(Exception):
    """Base class for all MissionAgent errors."""


class CircularDependencyError(MissionAgentError):
    """Raised when a plan's task dependencies contain a cycle."""

    def __init__(self, task_id: str, task_title: str = ""):
        self.task_id = task_id
        self.task_title = task_title or task_id
        super().__init__(f"Circular dependency detected involving task: {self.task_title}")


class ToolResolutionError(MissionAgentError):
    """Raised when no tool can be found for a task."""

    def __init__(self, task_id: str, task_title: str, tool_name: Optional[str] = None):
        self.task_id = task_id
        self.task_title = task_title
        self.tool_name = tool_name
        if tool_name:
            message = f"Tool '{tool_name}' is not registered (task: {task_title})"
        else:
            message = f"No suitable tool found for task: {task_title}"
        super().__init__(message)


class TaskExecutionError(MissionAgentError):
    """Raised when a tool raises while executing a task."""

    def __init__(self, task_id: str, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.task_id = task_id
        self.cause = cause


class TaskStateError(MissionAgentError):
    """Raised when a task is not in the state an operation requires."""

    def __init__(self, task_id: str, status: str, expected: str = "pending"):
        self.task_id = task_id
        self.status = status
        self.expected = expected
        super().__init__(f"Task {task_id} is '{status}', expected '{expected}'")


class InvalidTransitionError(MissionAgentError):
    """Raised when a requested status transition is not allowed."""

    def __init__(self, entity: str, entity_id: str, current: str, target: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} {entity_id} from '{current}' to '{target}'")


class EntityNotFoundError(MissionAgentError, LookupError):
    """Base class for lookups that found nothing."""

    entity = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} {entity_id} not found")


class MissionNotFoundError(EntityNotFoundError):
    entity = "mission"


class PlanNotFoundError(EntityNotFoundError):
    entity = "plan"


class TaskNotFoundError(EntityNotFoundError):
    entity = "task"


class PlanningError(MissionAgentError):
    """Raised when the planning service returns an unusable plan."""


class MissionInterruptedError(MissionAgentError):
    """Raised inside a run when the mission status was changed from outside."""

    def __init__(self, mission_id: str, status: str):
        self.mission_id = mission_id
        self.status = status
        super().__init__(f"Mission execution interrupted: status changed to '{status}'")
