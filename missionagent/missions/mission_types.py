"""
Mission Data Types for MissionAgent.

Defines the plain data structures handed around by the execution engine:
missions, versioned plans, tasks, reflections, audit rows and the results
produced by the plan executor and the collaborators.

Status fields hold the enum *values* (plain strings) so the records can be
serialized straight into API responses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Optional, Any
from datetime import datetime


class MissionStatus(str, Enum):
    """Lifecycle of a mission."""
    PENDING = "pending"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class MissionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    SUPERSEDED = "superseded"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ReflectionType(str, Enum):
    PROGRESS_ASSESSMENT = "progress_assessment"
    PLAN_OPTIMIZATION = "plan_optimization"
    ERROR_ANALYSIS = "error_analysis"
    SUCCESS_ANALYSIS = "success_analysis"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class KnowledgeSourceType(str, Enum):
    CONFLUENCE = "confluence"
    WEB = "web"
    DOCUMENT = "document"
    MANUAL = "manual"


# Mission states from which cancel is allowed
CANCELLABLE_STATUSES = {
    MissionStatus.PENDING.value,
    MissionStatus.PLANNING.value,
    MissionStatus.EXECUTING.value,
}

TERMINAL_STATUSES = {MissionStatus.COMPLETED.value, MissionStatus.FAILED.value}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Mission:
    """
    A top-level user goal.

    Attributes:
        id: Store-generated identifier
        title: Short mission title
        description: Free-form description handed to the planner
        status: One of MissionStatus values
        priority: One of MissionPriority values
        metadata: Arbitrary JSON-compatible mapping
    """
    id: str
    title: str
    description: str
    status: str = MissionStatus.PENDING.value
    priority: str = MissionPriority.MEDIUM.value
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
        }


@dataclass
class Task:
    """
    A single unit of work inside a plan.

    Lower ``priority`` values are more urgent. ``dependencies`` holds ids of
    tasks in the same plan that must be completed first. ``sequence`` is the
    position the planner gave the task and keeps listings stable.
    """
    id: str
    plan_id: str
    title: str
    description: str = ""
    status: str = TaskStatus.PENDING.value
    priority: int = 0
    parent_task_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_params: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    estimated_duration: Optional[float] = None
    actual_duration: Optional[float] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "parent_task_id": self.parent_task_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "tool_name": self.tool_name,
            "tool_params": self.tool_params,
            "dependencies": list(self.dependencies),
            "estimated_duration": self.estimated_duration,
            "actual_duration": self.actual_duration,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "result": self.result,
            "metadata": self.metadata,
            "sequence": self.sequence,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Plan:
    """A versioned decomposition of a mission into tasks."""
    id: str
    mission_id: str
    version: int
    title: str
    description: str = ""
    status: str = PlanStatus.DRAFT.value
    estimated_duration: Optional[float] = None
    actual_duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tasks: List[Task] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self, include_tasks: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "mission_id": self.mission_id,
            "version": self.version,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "estimated_duration": self.estimated_duration,
            "actual_duration": self.actual_duration,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_tasks:
            data["tasks"] = [t.to_dict() for t in self.tasks]
        return data


@dataclass
class Reflection:
    """An append-only assessment attached to a mission, plan or task."""
    id: str
    mission_id: str
    type: str
    content: str
    insights: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    confidence: float = 0.5
    plan_id: Optional[str] = None
    task_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "type": self.type,
            "content": self.content,
            "insights": list(self.insights),
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
        }


@dataclass
class ToolUsageRecord:
    """One tool invocation. Duration is in milliseconds."""
    tool_name: str
    parameters: Dict[str, Any]
    success: bool
    duration_ms: int
    mission_id: Optional[str] = None
    task_id: Optional[str] = None
    result: Optional[Any] = None
    error_message: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "task_id": self.task_id,
            "tool_name": self.tool_name,
            "parameters": self.parameters,
            "result": self.result,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }


@dataclass
class ExecutionLog:
    id: str
    level: str
    message: str
    mission_id: Optional[str] = None
    plan_id: Optional[str] = None
    task_id: Optional[str] = None
    data: Optional[Any] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "level": self.level,
            "message": self.message,
            "data": self.data,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class KnowledgeEntry:
    """Indexed content used by the search tool."""
    id: str
    source_type: str
    title: str
    content: str
    source_url: Optional[str] = None
    summary: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    embedding: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_indexed: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self, include_content: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "source_type": self.source_type,
            "source_url": self.source_url,
            "title": self.title,
            "summary": self.summary,
            "tags": list(self.tags),
            "metadata": self.metadata,
            "last_indexed": _iso(self.last_indexed),
            "created_at": _iso(self.created_at),
        }
        if include_content:
            data["content"] = self.content
        return data


@dataclass
class TaskSpec:
    """
    Descriptor for a task that is about to be stored.

    ``depends_on`` and ``parent_index`` refer to positions in the same spec
    list. A parent must come before its children, which keeps the parent
    relation a tree.
    """
    title: str
    description: str = ""
    priority: int = 0
    tool_name: Optional[str] = None
    tool_params: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[int] = field(default_factory=list)
    parent_index: Optional[int] = None
    estimated_duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """
    Outcome of a plan (or mission) run.

    Attributes:
        success: True when no task failed and no error occurred
        completed_tasks: Ids of tasks that completed in this run
        failed_tasks: Ids of tasks that failed in this run
        skipped_tasks: Ids of tasks left pending because of unmet dependencies
        reflections: Reflections produced during the run
        error: Error message for plan- or mission-level failures
    """
    success: bool
    completed_tasks: List[str] = field(default_factory=list)
    failed_tasks: List[str] = field(default_factory=list)
    skipped_tasks: List[str] = field(default_factory=list)
    reflections: List[Reflection] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ExecutionResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "completed_tasks": list(self.completed_tasks),
            "failed_tasks": list(self.failed_tasks),
            "skipped_tasks": list(self.skipped_tasks),
            "reflections": [r.to_dict() for r in self.reflections],
            "error": self.error,
        }


@dataclass
class PlanningResult:
    plan: Plan
    reasoning: str = ""
    confidence: float = 0.5


@dataclass
class CompletionAssessment:
    """Verdict of the goal-completion judge."""
    completed: bool
    completion_percentage: float
    remaining_tasks: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": self.completed,
            "completion_percentage": self.completion_percentage,
            "remaining_tasks": list(self.remaining_tasks),
            "recommendations": list(self.recommendations),
        }
