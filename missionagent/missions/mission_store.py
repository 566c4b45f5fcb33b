"""
Mission Persistence Store for MissionAgent.

Relational persistence for missions, plans, tasks and their audit trail
(execution logs, reflections, tool usage) plus the knowledge base used by
the search tool. ORM rows never leave this module: every method returns
the plain dataclasses from mission_types.

Each public method runs in its own transaction and commits before it
returns. Plan creation (new version + supersede of the older versions +
task tree) is a single transaction.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..core.errors import (
    InvalidTransitionError,
    MissionNotFoundError,
    PlanNotFoundError,
    TaskNotFoundError,
)
from ..core.timeutil import utcnow
from ..db.database import build_engine_from_config, create_session_factory, init_db
from ..db.models import (
    ExecutionLogRow,
    KnowledgeEntryRow,
    MissionRow,
    PlanRow,
    ReflectionRow,
    TaskRow,
    ToolUsageRow,
)
from .mission_types import (
    ExecutionLog,
    KnowledgeEntry,
    Mission,
    MissionPriority,
    MissionStatus,
    Plan,
    PlanStatus,
    Reflection,
    Task,
    TaskSpec,
    TaskStatus,
    ToolUsageRecord,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class MissionStore:
    """
    SQLAlchemy-backed persistence layer.

    Usage:
        store = MissionStore("sqlite:///missionagent.db")
        mission = store.create_mission("Index docs", "Load the team wiki")
        plan = store.create_plan(mission.id, "Plan", tasks=[TaskSpec("Fetch")])
    """

    # Columns update_task() is allowed to touch
    TASK_UPDATABLE = {
        "status",
        "started_at",
        "completed_at",
        "result",
        "actual_duration",
        "priority",
        "metadata",
    }

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        create_tables: bool = True,
    ):
        """
        Initialize the mission store.

        Args:
            database_url: SQLAlchemy URL; defaults to the configured one
            engine: Pre-built engine (takes precedence over database_url)
            create_tables: Create missing tables on startup
        """
        self.engine = engine if engine is not None else build_engine_from_config(database_url)
        self._session_factory = create_session_factory(self.engine)
        if create_tables:
            init_db(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_mission(row: MissionRow) -> Mission:
        return Mission(
            id=row.id,
            title=row.title,
            description=row.description,
            status=row.status,
            priority=row.priority,
            metadata=row.metadata_json or {},
            created_at=row.created_at,
            updated_at=row.updated_at,
            completed_at=row.completed_at,
        )

    @staticmethod
    def _to_task(row: TaskRow) -> Task:
        return Task(
            id=row.id,
            plan_id=row.plan_id,
            parent_task_id=row.parent_task_id,
            title=row.title,
            description=row.description or "",
            status=row.status,
            priority=row.priority,
            tool_name=row.tool_name,
            tool_params=row.tool_params or {},
            dependencies=list(row.dependencies or []),
            estimated_duration=row.estimated_duration,
            actual_duration=row.actual_duration,
            started_at=row.started_at,
            completed_at=row.completed_at,
            result=row.result,
            metadata=row.metadata_json or {},
            sequence=row.sequence,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_plan(row: PlanRow, tasks: Optional[List[Task]] = None) -> Plan:
        return Plan(
            id=row.id,
            mission_id=row.mission_id,
            version=row.version,
            title=row.title,
            description=row.description or "",
            status=row.status,
            estimated_duration=row.estimated_duration,
            actual_duration=row.actual_duration,
            metadata=row.metadata_json or {},
            tasks=tasks or [],
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_reflection(row: ReflectionRow) -> Reflection:
        return Reflection(
            id=row.id,
            mission_id=row.mission_id,
            plan_id=row.plan_id,
            task_id=row.task_id,
            type=row.type,
            content=row.content,
            insights=list(row.insights or []),
            recommendations=list(row.recommendations or []),
            confidence=row.confidence,
            metadata=row.metadata_json or {},
            created_at=row.created_at,
        )

    @staticmethod
    def _to_log(row: ExecutionLogRow) -> ExecutionLog:
        return ExecutionLog(
            id=row.id,
            mission_id=row.mission_id,
            plan_id=row.plan_id,
            task_id=row.task_id,
            level=row.level,
            message=row.message,
            data=row.data,
            timestamp=row.timestamp,
        )

    @staticmethod
    def _to_tool_usage(row: ToolUsageRow) -> ToolUsageRecord:
        return ToolUsageRecord(
            id=row.id,
            mission_id=row.mission_id,
            task_id=row.task_id,
            tool_name=row.tool_name,
            parameters=row.parameters or {},
            result=row.result,
            success=row.success,
            duration_ms=row.duration_ms,
            error_message=row.error_message,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_knowledge(row: KnowledgeEntryRow) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row.id,
            source_type=row.source_type,
            source_url=row.source_url,
            title=row.title,
            content=row.content,
            summary=row.summary,
            tags=list(row.tags or []),
            embedding=row.embedding,
            metadata=row.metadata_json or {},
            last_indexed=row.last_indexed,
            created_at=row.created_at,
        )

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def create_mission(
        self,
        title: str,
        description: str,
        priority: str = MissionPriority.MEDIUM.value,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Mission:
        """
        Insert a new pending mission.

        Args:
            title: Mission title
            description: Mission description
            priority: One of MissionPriority values
            metadata: Optional JSON mapping

        Returns:
            The stored Mission
        """
        priority = MissionPriority(priority).value
        now = utcnow()
        with self._session() as session:
            row = MissionRow(
                id=_new_id(),
                title=title,
                description=description,
                status=MissionStatus.PENDING.value,
                priority=priority,
                metadata_json=metadata or {},
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return self._to_mission(row)

    def _mission_row(self, session: Session, mission_id: str) -> MissionRow:
        row = session.get(MissionRow, mission_id)
        if row is None:
            raise MissionNotFoundError(mission_id)
        return row

    def get_mission(self, mission_id: str) -> Mission:
        """
        Load a mission.

        Raises:
            MissionNotFoundError: If the mission does not exist
        """
        with self._session() as session:
            return self._to_mission(self._mission_row(session, mission_id))

    def exists(self, mission_id: str) -> bool:
        """Check if a mission exists in the store."""
        with self._session() as session:
            return session.get(MissionRow, mission_id) is not None

    def list_missions(self, status: Optional[str] = None, limit: Optional[int] = None) -> List[Mission]:
        """List missions, newest first, optionally filtered by status."""
        with self._session() as session:
            stmt = select(MissionRow).order_by(MissionRow.created_at.desc())
            if status:
                stmt = stmt.where(MissionRow.status == status)
            if limit:
                stmt = stmt.limit(limit)
            return [self._to_mission(row) for row in session.scalars(stmt)]

    def update_mission_status(self, mission_id: str, status: str) -> Mission:
        """
        Set a mission's status unconditionally.

        ``completed_at`` is stamped when the new status is completed.
        """
        status = MissionStatus(status).value
        with self._session() as session:
            row = self._mission_row(session, mission_id)
            self._apply_mission_status(row, status)
            session.flush()
            return self._to_mission(row)

    def transition_mission(
        self,
        mission_id: str,
        status: str,
        allowed_from: Iterable[str],
    ) -> Mission:
        """
        Set a mission's status only if its current status is in allowed_from.

        The read and the write happen in the same transaction.

        Raises:
            MissionNotFoundError: If the mission does not exist
            InvalidTransitionError: If the current status is not allowed
        """
        status = MissionStatus(status).value
        allowed = {MissionStatus(s).value for s in allowed_from}
        with self._session() as session:
            row = self._mission_row(session, mission_id)
            if row.status not in allowed:
                raise InvalidTransitionError("mission", mission_id, row.status, status)
            self._apply_mission_status(row, status)
            session.flush()
            return self._to_mission(row)

    @staticmethod
    def _apply_mission_status(row: MissionRow, status: str) -> None:
        now = utcnow()
        row.status = status
        row.updated_at = now
        if status == MissionStatus.COMPLETED.value:
            row.completed_at = now

    def delete_mission(self, mission_id: str) -> bool:
        """
        Delete a mission and, through the cascading keys, everything it owns.

        Returns:
            True if deleted, False if not found
        """
        with self._session() as session:
            result = session.execute(delete(MissionRow).where(MissionRow.id == mission_id))
            deleted = result.rowcount > 0
        if deleted:
            logger.info(f"[MissionStore] Deleted mission {mission_id}")
        return deleted

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def create_plan(
        self,
        mission_id: str,
        title: str,
        description: str = "",
        tasks: Sequence[TaskSpec] = (),
        estimated_duration: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: str = PlanStatus.DRAFT.value,
    ) -> Plan:
        """
        Store a new plan version with its task tree.

        The version is one more than the mission's latest plan. Older draft
        and active plans of the mission are marked superseded in the same
        transaction; completed and failed plans keep their status.

        Args:
            mission_id: Owning mission
            title: Plan title
            description: Plan description
            tasks: Task descriptors; depends_on/parent_index refer to positions
            estimated_duration: Estimated minutes
            metadata: Optional JSON mapping
            status: Initial plan status

        Returns:
            The stored Plan with its tasks

        Raises:
            MissionNotFoundError: If the mission does not exist
            ValueError: If a task names a parent that does not precede it
        """
        status = PlanStatus(status).value
        with self._session() as session:
            self._mission_row(session, mission_id)

            latest = session.scalar(
                select(func.max(PlanRow.version)).where(PlanRow.mission_id == mission_id)
            )
            version = (latest or 0) + 1

            if latest:
                session.execute(
                    update(PlanRow)
                    .where(PlanRow.mission_id == mission_id)
                    .where(PlanRow.status.in_([PlanStatus.DRAFT.value, PlanStatus.ACTIVE.value]))
                    .values(status=PlanStatus.SUPERSEDED.value, updated_at=utcnow())
                )

            plan_row = PlanRow(
                id=_new_id(),
                mission_id=mission_id,
                version=version,
                title=title,
                description=description,
                status=status,
                estimated_duration=estimated_duration,
                metadata_json=metadata or {},
            )
            session.add(plan_row)
            session.flush()

            task_rows = self._insert_tasks(session, plan_row.id, list(tasks), parent_id=None, start_sequence=0)
            plan = self._to_plan(plan_row, [self._to_task(r) for r in task_rows])

        logger.info(
            f"[MissionStore] Plan v{plan.version} created for mission {mission_id} "
            f"with {len(plan.tasks)} tasks"
        )
        return plan

    def _insert_tasks(
        self,
        session: Session,
        plan_id: str,
        specs: List[TaskSpec],
        parent_id: Optional[str],
        start_sequence: int,
    ) -> List[TaskRow]:
        ids = [_new_id() for _ in specs]
        rows = []

        for index, spec in enumerate(specs):
            if spec.parent_index is not None and not 0 <= spec.parent_index < index:
                raise ValueError(
                    f"Task '{spec.title}' references parent #{spec.parent_index}, "
                    f"which must be an earlier task"
                )

            dependencies = []
            for dep in spec.depends_on:
                if 0 <= dep < len(specs) and dep != index:
                    dependencies.append(ids[dep])
                else:
                    logger.warning(
                        f"[MissionStore] Dropping invalid dependency #{dep} of task '{spec.title}'"
                    )

            row = TaskRow(
                id=ids[index],
                plan_id=plan_id,
                parent_task_id=ids[spec.parent_index] if spec.parent_index is not None else parent_id,
                title=spec.title,
                description=spec.description,
                status=TaskStatus.PENDING.value,
                priority=int(spec.priority),
                sequence=start_sequence + index,
                tool_name=spec.tool_name,
                tool_params=spec.tool_params or {},
                dependencies=dependencies,
                estimated_duration=spec.estimated_duration,
                metadata_json=spec.metadata or {},
            )
            # Flushed one by one so a parent row exists before its children
            session.add(row)
            session.flush()
            rows.append(row)

        return rows

    def _plan_row(self, session: Session, plan_id: str) -> PlanRow:
        row = session.get(PlanRow, plan_id)
        if row is None:
            raise PlanNotFoundError(plan_id)
        return row

    def _task_rows(self, session: Session, plan_id: str) -> List[TaskRow]:
        stmt = select(TaskRow).where(TaskRow.plan_id == plan_id).order_by(TaskRow.sequence)
        return list(session.scalars(stmt))

    def get_plan(self, plan_id: str) -> Plan:
        """
        Load a plan with its tasks.

        Raises:
            PlanNotFoundError: If the plan does not exist
        """
        with self._session() as session:
            row = self._plan_row(session, plan_id)
            tasks = [self._to_task(t) for t in self._task_rows(session, plan_id)]
            return self._to_plan(row, tasks)

    def get_current_plan(self, mission_id: str) -> Optional[Plan]:
        """Latest plan version of a mission (with tasks), or None."""
        with self._session() as session:
            stmt = (
                select(PlanRow)
                .where(PlanRow.mission_id == mission_id)
                .order_by(PlanRow.version.desc())
                .limit(1)
            )
            row = session.scalars(stmt).first()
            if row is None:
                return None
            tasks = [self._to_task(t) for t in self._task_rows(session, row.id)]
            return self._to_plan(row, tasks)

    def list_plans(self, mission_id: str) -> List[Plan]:
        """All plan versions of a mission, newest first, without tasks."""
        with self._session() as session:
            stmt = (
                select(PlanRow)
                .where(PlanRow.mission_id == mission_id)
                .order_by(PlanRow.version.desc())
            )
            return [self._to_plan(row) for row in session.scalars(stmt)]

    def update_plan_status(
        self,
        plan_id: str,
        status: str,
        actual_duration: Optional[float] = None,
    ) -> Plan:
        """Set a plan's status (and optionally its actual duration in minutes)."""
        status = PlanStatus(status).value
        with self._session() as session:
            row = self._plan_row(session, plan_id)
            row.status = status
            row.updated_at = utcnow()
            if actual_duration is not None:
                row.actual_duration = actual_duration
            session.flush()
            return self._to_plan(row)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def get_tasks(self, plan_id: str) -> List[Task]:
        with self._session() as session:
            return [self._to_task(t) for t in self._task_rows(session, plan_id)]

    def get_task(self, task_id: str) -> Task:
        """
        Raises:
            TaskNotFoundError: If the task does not exist
        """
        with self._session() as session:
            row = session.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            return self._to_task(row)

    def get_task_statuses(self, plan_id: str) -> Dict[str, str]:
        """Current persisted status of every task in a plan, keyed by id."""
        with self._session() as session:
            stmt = select(TaskRow.id, TaskRow.status).where(TaskRow.plan_id == plan_id)
            return {task_id: status for task_id, status in session.execute(stmt)}

    def update_task(self, task_id: str, **changes: Any) -> Task:
        """
        Update selected task columns and commit.

        Args:
            task_id: Task to update
            **changes: Any of TASK_UPDATABLE

        Raises:
            TaskNotFoundError: If the task does not exist
            ValueError: On an unknown column or status
        """
        unknown = set(changes) - self.TASK_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")
        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"]).value

        with self._session() as session:
            row = session.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            for key, value in changes.items():
                setattr(row, "metadata_json" if key == "metadata" else key, value)
            row.updated_at = utcnow()
            session.flush()
            return self._to_task(row)

    def add_subtasks(self, parent_task_id: str, specs: Sequence[TaskSpec]) -> List[Task]:
        """
        Insert subtasks under an existing task of the same plan.

        The parent must already exist, so the parent relation stays a tree.
        ``depends_on`` indices refer to positions within ``specs``.

        Raises:
            TaskNotFoundError: If the parent does not exist
        """
        with self._session() as session:
            parent = session.get(TaskRow, parent_task_id)
            if parent is None:
                raise TaskNotFoundError(parent_task_id)

            last = session.scalar(
                select(func.max(TaskRow.sequence)).where(TaskRow.plan_id == parent.plan_id)
            )
            detached = [replace(spec, parent_index=None) for spec in specs]
            rows = self._insert_tasks(
                session,
                parent.plan_id,
                detached,
                parent_id=parent.id,
                start_sequence=(last if last is not None else -1) + 1,
            )
            return [self._to_task(r) for r in rows]

    # ------------------------------------------------------------------
    # Execution logs
    # ------------------------------------------------------------------

    def add_log(
        self,
        level: str,
        message: str,
        mission_id: Optional[str] = None,
        plan_id: Optional[str] = None,
        task_id: Optional[str] = None,
        data: Optional[Any] = None,
    ) -> ExecutionLog:
        with self._session() as session:
            row = ExecutionLogRow(
                id=_new_id(),
                mission_id=mission_id,
                plan_id=plan_id,
                task_id=task_id,
                level=level,
                message=message,
                data=data,
                timestamp=utcnow(),
            )
            session.add(row)
            session.flush()
            return self._to_log(row)

    def list_logs(
        self,
        mission_id: str,
        limit: Optional[int] = None,
        level: Optional[str] = None,
    ) -> List[ExecutionLog]:
        """Logs of a mission in chronological order (the most recent ``limit`` if given)."""
        with self._session() as session:
            stmt = select(ExecutionLogRow).where(ExecutionLogRow.mission_id == mission_id)
            if level:
                stmt = stmt.where(ExecutionLogRow.level == level)
            if limit:
                stmt = stmt.order_by(ExecutionLogRow.timestamp.desc()).limit(limit)
                rows = list(session.scalars(stmt))
                rows.reverse()
            else:
                rows = list(session.scalars(stmt.order_by(ExecutionLogRow.timestamp)))
            return [self._to_log(row) for row in rows]

    def count_logs(self, mission_id: str) -> int:
        with self._session() as session:
            return session.scalar(
                select(func.count()).select_from(ExecutionLogRow).where(
                    ExecutionLogRow.mission_id == mission_id
                )
            ) or 0

    # ------------------------------------------------------------------
    # Reflections
    # ------------------------------------------------------------------

    def add_reflection(
        self,
        mission_id: str,
        type: str,
        content: str,
        insights: Optional[List[str]] = None,
        recommendations: Optional[List[str]] = None,
        confidence: float = 0.5,
        plan_id: Optional[str] = None,
        task_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Reflection:
        """Append a reflection. Confidence is clamped to [0, 1]."""
        with self._session() as session:
            row = ReflectionRow(
                id=_new_id(),
                mission_id=mission_id,
                plan_id=plan_id,
                task_id=task_id,
                type=type,
                content=content,
                insights=list(insights or []),
                recommendations=list(recommendations or []),
                confidence=max(0.0, min(1.0, float(confidence))),
                metadata_json=metadata or {},
                created_at=utcnow(),
            )
            session.add(row)
            session.flush()
            return self._to_reflection(row)

    def list_reflections(self, mission_id: str, plan_id: Optional[str] = None) -> List[Reflection]:
        with self._session() as session:
            stmt = select(ReflectionRow).where(ReflectionRow.mission_id == mission_id)
            if plan_id:
                stmt = stmt.where(ReflectionRow.plan_id == plan_id)
            stmt = stmt.order_by(ReflectionRow.created_at)
            return [self._to_reflection(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Tool usage
    # ------------------------------------------------------------------

    def add_tool_usage(self, record: ToolUsageRecord) -> ToolUsageRecord:
        with self._session() as session:
            row = ToolUsageRow(
                id=record.id or _new_id(),
                mission_id=record.mission_id,
                task_id=record.task_id,
                tool_name=record.tool_name,
                parameters=record.parameters or {},
                result=record.result,
                success=record.success,
                duration_ms=int(record.duration_ms),
                error_message=record.error_message,
                created_at=record.created_at or utcnow(),
            )
            session.add(row)
            session.flush()
            return self._to_tool_usage(row)

    def list_tool_usage(
        self,
        mission_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> List[ToolUsageRecord]:
        with self._session() as session:
            stmt = select(ToolUsageRow)
            if mission_id:
                stmt = stmt.where(ToolUsageRow.mission_id == mission_id)
            if task_id:
                stmt = stmt.where(ToolUsageRow.task_id == task_id)
            stmt = stmt.order_by(ToolUsageRow.created_at)
            return [self._to_tool_usage(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------

    def add_knowledge_entry(
        self,
        source_type: str,
        title: str,
        content: str,
        source_url: Optional[str] = None,
        summary: Optional[str] = None,
        tags: Optional[List[str]] = None,
        embedding: Optional[List[float]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> KnowledgeEntry:
        now = utcnow()
        with self._session() as session:
            row = KnowledgeEntryRow(
                id=_new_id(),
                source_type=source_type,
                source_url=source_url,
                title=title,
                content=content,
                summary=summary,
                tags=list(tags or []),
                embedding=list(embedding) if embedding is not None else None,
                metadata_json=metadata or {},
                last_indexed=now,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return self._to_knowledge(row)

    def list_knowledge_entries(
        self,
        source_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[KnowledgeEntry]:
        """Indexed entries, most recently indexed first."""
        with self._session() as session:
            stmt = select(KnowledgeEntryRow).order_by(KnowledgeEntryRow.last_indexed.desc())
            if source_type:
                stmt = stmt.where(KnowledgeEntryRow.source_type == source_type)
            if limit:
                stmt = stmt.limit(limit)
            return [self._to_knowledge(row) for row in session.scalars(stmt)]
