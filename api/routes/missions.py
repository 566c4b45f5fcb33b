"""
Mission API Routes.

Create, list, inspect, control (pause/resume/cancel) and delete missions.
Mission execution runs in the background after the response is sent.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from pydantic import BaseModel, Field

from missionagent.core.errors import InvalidTransitionError, MissionNotFoundError
from missionagent.missions import Mission, MissionPriority, MissionStatus, MissionStore
from missionagent.missions.mission_orchestrator import MissionOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/missions", tags=["missions"])

# Initialize store
_store = MissionStore()
_orchestrator: Optional[MissionOrchestrator] = None

MISSION_ACTIONS = ("pause", "resume", "cancel")


def _get_orchestrator() -> MissionOrchestrator:
    """Orchestrator bound to the route store, built on first use."""
    global _orchestrator
    if _orchestrator is None or _orchestrator.store is not _store:
        _orchestrator = build_orchestrator(store=_store)
    return _orchestrator


# Request/Response Models
class CreateMissionRequest(BaseModel):
    """Request body for creating a new mission."""
    title: str = Field(..., min_length=1, description="Short mission title")
    description: str = Field(..., min_length=1, description="What the mission should achieve")
    priority: MissionPriority = Field(default=MissionPriority.MEDIUM, description="Mission priority")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")


class MissionActionRequest(BaseModel):
    """Request body for a status action on a mission."""
    action: str = Field(..., description="One of: pause, resume, cancel")


class MissionResponse(BaseModel):
    """A mission as returned by the API."""
    id: str
    title: str
    description: str
    status: str
    priority: str
    metadata: Dict[str, Any] = {}
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None


class MissionDetail(BaseModel):
    """Mission with its plans, current tasks, recent logs and reflections."""
    mission: MissionResponse
    plans: List[Dict[str, Any]]
    current_plan_id: Optional[str] = None
    tasks: List[Dict[str, Any]]
    logs: List[Dict[str, Any]]
    reflections: List[Dict[str, Any]]


def _mission_response(mission: Mission) -> MissionResponse:
    return MissionResponse(**mission.to_dict())


def _load_mission(mission_id: str) -> Mission:
    try:
        return _store.get_mission(mission_id)
    except MissionNotFoundError:
        raise HTTPException(status_code=404, detail="Mission not found")


async def run_mission(mission_id: str, resume: bool = False) -> None:
    """Background entry point; every failure is logged, never raised."""
    orchestrator = _get_orchestrator()
    try:
        if resume:
            result = await orchestrator.resume_mission(mission_id)
        else:
            result = await orchestrator.execute_mission(mission_id)
        logger.info(
            f"[API] Mission {mission_id} run finished: success={result.success}"
            + (f" error={result.error}" if result.error else "")
        )
    except Exception as e:
        logger.error(f"[API] Mission {mission_id} could not be run: {e}")


@router.get("", response_model=List[MissionResponse])
async def list_missions(
    status: Optional[MissionStatus] = Query(None, description="Filter by status"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum number of missions"),
):
    """List missions, newest first."""
    missions = _store.list_missions(status=status.value if status else None, limit=limit)
    return [_mission_response(m) for m in missions]


@router.post("", response_model=MissionResponse)
async def create_mission(
    request: CreateMissionRequest,
    background_tasks: BackgroundTasks,
):
    """Create a mission and start executing it in the background."""
    mission = _get_orchestrator().create_mission(
        request.title,
        request.description,
        priority=request.priority.value,
        metadata=request.metadata,
    )
    background_tasks.add_task(run_mission, mission.id)
    return _mission_response(mission)


@router.get("/{mission_id}", response_model=MissionDetail)
async def get_mission(
    mission_id: str,
    log_limit: int = Query(100, ge=1, le=1000, description="Number of most recent logs"),
):
    """Get a mission with its plans, the tasks of its current plan, logs and reflections."""
    mission = _load_mission(mission_id)
    current_plan = _store.get_current_plan(mission_id)

    return MissionDetail(
        mission=_mission_response(mission),
        plans=[p.to_dict(include_tasks=False) for p in _store.list_plans(mission_id)],
        current_plan_id=current_plan.id if current_plan else None,
        tasks=[t.to_dict() for t in current_plan.tasks] if current_plan else [],
        logs=[log.to_dict() for log in _store.list_logs(mission_id, limit=log_limit)],
        reflections=[r.to_dict() for r in _store.list_reflections(mission_id)],
    )


@router.patch("/{mission_id}", response_model=MissionResponse)
async def update_mission(
    mission_id: str,
    request: MissionActionRequest,
    background_tasks: BackgroundTasks,
):
    """Pause, resume or cancel a mission."""
    if request.action not in MISSION_ACTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid action: {request.action}. Expected one of: {', '.join(MISSION_ACTIONS)}",
        )

    mission = _load_mission(mission_id)
    orchestrator = _get_orchestrator()
    try:
        if request.action == "pause":
            mission = orchestrator.pause_mission(mission_id)
        elif request.action == "cancel":
            mission = orchestrator.cancel_mission(mission_id)
        else:
            if mission.status != MissionStatus.PENDING.value:
                raise InvalidTransitionError(
                    "mission", mission_id, mission.status, MissionStatus.PLANNING.value
                )
            background_tasks.add_task(run_mission, mission_id, True)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MissionNotFoundError:
        raise HTTPException(status_code=404, detail="Mission not found")

    return _mission_response(mission)


@router.get("/{mission_id}/logs")
async def get_mission_logs(
    mission_id: str,
    limit: Optional[int] = Query(None, ge=1, le=5000, description="Number of most recent logs"),
    level: Optional[str] = Query(None, description="Filter by level"),
):
    """Execution logs of a mission in chronological order."""
    if not _store.exists(mission_id):
        raise HTTPException(status_code=404, detail="Mission not found")

    logs = _store.list_logs(mission_id, limit=limit, level=level)
    return {
        "mission_id": mission_id,
        "logs": [log.to_dict() for log in logs],
        "total": _store.count_logs(mission_id),
    }


@router.delete("/{mission_id}")
async def delete_mission(mission_id: str):
    """Delete a mission with its plans, tasks, logs and reflections."""
    if not _store.delete_mission(mission_id):
        raise HTTPException(status_code=404, detail="Mission not found")
    return {"status": "deleted", "mission_id": mission_id}
