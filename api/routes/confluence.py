"""
Confluence API Routes.

List indexed pages and run the confluence tools directly (outside of a
mission) to load a page or search the indexed content.
"""

from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from missionagent.missions import KnowledgeSourceType
from missionagent.tools.base import Tool

from . import missions as mission_routes

router = APIRouter(prefix="/api/confluence", tags=["confluence"])

CONFLUENCE_ACTIONS = ("load", "search")


def _get_tools() -> Dict[str, Tool]:
    """Confluence tools of the shared orchestrator, by name."""
    registry = mission_routes._get_orchestrator().tool_registry
    return {name: registry.get(name) for name in ("confluence_loader", "confluence_search")}


class ConfluenceActionRequest(BaseModel):
    """Request body for a confluence action."""
    action: str = Field(..., description="One of: load, search")
    url: Optional[str] = Field(default=None, description="Page URL (load)")
    include_attachments: bool = Field(default=False, description="Include attachments (load)")
    query: Optional[str] = Field(default=None, description="Search query (search)")
    limit: Optional[int] = Field(default=None, ge=1, le=100, description="Maximum results (search)")


@router.get("")
async def list_pages(
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum number of pages"),
):
    """Indexed confluence pages, most recently indexed first."""
    entries = mission_routes._store.list_knowledge_entries(
        KnowledgeSourceType.CONFLUENCE.value, limit=limit
    )
    return {"pages": [e.to_dict() for e in entries], "total": len(entries)}


@router.post("")
async def run_action(request: ConfluenceActionRequest):
    """Load a page into the knowledge base or search it."""
    if request.action not in CONFLUENCE_ACTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid action: {request.action}. Expected one of: {', '.join(CONFLUENCE_ACTIONS)}",
        )

    tools = _get_tools()
    if request.action == "load":
        if not request.url:
            raise HTTPException(status_code=400, detail="url is required for action 'load'")
        result = await tools["confluence_loader"].execute(
            {"url": request.url, "include_attachments": request.include_attachments}, None
        )
    else:
        if not request.query:
            raise HTTPException(status_code=400, detail="query is required for action 'search'")
        params = {"query": request.query}
        if request.limit is not None:
            params["limit"] = request.limit
        result = await tools["confluence_search"].execute(params, None)

    if not result.success:
        raise HTTPException(status_code=500, detail=result.error or "Confluence action failed")
    return result.to_dict()
