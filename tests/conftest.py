"""
Pytest fixtures and configuration for the MissionAgent test suite.
"""

import os

# Must be set before anything reads the configuration
os.environ.setdefault("MISSIONAGENT_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("MISSIONAGENT_REFLECTIONS_ENABLED", "false")

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from missionagent.db.database import create_db_engine
from missionagent.execution.context import AgentLogger, ExecutionContext, TTLCache
from missionagent.missions import MissionStore, TaskSpec
from missionagent.models.reasoning_client import CompletionVerdict, ReflectionAnalysis
from missionagent.tools.base import BaseTool, ToolRegistry


class FakeTool(BaseTool):
    """Tool double that records its calls and answers as configured."""

    def __init__(
        self,
        name: str,
        succeed: bool = True,
        data: Any = None,
        error: str = "tool failed",
        raises: Optional[Exception] = None,
    ):
        self.name = name
        self.description = f"Fake tool {name}"
        self.parameters = {}
        self.succeed = succeed
        self.data = data
        self.error = error
        self.raises = raises
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, params, ctx):
        self.calls.append({"params": dict(params), "task_id": ctx.task_id if ctx else None})
        if self.raises is not None:
            raise self.raises
        if self.succeed:
            return self.create_result(True, self.data if self.data is not None else {"echo": params})
        return self.create_result(False, error=self.error)


@pytest.fixture
def store():
    """Store on a private in-memory database."""
    engine = create_db_engine("sqlite:///:memory:")
    yield MissionStore(engine=engine)
    engine.dispose()


@pytest.fixture
def echo_tool():
    return FakeTool("echo")


@pytest.fixture
def broken_tool():
    return FakeTool("broken", succeed=False, error="remote said no")


@pytest.fixture
def fake_tool():
    """The FakeTool class, for tests that build their own tools."""
    return FakeTool


@pytest.fixture
def registry(echo_tool, broken_tool):
    return ToolRegistry([echo_tool, broken_tool])


@pytest.fixture
def mission(store):
    return store.create_mission("Index the wiki", "Load and index the team wiki pages")


@pytest.fixture
def ctx(store, mission, registry):
    """Execution context of a run of ``mission``."""
    return ExecutionContext(
        mission_id=mission.id,
        tools=registry,
        logger=AgentLogger(store, mission_id=mission.id),
        cache=TTLCache(60),
    )


@pytest.fixture
def make_plan(store, mission):
    """Store a plan for ``mission`` from TaskSpecs."""
    def _make(specs: List[TaskSpec], title: str = "Test plan"):
        return store.create_plan(mission.id, title, tasks=specs)
    return _make


@pytest.fixture
def reasoning():
    """Reasoning client double with agreeable default answers."""
    mock = MagicMock()
    mock.generate_plan = AsyncMock(return_value={
        "title": "Plan",
        "description": "Generated plan",
        "tasks": [],
        "reasoning": "Nothing to do",
        "confidence": 0.8,
    })
    mock.decompose_task = AsyncMock(return_value={"tasks": []})
    mock.reflect = AsyncMock(return_value=ReflectionAnalysis(
        insights=["insight"],
        recommendations=["recommendation"],
        confidence=0.7,
        reasoning="analysis",
    ))
    mock.select_tool = AsyncMock()
    mock.assess_completion = AsyncMock(return_value=CompletionVerdict(
        completed=True,
        completion_percentage=1.0,
    ))
    mock.embed = AsyncMock(return_value=[1.0, 0.0, 0.0])
    return mock


# FastAPI test client fixtures
@pytest.fixture
def test_app():
    """Create a test FastAPI application instance."""
    from api.server import app
    return app


@pytest.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints."""
    from httpx import AsyncClient, ASGITransport

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
