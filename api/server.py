"""
MissionAgent API Server.

FastAPI application with all routes mounted.
Run with: uvicorn api.server:app --reload --port 8000
"""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from missionagent import __version__
from missionagent.core.config_manager import get_config

from .routes import confluence_router, missions_router

app = FastAPI(
    title="MissionAgent API",
    description="REST API for planning, executing and inspecting autonomous missions",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(missions_router)
app.include_router(confluence_router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "MissionAgent API",
        "version": __version__,
    }


# Dashboard build, when present
FRONTEND_BUILD_DIR = Path(__file__).parent.parent / "frontend" / "dist"


def resolve_frontend_file(build_dir: Path, full_path: str) -> Optional[Path]:
    """
    Map a request path to a file of the dashboard build.

    Returns None when the path is not a file or resolves outside build_dir.
    """
    root = build_dir.resolve()
    file_path = (root / full_path).resolve()
    if not file_path.is_relative_to(root) or not file_path.is_file():
        return None
    return file_path


if FRONTEND_BUILD_DIR.exists():
    if (FRONTEND_BUILD_DIR / "assets").exists():
        app.mount("/assets", StaticFiles(directory=FRONTEND_BUILD_DIR / "assets"), name="assets")

    @app.get("/{full_path:path}")
    async def serve_frontend(full_path: str):
        """Serve the dashboard for all non-API routes."""
        if full_path.startswith("api/"):
            return {"detail": "Not found"}

        file_path = resolve_frontend_file(FRONTEND_BUILD_DIR, full_path)
        if file_path is not None:
            return FileResponse(file_path)

        # SPA routing
        return FileResponse(FRONTEND_BUILD_DIR / "index.html")


if __name__ == "__main__":
    import uvicorn

    server = get_config().server
    uvicorn.run(app, host=server.host, port=server.port)
