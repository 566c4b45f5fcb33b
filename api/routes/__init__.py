"""
API Routes for MissionAgent.
"""

from .missions import router as missions_router
from .confluence import router as confluence_router

__all__ = [
    "missions_router",
    "confluence_router",
]
