"""
app/api/routers package marker.
"""

from app.api.routers.sources import router as sources_router
from app.api.routers.sync_runs import router as sync_runs_router

__all__ = [
    "sources_router",
    "sync_runs_router",
]
