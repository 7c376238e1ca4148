"""
app/schemas package marker.
"""

from app.schemas.sync import (
    ConnectionTestResponse,
    EndpointResultResponse,
    SyncJobAcceptedResponse,
    SyncRunListResponse,
    SyncRunStatusResponse,
)

__all__ = [
    "ConnectionTestResponse",
    "EndpointResultResponse",
    "SyncJobAcceptedResponse",
    "SyncRunListResponse",
    "SyncRunStatusResponse",
]
