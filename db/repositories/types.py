"""
Typed DTOs returned by repository and object-storage flows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class StoredObject:
    """
    Metadata produced by an object storage backend after writing one object.
    """

    key: str
    location: str
    content_type: str
    size_bytes: int
    checksum: str
    stored_at: datetime
    metadata: dict[str, str] = field(default_factory=dict)
