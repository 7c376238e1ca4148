"""
db/models/sync_run.py

Sync run model for asynchronous extraction tracking.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from db.models.source import Source


ACTIVE_RUN_PREDICATE = "status IN ('pending', 'running')"


class SyncRunRecord(Base, TimestampMixin):
    __tablename__ = "sync_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sources.id", ondelete="RESTRICT"),
        nullable=False,
    )
    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="pending",
        comment="pending, running, succeeded, partial, failed",
    )
    run_timestamp: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
        comment="ISO-8601 timestamp shared by every snapshot object of the run",
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    endpoint_results: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Per-endpoint name, success, record_count, error, snapshot_key",
    )
    total_records: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    total_files: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    snapshot_location: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    source: Mapped[Source] = relationship("Source", back_populates="sync_runs")

    __table_args__ = (
        Index("ix_sync_runs_source_id", "source_id"),
        Index("ix_sync_runs_status", "status"),
        Index("ix_sync_runs_created_at", "created_at"),
        Index("ix_sync_runs_source_id_status", "source_id", "status"),
        # At most one pending or running run per source.
        Index(
            "uq_sync_runs_active_source",
            "source_id",
            unique=True,
            postgresql_where=text(ACTIVE_RUN_PREDICATE),
            sqlite_where=text(ACTIVE_RUN_PREDICATE),
        ),
    )
