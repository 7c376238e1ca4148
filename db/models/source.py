"""
db/models/source.py

Source model: one configured connection to an external platform account.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from db.models.sync_run import SyncRunRecord


class Source(Base, TimestampMixin):
    """
    auth_config holds the credential document ({type, api_key | secret_reference | headers, ...}).
    config holds template values such as subdomain, server_prefix or location_id.
    Sources are deactivated rather than deleted while sync runs reference them.
    """

    __tablename__ = "sources"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Owning account identifier",
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    integration_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="keap, stripe, gohighlevel, activecampaign, mailchimp, zendesk, hubspot, custom",
    )
    auth_config: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument,
        nullable=False,
        default=dict,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="active",
    )
    base_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Overrides the integration's base URL template",
    )
    config: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
    )
    enabled_endpoints: Mapped[list[str] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Endpoint names to extract; null means every catalog endpoint",
    )

    sync_runs: Mapped[list[SyncRunRecord]] = relationship(
        "SyncRunRecord",
        back_populates="source",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_sources_account_id", "account_id"),
        Index("ix_sources_integration_type", "integration_type"),
    )
