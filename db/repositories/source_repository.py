"""
Repository for source lookup and conversion to the sync domain model.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.orm import Session

from app.domain.sync import SourceConfig, SourceStatus
from db.models.source import Source


class SourceRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_source(
        self,
        *,
        account_id: str,
        name: str,
        integration_type: str,
        auth_config: dict[str, Any],
        config: dict[str, Any] | None = None,
        base_url: str | None = None,
        enabled_endpoints: list[str] | None = None,
        status: str = SourceStatus.ACTIVE,
    ) -> Source:
        source = Source(
            account_id=account_id,
            name=name,
            integration_type=integration_type,
            auth_config=auth_config,
            config=config,
            base_url=base_url,
            enabled_endpoints=enabled_endpoints,
            status=status,
        )
        self._session.add(source)
        self._session.flush()
        self._session.refresh(source)
        return source

    def get_source(self, source_id: uuid.UUID) -> Source | None:
        return self._session.get(Source, source_id)


def to_source_config(source: Source) -> SourceConfig:
    """
    The column base_url wins over a ``base_url`` kept in the stored auth config.
    """

    auth_config = dict(source.auth_config or {})
    return SourceConfig(
        id=str(source.id),
        account_id=source.account_id,
        integration_type=source.integration_type,
        auth_config=auth_config,
        status=source.status,
        base_url=source.base_url or auth_config.get("base_url") or None,
        config=dict(source.config or {}),
        enabled_endpoints=tuple(source.enabled_endpoints) if source.enabled_endpoints is not None else None,
        name=source.name,
    )
