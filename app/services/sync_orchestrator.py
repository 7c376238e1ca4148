"""
app/services/sync_orchestrator.py

Runs one full extraction for a source: resolve auth once, sweep every enabled
endpoint with the integration's pagination strategy, run enrichment fetches,
then hand the results to the snapshot writer.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from app.config import SyncSettings, get_connector_http_settings, get_sync_settings
from app.connectors.auth import AuthConfig, AuthResolutionError, resolve_auth_context
from app.connectors.base import RequestExecutor
from app.connectors.catalog import (
    EndpointDescriptor,
    EnrichmentSpec,
    IntegrationProfile,
    custom_endpoints,
    get_integration_profile,
    render_options,
    resolve_strategy,
    template_values,
)
from app.connectors.pagination import PageFetchContext, PaginationStrategy
from app.connectors.secret_store import SecretStore
from app.connectors.templates import TemplateRenderError, render_template
from app.domain.sync import (
    EndpointResult,
    SourceConfig,
    SyncRun,
    SyncRunStatus,
    format_run_timestamp,
)
from app.logging_utils import log_event
from app.services.connection_tester import ConnectionTester
from app.services.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)


def _describe_error(exc: Exception) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class SyncOrchestrator:
    """
    Executes one sync run. Per-endpoint failures are captured as failed
    results; nothing raised while fetching escapes `run`.
    """

    def __init__(
        self,
        *,
        executor: RequestExecutor,
        secret_store: SecretStore | None = None,
        snapshot_writer: SnapshotWriter | None = None,
        settings: SyncSettings | None = None,
        user_agent: str | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._executor = executor
        self._secret_store = secret_store
        self._snapshot_writer = snapshot_writer
        self._settings = settings or get_sync_settings()
        self._user_agent = user_agent
        self._sleep = sleep or executor.sleep

    @classmethod
    def from_settings(
        cls,
        *,
        secret_store: SecretStore | None = None,
        snapshot_writer: SnapshotWriter | None = None,
    ) -> SyncOrchestrator:
        http_settings = get_connector_http_settings()
        return cls(
            executor=RequestExecutor.from_settings(http_settings),
            secret_store=secret_store,
            snapshot_writer=snapshot_writer,
            settings=get_sync_settings(),
            user_agent=http_settings.user_agent,
        )

    def build_connection_tester(self) -> ConnectionTester:
        return ConnectionTester(
            executor=self._executor,
            secret_store=self._secret_store,
            user_agent=self._user_agent,
        )

    def run(
        self,
        source: SourceConfig,
        *,
        endpoints: Sequence[EndpointDescriptor] | None = None,
        run_id: str | None = None,
        started_at: datetime | None = None,
    ) -> SyncRun:
        started_at = started_at or datetime.now(timezone.utc)
        run = SyncRun(
            id=run_id or str(uuid.uuid4()),
            source_id=str(source.id),
            account_id=str(source.account_id),
            source_type=source.integration_type,
            run_timestamp=format_run_timestamp(started_at),
            started_at=started_at,
            status=SyncRunStatus.RUNNING,
        )

        try:
            profile = get_integration_profile(source.integration_type)
            values = template_values(profile, config=source.config, base_url=source.base_url)
            selected = self._select_endpoints(profile, source, endpoints)
            strategy = resolve_strategy(profile, self._settings, source.config)
        except ValueError as exc:
            return self._finish_failed(run, f"Invalid source configuration: {_describe_error(exc)}")

        try:
            auth = resolve_auth_context(
                AuthConfig.from_mapping(source.auth_config, defaults=profile.auth_defaults),
                secret_store=self._secret_store,
                user_agent=self._user_agent,
            )
        except AuthResolutionError as exc:
            logger.error("Sync auth resolution failed source=%s error=%s", source.id, exc)
            return self._finish_failed(run, f"Auth resolution failed: {_describe_error(exc)}")

        if not selected:
            return self._finish_failed(run, "No endpoints enabled for this source.")

        context = PageFetchContext(
            executor=self._executor,
            auth=auth,
            page_delay_seconds=_page_delay(profile, source.config),
            sleep=self._sleep,
        )

        results: list[EndpointResult] = []
        for endpoint in selected:
            results.append(self._fetch_endpoint(source, endpoint, strategy, context, values))

        for enrichment in profile.enrichments:
            parent = next((result for result in results if result.name == enrichment.parent_endpoint), None)
            if parent is None or not parent.success:
                continue
            results.extend(self._run_enrichment(source, enrichment, parent, strategy, context, values))

        run = run.with_results(results)
        if self._snapshot_writer is not None:
            run = self._snapshot_writer.persist(run, source)

        return self._finish(run)

    def _select_endpoints(
        self,
        profile: IntegrationProfile,
        source: SourceConfig,
        endpoints: Sequence[EndpointDescriptor] | None,
    ) -> list[EndpointDescriptor]:
        if endpoints is not None:
            candidates = list(endpoints)
        elif profile.integration_type == "custom":
            candidates = list(custom_endpoints(source.config))
        else:
            candidates = list(profile.endpoints)

        if source.enabled_endpoints is None:
            return candidates
        enabled = set(source.enabled_endpoints)
        return [endpoint for endpoint in candidates if endpoint.name in enabled]

    def _fetch_endpoint(
        self,
        source: SourceConfig,
        endpoint: EndpointDescriptor,
        strategy: PaginationStrategy,
        context: PageFetchContext,
        values: Mapping[str, Any],
    ) -> EndpointResult:
        started = time.monotonic()
        try:
            url = render_template(endpoint.url, values)
            options = render_options(endpoint.options, values)
            records = strategy.fetch_all(url=url, options=options, context=context)
        except Exception as exc:
            logger.warning(
                "Sync endpoint failed source=%s endpoint=%s error=%s",
                source.id,
                endpoint.name,
                _describe_error(exc),
            )
            return EndpointResult.failed(endpoint.name, _describe_error(exc))

        logger.info(
            "Sync endpoint fetched source=%s endpoint=%s records=%s elapsed_seconds=%.2f",
            source.id,
            endpoint.name,
            len(records),
            time.monotonic() - started,
        )
        return EndpointResult.succeeded(endpoint.name, records)

    def _run_enrichment(
        self,
        source: SourceConfig,
        enrichment: EnrichmentSpec,
        parent: EndpointResult,
        strategy: PaginationStrategy,
        context: PageFetchContext,
        values: Mapping[str, Any],
    ) -> list[EndpointResult]:
        options = replace(enrichment.options, max_pages=self._settings.enrichment_max_pages)
        results: list[EndpointResult] = []

        for index, record in enumerate(parent.records):
            record_values = dict(values)
            if isinstance(record, Mapping):
                record_values.update(
                    {key: value for key, value in record.items() if not isinstance(value, (dict, list))}
                )
            label = record.get(enrichment.label_field) if enrichment.label_field and isinstance(record, Mapping) else None

            try:
                name = render_template(enrichment.name_template, record_values)
            except TemplateRenderError:
                name = f"{enrichment.parent_endpoint}_{index}_enrichment"

            try:
                url = render_template(enrichment.url_template, record_values)
                records = strategy.fetch_all(
                    url=url,
                    options=render_options(options, record_values),
                    context=context,
                )
            except Exception as exc:
                logger.warning(
                    "Sync enrichment failed source=%s parent=%s name=%s error=%s",
                    source.id,
                    parent.name,
                    name,
                    _describe_error(exc),
                )
                results.append(
                    EndpointResult.failed(
                        name,
                        _describe_error(exc),
                        parent=parent.name,
                        label=str(label) if label is not None else None,
                    )
                )
                continue

            results.append(
                EndpointResult.succeeded(
                    name,
                    records,
                    parent=parent.name,
                    label=str(label) if label is not None else None,
                )
            )

        return results

    def _finish_failed(self, run: SyncRun, error_message: str) -> SyncRun:
        return self._finish(replace(run, status=SyncRunStatus.FAILED, results=(), error_message=error_message))

    def _finish(self, run: SyncRun) -> SyncRun:
        run = replace(run, completed_at=datetime.now(timezone.utc))
        if run.status != SyncRunStatus.SUCCEEDED and run.error_message is None and run.results:
            run = replace(
                run,
                error_message=f"{len(run.failed_endpoints)} of {len(run.results)} endpoints failed.",
            )
        log_event(
            logger,
            logging.INFO if run.status == SyncRunStatus.SUCCEEDED else logging.WARNING,
            "sync_run_completed",
            run_id=run.id,
            source_id=run.source_id,
            source_type=run.source_type,
            status=run.status,
            total_records=run.total_records,
            succeeded=run.succeeded_endpoints,
            failed=run.failed_endpoints,
            error=run.error_message,
        )
        return run


def _page_delay(profile: IntegrationProfile, config: Mapping[str, Any] | None) -> float:
    override = (config or {}).get("page_delay_seconds")
    if override is None:
        return profile.page_delay_seconds
    try:
        return max(0.0, float(override))
    except (TypeError, ValueError):
        return profile.page_delay_seconds
