"""
app/services/connection_tester.py

Verifies a source's credentials against its integration's test endpoint and
turns failures into classified, user-facing messages.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from app.connectors.auth import AuthConfig, AuthResolutionError, resolve_auth_context
from app.connectors.base import HttpError, RequestExecutor
from app.connectors.catalog import (
    IntegrationProfile,
    UnsupportedIntegrationError,
    get_integration_profile,
    template_values,
)
from app.connectors.secret_store import SecretStore
from app.connectors.templates import TemplateRenderError, render_template
from app.domain.sync import SourceConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionTestResult:
    success: bool
    message: str
    account_info: dict[str, Any] = field(default_factory=dict)
    error: int | str | None = None


def lookup_field(body: Any, path: str) -> Any:
    """
    Resolve a dotted path such as ``business_profile.name`` or ``users.0.email``.
    """

    current = body
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def classify_failure(exc: HttpError, profile: IntegrationProfile) -> str:
    if exc.status_code == 401:
        return f"Invalid API key - please check your {profile.credential_label}"
    if exc.status_code == 403:
        return "Access denied - please check API key permissions"
    if exc.status_code == 404:
        return f"Not found - please check the {profile.display_name} account settings for this source"
    if exc.status_code == 429:
        return "Rate limited - please try again later"
    if exc.reason == "unknown_host":
        return f"Unknown host - please check the {profile.display_name} URL or subdomain"
    return f"Connection failed: {exc.message}"


class ConnectionTester:
    def __init__(
        self,
        *,
        executor: RequestExecutor,
        secret_store: SecretStore | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._executor = executor
        self._secret_store = secret_store
        self._user_agent = user_agent

    def test(self, source: SourceConfig) -> ConnectionTestResult:
        try:
            profile = get_integration_profile(source.integration_type)
            values = template_values(profile, config=source.config, base_url=source.base_url)
            url = render_template(profile.test_endpoint, values)
        except (UnsupportedIntegrationError, TemplateRenderError) as exc:
            return ConnectionTestResult(
                success=False,
                message=f"Invalid source configuration: {exc}",
                error="INVALID_CONFIG",
            )

        try:
            auth = resolve_auth_context(
                AuthConfig.from_mapping(source.auth_config, defaults=profile.auth_defaults),
                secret_store=self._secret_store,
                user_agent=self._user_agent,
            )
        except AuthResolutionError as exc:
            return ConnectionTestResult(
                success=False,
                message=f"Could not resolve credentials: {exc}",
                error="AUTH_RESOLUTION_FAILED",
            )

        try:
            body = self._executor.execute(url=url, headers=auth.headers)
        except HttpError as exc:
            logger.info(
                "Connection test failed source=%s type=%s status=%s reason=%s",
                source.id,
                profile.integration_type,
                exc.status_code,
                exc.reason,
            )
            return ConnectionTestResult(
                success=False,
                message=classify_failure(exc, profile),
                error=exc.status_code if exc.status_code is not None else "UNKNOWN_ERROR",
            )

        if profile.account_info_endpoint:
            body = self._fetch_account_info(source, profile, values, auth.headers) or body

        account_info: dict[str, Any] = {}
        for name, path in profile.account_info_fields.items():
            value = lookup_field(body, path)
            if value is not None:
                account_info[name] = value

        account_name = self._account_name(body, profile, values) or source.name
        message = f"Connected to {profile.display_name}"
        if account_name:
            message = f"{message} account: {account_name}"
        return ConnectionTestResult(success=True, message=message, account_info=account_info)

    def _fetch_account_info(
        self,
        source: SourceConfig,
        profile: IntegrationProfile,
        values: dict[str, Any],
        headers: Mapping[str, str],
    ) -> Any:
        """
        Best-effort account details lookup; the connection already succeeded.
        """

        try:
            return self._executor.execute(url=render_template(profile.account_info_endpoint, values), headers=headers)
        except (HttpError, TemplateRenderError) as exc:
            logger.info(
                "Account info lookup failed source=%s type=%s error=%s",
                source.id,
                profile.integration_type,
                exc,
            )
            return None

    @staticmethod
    def _account_name(body: Any, profile: IntegrationProfile, values: dict[str, Any]) -> str | None:
        for path in profile.account_name_fields:
            value = lookup_field(body, path)
            if value is None:
                value = values.get(path)
            if value not in (None, ""):
                return str(value)
        return None
