"""
app/connectors package marker.
"""

from app.connectors.auth import AuthConfig, AuthContext, AuthResolutionError, resolve_auth_context
from app.connectors.base import ApiResponse, ConnectorError, HttpError, RequestExecutor
from app.connectors.catalog import (
    EndpointDescriptor,
    EnrichmentSpec,
    IntegrationProfile,
    UnsupportedIntegrationError,
    get_integration_profile,
    supported_integrations,
)
from app.connectors.pagination import (
    CursorPagination,
    EndpointOptions,
    FlaggedCursorPagination,
    LinkHeaderPagination,
    NextUrlPagination,
    OffsetPagination,
    PageFetchContext,
    PaginationError,
    RateLimitRecoveringCursorPagination,
    extract_records,
    page_info_from_link,
)
from app.connectors.secret_store import NangoSecretStore, SecretStore, SecretStoreError, TokenMaterial
from app.connectors.templates import TemplateRenderError, render_template

__all__ = [
    "AuthConfig",
    "AuthContext",
    "AuthResolutionError",
    "resolve_auth_context",
    "ApiResponse",
    "ConnectorError",
    "HttpError",
    "RequestExecutor",
    "EndpointDescriptor",
    "EnrichmentSpec",
    "IntegrationProfile",
    "UnsupportedIntegrationError",
    "get_integration_profile",
    "supported_integrations",
    "CursorPagination",
    "EndpointOptions",
    "FlaggedCursorPagination",
    "LinkHeaderPagination",
    "NextUrlPagination",
    "OffsetPagination",
    "PageFetchContext",
    "PaginationError",
    "RateLimitRecoveringCursorPagination",
    "extract_records",
    "page_info_from_link",
    "NangoSecretStore",
    "SecretStore",
    "SecretStoreError",
    "TokenMaterial",
    "TemplateRenderError",
    "render_template",
]
