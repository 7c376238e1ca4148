"""
app/connectors/auth.py

Turns a source's stored credential configuration into request headers.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from app.connectors.secret_store import SecretStore, SecretStoreError
from app.connectors.templates import TemplateRenderError, render_template
from app.logging_utils import redact_headers

logger = logging.getLogger(__name__)

AUTH_TYPE_API_KEY = "api_key"
AUTH_TYPE_OAUTH2 = "oauth2"
AUTH_TYPE_CUSTOM = "custom"
SUPPORTED_AUTH_TYPES = {AUTH_TYPE_API_KEY, AUTH_TYPE_OAUTH2, AUTH_TYPE_CUSTOM}

# Field names a stored credential may use for the raw key, in lookup order.
_API_KEY_FIELDS = ("api_key", "apiKey", "auth_token", "api_token", "token", "key")

# Later keys override earlier ones for the same header name.
_HEADER_TEMPLATE_KEYS = ("headers", "custom_headers", "headers_template")


class AuthResolutionError(RuntimeError):
    """
    Raised when no usable headers can be produced for a source.
    """


@dataclass(frozen=True)
class AuthConfig:
    type: str
    api_key: str | None = None
    header_name: str | None = None
    authorization_type: str | None = None
    basic_username: str | None = None
    secret_reference: str | None = None
    access_token: str | None = None
    header_templates: dict[str, str] = field(default_factory=dict)
    credential_values: dict[str, str] = field(default_factory=dict)
    required_fields: tuple[str, ...] = ()

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any] | None,
        *,
        defaults: Mapping[str, Any] | None = None,
    ) -> AuthConfig:
        """
        Build an AuthConfig from a stored JSON document.

        `defaults` come from the integration profile (e.g. ``header_name`` for
        ActiveCampaign) and are overridden by anything stored on the source.
        `credential_field` names the key that holds the raw secret.

        ``headers_template`` (also ``headers`` / ``custom_headers``) maps header
        names to values with ``{field}`` placeholders filled from the stored
        credential fields, e.g. ``{"Authorization": "Bearer {auth_token}"}``.
        ``fields`` is the credential form definition; entries marked
        ``required`` must have a value.
        """

        merged: dict[str, Any] = dict(defaults or {})
        merged.update(data or {})

        auth_type = str(merged.get("type") or AUTH_TYPE_API_KEY).strip().lower()
        if auth_type not in SUPPORTED_AUTH_TYPES:
            raise AuthResolutionError(
                f"Unsupported auth type '{auth_type}'. Allowed values: {sorted(SUPPORTED_AUTH_TYPES)}."
            )

        credential_field = merged.get("credential_field")
        lookup_order = (credential_field, *_API_KEY_FIELDS) if credential_field else _API_KEY_FIELDS
        api_key = next(
            (str(merged[name]).strip() for name in lookup_order if name and merged.get(name)),
            None,
        )

        authorization_type = merged.get("authorization_type")
        if authorization_type is None:
            if merged.get("use_bearer"):
                authorization_type = "bearer"
            elif merged.get("use_basic"):
                authorization_type = "basic"

        header_templates: dict[str, str] = {}
        for key in _HEADER_TEMPLATE_KEYS:
            raw_headers = merged.get(key) or {}
            if not isinstance(raw_headers, Mapping):
                raise AuthResolutionError(f"'{key}' must be a JSON object of header names to values.")
            header_templates.update({str(name): str(value) for name, value in raw_headers.items()})

        return cls(
            type=auth_type,
            api_key=api_key,
            header_name=_clean(merged.get("header_name")),
            authorization_type=_clean(authorization_type, lower=True),
            basic_username=_clean(merged.get("basic_username")),
            secret_reference=_clean(merged.get("secret_reference") or merged.get("token_secret_name")),
            access_token=_clean(merged.get("access_token")),
            header_templates=header_templates,
            credential_values={
                str(key): str(value).strip()
                for key, value in merged.items()
                if value is not None and not isinstance(value, (Mapping, list, tuple, bool))
            },
            required_fields=_required_fields(merged.get("fields")),
        )


@dataclass(frozen=True)
class AuthContext:
    """
    Headers resolved once per run and passed explicitly to every request.
    """

    headers: Mapping[str, str]


def _required_fields(raw_fields: Any) -> tuple[str, ...]:
    if raw_fields is None:
        return ()
    if not isinstance(raw_fields, list):
        raise AuthResolutionError("'fields' must be a list of credential field definitions.")
    names: list[str] = []
    for item in raw_fields:
        if not isinstance(item, Mapping) or not item.get("name"):
            raise AuthResolutionError("Each credential field definition needs a 'name'.")
        if item.get("required"):
            names.append(str(item["name"]))
    return tuple(names)


def _clean(value: Any, *, lower: bool = False) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.lower() if lower else text


def _basic_token(username: str, password: str) -> str:
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


def _api_key_headers(config: AuthConfig) -> dict[str, str]:
    if not config.api_key:
        if config.header_templates:
            return {}
        raise AuthResolutionError("api_key auth requires a non-empty key.")

    if config.header_name:
        return {config.header_name: config.api_key}
    if config.authorization_type == "bearer":
        return {"Authorization": f"Bearer {config.api_key}"}
    if config.authorization_type == "basic":
        if config.basic_username:
            return {"Authorization": f"Basic {_basic_token(config.basic_username, config.api_key)}"}
        return {"Authorization": f"Basic {_basic_token(config.api_key, '')}"}

    if not config.header_templates:
        logger.warning("api_key auth configured without header_name or authorization_type; no auth header sent")
    return {}


def _oauth2_token(config: AuthConfig, secret_store: SecretStore | None) -> str:
    if config.secret_reference:
        if secret_store is None:
            raise AuthResolutionError(
                f"Secret reference '{config.secret_reference}' given but no secret store is configured."
            )
        try:
            material = secret_store.get(config.secret_reference)
        except SecretStoreError as exc:
            raise AuthResolutionError(f"Failed to resolve OAuth token: {exc}") from exc
        if not getattr(material, "access_token", None):
            raise AuthResolutionError("Secret store returned token material without an access token.")
        return material.access_token

    if config.access_token:
        return config.access_token

    raise AuthResolutionError("oauth2 auth requires a secret_reference or an access_token.")


def _render_header_templates(templates: Mapping[str, str], values: Mapping[str, str]) -> dict[str, str]:
    rendered: dict[str, str] = {}
    for name, template in templates.items():
        try:
            rendered[name] = render_template(template, values)
        except TemplateRenderError as exc:
            raise AuthResolutionError(f"Header '{name}' cannot be built: {exc}") from exc
    return rendered


def resolve_auth_context(
    config: AuthConfig,
    *,
    secret_store: SecretStore | None = None,
    user_agent: str | None = None,
) -> AuthContext:
    """
    Produce the headers attached to every request for one source.

    Header precedence, lowest first: defaults, the auth type's own credential
    header, then rendered header templates. May perform a single secret-store
    read for oauth2 references.
    """

    missing = [name for name in config.required_fields if not config.credential_values.get(name)]
    if missing:
        raise AuthResolutionError(f"Missing required credential fields: {', '.join(missing)}.")

    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if user_agent:
        headers["User-Agent"] = user_agent

    template_inputs = dict(config.credential_values)
    if config.type == AUTH_TYPE_API_KEY:
        headers.update(_api_key_headers(config))
    elif config.type == AUTH_TYPE_OAUTH2:
        token = _oauth2_token(config, secret_store)
        headers["Authorization"] = f"Bearer {token}"
        template_inputs["access_token"] = token
        template_inputs.setdefault("auth_token", token)
    elif config.type == AUTH_TYPE_CUSTOM:
        if not config.header_templates:
            raise AuthResolutionError("custom auth requires at least one header.")
    else:
        raise AuthResolutionError(f"Unsupported auth type '{config.type}'.")

    headers.update(_render_header_templates(config.header_templates, template_inputs))
    logger.debug("Resolved auth headers type=%s headers=%s", config.type, redact_headers(headers))
    return AuthContext(headers=headers)
