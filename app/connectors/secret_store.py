"""
app/connectors/secret_store.py

Secret-store collaborator used to resolve OAuth token references.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from app.config import SecretStoreSettings

logger = logging.getLogger(__name__)


class SecretStoreError(RuntimeError):
    """
    Raised when token material cannot be fetched or is malformed.
    """


@dataclass(frozen=True)
class TokenMaterial:
    access_token: str
    refresh_token: str | None = None
    expires_at: str | None = None


class SecretStore(Protocol):
    def get(self, reference: str) -> TokenMaterial:
        ...


class NangoSecretStore:
    """
    Resolves references of the form ``"<provider_config_key>/<connection_id>"``
    through the Nango connection API.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.nango.dev",
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    @classmethod
    def from_settings(
        cls,
        settings: SecretStoreSettings,
        *,
        session: requests.Session | None = None,
    ) -> NangoSecretStore:
        if not settings.nango_secret_key:
            raise SecretStoreError("NANGO_SECRET_KEY is not configured.")
        return cls(
            secret_key=settings.nango_secret_key,
            base_url=settings.nango_base_url,
            timeout_seconds=settings.timeout_seconds,
            session=session,
        )

    def get(self, reference: str) -> TokenMaterial:
        provider_config_key, connection_id = _split_reference(reference)
        url = f"{self._base_url}/connection/{connection_id}"

        try:
            response = self._session.get(
                url,
                params={"provider_config_key": provider_config_key},
                headers={"Authorization": f"Bearer {self._secret_key}"},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise SecretStoreError(f"Secret store request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error(
                "Secret store lookup failed status=%s provider=%s connection=%s",
                response.status_code,
                provider_config_key,
                connection_id,
            )
            raise SecretStoreError(f"Secret store returned HTTP {response.status_code} for '{reference}'.")

        try:
            payload = response.json()
        except ValueError as exc:
            raise SecretStoreError("Secret store returned a non-JSON body.") from exc

        return parse_token_material(payload)


def _split_reference(reference: str) -> tuple[str, str]:
    provider_config_key, sep, connection_id = (reference or "").strip().partition("/")
    if not sep or not provider_config_key or not connection_id:
        raise SecretStoreError(
            f"Secret reference '{reference}' must look like '<provider_config_key>/<connection_id>'."
        )
    return provider_config_key, connection_id


def parse_token_material(payload: Any) -> TokenMaterial:
    if not isinstance(payload, dict):
        raise SecretStoreError("Secret store payload must be a JSON object.")

    credentials = payload.get("credentials", payload)
    if not isinstance(credentials, dict):
        raise SecretStoreError("Secret store payload has no credentials object.")

    access_token = credentials.get("access_token") or credentials.get("accessToken")
    if not isinstance(access_token, str) or not access_token.strip():
        raise SecretStoreError("Secret store payload is missing an access token.")

    refresh_token = credentials.get("refresh_token") or credentials.get("refreshToken")
    expires_at = credentials.get("expires_at") or credentials.get("expiresAt")
    return TokenMaterial(
        access_token=access_token.strip(),
        refresh_token=str(refresh_token) if refresh_token else None,
        expires_at=str(expires_at) if expires_at else None,
    )
