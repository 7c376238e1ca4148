"""
app/connectors/base.py

Shared HTTP mechanics: one request with bounded retry and backoff.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict
from requests.utils import parse_header_links

from app.config import ConnectorHTTPSettings

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS_CODES = {429, 503}
NON_RETRYABLE_STATUS_CODES = {401, 403}

_UNKNOWN_HOST_MARKERS = (
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "NameResolutionError",
    "Failed to resolve",
    "No address associated with hostname",
    "Temporary failure in name resolution",
)


class ConnectorError(RuntimeError):
    """
    Base class for connector failures.
    """


class HttpError(ConnectorError):
    """
    Raised when a request fails after all attempts.

    `status_code` carries the last observed HTTP status, or None when no
    response was received at all.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.url = url
        self.reason = reason or classify_status(status_code)


@dataclass(frozen=True)
class ApiResponse:
    """
    Parsed JSON body plus the response headers paging may depend on.
    """

    body: Any
    status_code: int = 200
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)

    def link(self, rel: str) -> str | None:
        """
        Target URL of the RFC 8288 ``Link`` header entry with relation `rel`.
        """

        header = self.headers.get("Link")
        if not header:
            return None
        for entry in parse_header_links(header):
            if rel in str(entry.get("rel", "")).split() and entry.get("url"):
                return entry["url"]
        return None


def classify_status(status_code: int | None) -> str:
    if status_code == 401:
        return "invalid_credentials"
    if status_code == 403:
        return "permission_denied"
    if status_code == 429:
        return "rate_limited"
    if status_code is None:
        return "network_error"
    return "http_error"


def _describe_failure(status_code: int, response: requests.Response) -> str:
    if status_code == 401:
        return "HTTP 401: invalid credentials, check the API key or token"
    if status_code == 403:
        return "HTTP 403: insufficient permissions for this resource"
    reason = (getattr(response, "reason", None) or "").strip()
    return f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}"


def _is_unknown_host(exc: BaseException) -> bool:
    text = repr(exc)
    return any(marker in text for marker in _UNKNOWN_HOST_MARKERS)


class RequestExecutor:
    """
    Executes one HTTP request and returns the parsed JSON body.

    Backoff between attempts:
    - 429 / 503: ``rate_limit_base_delay * 2 ** attempt``
    - anything else: ``failure_delay * attempt``
    401 and 403 are raised immediately since retrying cannot fix them.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        max_attempts: int = 3,
        rate_limit_base_delay_seconds: float = 0.1,
        failure_delay_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or requests.Session()
        self._max_attempts = max(1, max_attempts)
        self._rate_limit_base_delay_seconds = rate_limit_base_delay_seconds
        self._failure_delay_seconds = failure_delay_seconds
        self._timeout_seconds = timeout_seconds
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ConnectorHTTPSettings,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RequestExecutor:
        return cls(
            session=session,
            max_attempts=settings.max_attempts,
            rate_limit_base_delay_seconds=settings.rate_limit_base_delay_seconds,
            failure_delay_seconds=settings.failure_delay_seconds,
            timeout_seconds=settings.timeout_seconds,
            sleep=sleep,
        )

    def execute(
        self,
        *,
        url: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        return self.send(url=url, method=method, headers=headers, params=params, body=body).body

    def send(
        self,
        *,
        url: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> ApiResponse:
        """
        Same retry behaviour as `execute`, keeping the response headers.
        """

        last_status: int | None = None
        last_message = "request was not attempted"
        last_error: Exception | None = None
        reason: str | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=dict(params) if params else None,
                    headers=dict(headers) if headers else None,
                    json=body,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                last_status = None
                last_error = exc
                if _is_unknown_host(exc):
                    reason = "unknown_host"
                    last_message = f"Unknown host for {url}"
                else:
                    reason = "network_error"
                    last_message = f"Network error: {exc}"
            else:
                status_code = response.status_code
                if 200 <= status_code < 300:
                    try:
                        return ApiResponse(
                            body=self._parse_body(response),
                            status_code=status_code,
                            headers=CaseInsensitiveDict(response.headers or {}),
                        )
                    except ValueError as exc:
                        last_status = status_code
                        last_error = exc
                        reason = "invalid_response"
                        last_message = f"Response from {url} was not valid JSON"
                else:
                    last_status = status_code
                    last_error = None
                    reason = None
                    last_message = _describe_failure(status_code, response)
                    if status_code in NON_RETRYABLE_STATUS_CODES:
                        logger.error(
                            "Connector request rejected status=%s method=%s url=%s",
                            status_code,
                            method,
                            url,
                        )
                        raise HttpError(last_message, status_code=status_code, url=url)

            if attempt >= self._max_attempts:
                break

            if last_status in RATE_LIMIT_STATUS_CODES:
                delay = self._rate_limit_base_delay_seconds * (2**attempt)
            else:
                delay = self._failure_delay_seconds * attempt
            logger.warning(
                "Connector request retry attempt=%s/%s status=%s wait_seconds=%.2f url=%s",
                attempt,
                self._max_attempts,
                last_status,
                delay,
                url,
            )
            self.sleep(delay)

        logger.error(
            "Connector request exhausted attempts=%s status=%s url=%s error=%s",
            self._max_attempts,
            last_status,
            url,
            last_message,
        )
        raise HttpError(last_message, status_code=last_status, url=url, reason=reason) from last_error

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        text = response.text
        if not text or not text.strip():
            return {}
        return json.loads(text)
