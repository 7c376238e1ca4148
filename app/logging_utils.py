"""
app/logging_utils.py

Structured logging helpers for sync runs.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

_SENSITIVE_HEADER_NAMES = {"authorization", "api-token", "x-api-key", "cookie"}


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """
    Return a copy of `headers` safe to log. Credential-bearing values are masked.
    """

    redacted: dict[str, str] = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered in _SENSITIVE_HEADER_NAMES or "token" in lowered or "key" in lowered:
            redacted[name] = "***"
        else:
            redacted[name] = value
    return redacted
