"""
app/connectors/pagination.py

Pagination strategies that drive the request executor across every page of
one endpoint and return the accumulated records.

Each strategy is a small value object chosen per integration; the same
`fetch_all(url=..., options=..., context=...)` contract applies to all of them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qs, urljoin, urlsplit

from app.connectors.auth import AuthContext
from app.connectors.base import ApiResponse, ConnectorError, HttpError, RequestExecutor

logger = logging.getLogger(__name__)


class PaginationError(ConnectorError):
    """
    Raised when a page cannot be advanced (e.g. last record has no cursor field).
    """


# Stored descriptors use the camelCase spelling; snake_case is accepted as an alias.
_OPTION_KEYS = {
    "entityKey": "entity_key",
    "limitParam": "limit_param",
    "offsetParam": "offset_param",
    "cursorParam": "cursor_param",
    "limit": "limit",
    "extraParams": "extra_params",
    "maxPages": "max_pages",
}
_OPTION_ALIASES = {**_OPTION_KEYS, **{name: name for name in _OPTION_KEYS.values()}}


def _normalize_option_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        name = _OPTION_ALIASES.get(key)
        if name is None:
            raise ValueError(f"Unknown endpoint option '{key}'. Allowed keys: {sorted(_OPTION_KEYS)}.")
        if name in normalized:
            raise ValueError(f"Endpoint option '{name}' is given more than once.")
        normalized[name] = value
    return normalized


@dataclass(frozen=True)
class EndpointOptions:
    entity_key: str | None = "data"
    limit_param: str = "limit"
    offset_param: str = "offset"
    cursor_param: str | None = None
    limit: int = 100
    extra_params: Mapping[str, Any] = field(default_factory=dict)
    max_pages: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> EndpointOptions:
        """
        Build options from a stored endpoint descriptor.

        Raises ValueError for unknown keys or a non-mapping ``extraParams``.
        """

        if data is not None and not isinstance(data, Mapping):
            raise ValueError("Endpoint options must be a JSON object.")
        data = _normalize_option_keys(data or {})
        extra_params = data.get("extra_params") or {}
        if not isinstance(extra_params, Mapping):
            raise ValueError("Endpoint option 'extraParams' must be a JSON object.")
        max_pages = data.get("max_pages")
        return cls(
            entity_key=data.get("entity_key", "data"),
            limit_param=str(data.get("limit_param") or "limit"),
            offset_param=str(data.get("offset_param") or "offset"),
            cursor_param=data.get("cursor_param"),
            limit=max(1, int(data.get("limit") or 100)),
            extra_params=dict(extra_params),
            max_pages=int(max_pages) if max_pages else None,
        )


@dataclass(frozen=True)
class PageFetchContext:
    """
    Everything a strategy needs to issue requests for one source.
    """

    executor: RequestExecutor
    auth: AuthContext
    page_delay_seconds: float = 0.0
    sleep: Callable[[float], None] = time.sleep

    def fetch(self, url: str, params: Mapping[str, Any] | None = None) -> ApiResponse:
        return self.executor.send(url=url, headers=self.auth.headers, params=params)

    def pause_between_pages(self) -> None:
        if self.page_delay_seconds > 0:
            self.sleep(self.page_delay_seconds)


class PaginationStrategy(Protocol):
    def fetch_all(
        self,
        *,
        url: str,
        options: EndpointOptions,
        context: PageFetchContext,
    ) -> list[Any]:
        ...


def extract_records(body: Any, entity_key: str | None) -> Any:
    """
    Pull the record container out of one page body.

    - a bare JSON array is returned as-is
    - ``body[entity_key]`` is returned when the key is present (null becomes ``[]``)
    - anything else is passed through unchanged as already-unwrapped data
    """

    if isinstance(body, list):
        return body
    if entity_key and isinstance(body, dict) and entity_key in body:
        value = body[entity_key]
        return [] if value is None else value
    return body


def _page_records(body: Any, entity_key: str | None) -> tuple[list[Any], bool]:
    """
    Normalize extracted data to a record list.

    The second element is True when paging must stop regardless of size,
    i.e. the body was a single object rather than a collection.
    """

    extracted = extract_records(body, entity_key)
    if isinstance(extracted, list):
        return extracted, False
    if isinstance(extracted, dict):
        return ([extracted] if extracted else []), True
    if extracted is None or extracted == "":
        return [], True
    return [extracted], True


def _lookup_path(body: Any, path: str) -> Any:
    current = body
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


class _RateLimitAwareStrategy:
    """
    Shared page fetch with optional page-level 429 recovery.

    When `rate_limit_cooldown_seconds` is set, a 429 that survives the
    executor's own retries sleeps the cooldown and re-requests the same page,
    at most `max_rate_limit_retries` consecutive times.
    """

    def __init__(
        self,
        *,
        rate_limit_cooldown_seconds: float | None = None,
        max_rate_limit_retries: int = 5,
    ) -> None:
        self.rate_limit_cooldown_seconds = rate_limit_cooldown_seconds
        self.max_rate_limit_retries = max(0, max_rate_limit_retries)

    def _fetch_page(
        self,
        context: PageFetchContext,
        url: str,
        params: Mapping[str, Any] | None,
    ) -> ApiResponse:
        cooldowns = 0
        while True:
            try:
                return context.fetch(url, params)
            except HttpError as exc:
                if (
                    exc.status_code != 429
                    or self.rate_limit_cooldown_seconds is None
                    or cooldowns >= self.max_rate_limit_retries
                ):
                    raise
                cooldowns += 1
                logger.warning(
                    "Rate limited, cooling down before retrying same page cooldown=%s/%s wait_seconds=%.1f url=%s",
                    cooldowns,
                    self.max_rate_limit_retries,
                    self.rate_limit_cooldown_seconds,
                    url,
                )
                context.sleep(self.rate_limit_cooldown_seconds)


def _page_limit_reached(pages: int, options: EndpointOptions) -> bool:
    return options.max_pages is not None and pages >= options.max_pages


class OffsetPagination(_RateLimitAwareStrategy):
    """
    Advance an offset by the page size; stop on a short or empty page.
    """

    name = "offset"

    def fetch_all(
        self,
        *,
        url: str,
        options: EndpointOptions,
        context: PageFetchContext,
    ) -> list[Any]:
        records: list[Any] = []
        offset = 0
        pages = 0

        while True:
            params = {
                **options.extra_params,
                options.limit_param: options.limit,
                options.offset_param: offset,
            }
            body = self._fetch_page(context, url, params).body
            pages += 1
            page, terminal = _page_records(body, options.entity_key)
            records.extend(page)

            if terminal or len(page) < options.limit or _page_limit_reached(pages, options):
                break

            offset += options.limit
            context.pause_between_pages()

        return records


class CursorPagination(_RateLimitAwareStrategy):
    """
    Set the next cursor to the id of the last record returned; stop on a
    short or empty page.
    """

    name = "cursor"
    default_cursor_param = "starting_after"

    def __init__(
        self,
        *,
        id_field: str = "id",
        rate_limit_cooldown_seconds: float | None = None,
        max_rate_limit_retries: int = 5,
    ) -> None:
        super().__init__(
            rate_limit_cooldown_seconds=rate_limit_cooldown_seconds,
            max_rate_limit_retries=max_rate_limit_retries,
        )
        self.id_field = id_field

    def fetch_all(
        self,
        *,
        url: str,
        options: EndpointOptions,
        context: PageFetchContext,
    ) -> list[Any]:
        cursor_param = options.cursor_param or self.default_cursor_param
        records: list[Any] = []
        cursor: Any = None
        pages = 0

        while True:
            params: dict[str, Any] = {**options.extra_params, options.limit_param: options.limit}
            if cursor is not None:
                params[cursor_param] = cursor

            body = self._fetch_page(context, url, params).body
            pages += 1
            page, terminal = _page_records(body, options.entity_key)
            records.extend(page)

            if terminal or not page or not self._has_more(body, page, options):
                break
            if _page_limit_reached(pages, options):
                break

            cursor = self._next_cursor(page, url)
            context.pause_between_pages()

        return records

    def _has_more(self, body: Any, page: list[Any], options: EndpointOptions) -> bool:
        return len(page) >= options.limit

    def _next_cursor(self, page: list[Any], url: str) -> Any:
        last = page[-1]
        cursor = last.get(self.id_field) if isinstance(last, dict) else None
        if cursor is None or cursor == "":
            raise PaginationError(f"Last record from {url} has no '{self.id_field}' field to continue from.")
        return cursor


class RateLimitRecoveringCursorPagination(CursorPagination):
    """
    Cursor-by-last-id that waits out HTTP 429 and re-requests the same page.
    """

    name = "cursor_rate_limited"

    def __init__(
        self,
        *,
        id_field: str = "id",
        rate_limit_cooldown_seconds: float = 10.0,
        max_rate_limit_retries: int = 5,
    ) -> None:
        super().__init__(
            id_field=id_field,
            rate_limit_cooldown_seconds=rate_limit_cooldown_seconds,
            max_rate_limit_retries=max_rate_limit_retries,
        )


class FlaggedCursorPagination(CursorPagination):
    """
    Cursor-by-last-id where an explicit boolean in the body says whether
    another page exists (Stripe's ``has_more``).
    """

    name = "flagged_cursor"

    def __init__(
        self,
        *,
        id_field: str = "id",
        has_more_field: str = "has_more",
        cursor_param: str = "starting_after",
    ) -> None:
        super().__init__(id_field=id_field)
        self.has_more_field = has_more_field
        self.default_cursor_param = cursor_param

    def _has_more(self, body: Any, page: list[Any], options: EndpointOptions) -> bool:
        return isinstance(body, dict) and _lookup_path(body, self.has_more_field) is True


class NextUrlPagination(_RateLimitAwareStrategy):
    """
    Follow the opaque next-page URL the server returns in each body.

    `next_url_field` may be a dotted path, e.g. ``paging.next.link``.
    """

    name = "next_url"

    def __init__(
        self,
        *,
        next_url_field: str = "next_page",
        rate_limit_cooldown_seconds: float | None = None,
        max_rate_limit_retries: int = 5,
    ) -> None:
        super().__init__(
            rate_limit_cooldown_seconds=rate_limit_cooldown_seconds,
            max_rate_limit_retries=max_rate_limit_retries,
        )
        self.next_url_field = next_url_field

    def fetch_all(
        self,
        *,
        url: str,
        options: EndpointOptions,
        context: PageFetchContext,
    ) -> list[Any]:
        records: list[Any] = []
        current_url = url
        params: dict[str, Any] | None = {**options.extra_params, options.limit_param: options.limit}
        pages = 0

        while True:
            body = self._fetch_page(context, current_url, params).body
            pages += 1
            page, terminal = _page_records(body, options.entity_key)
            records.extend(page)

            if terminal or not page or _page_limit_reached(pages, options):
                break

            next_url = _lookup_path(body, self.next_url_field) if isinstance(body, dict) else None
            if not isinstance(next_url, str) or not next_url.strip():
                break
            next_url = urljoin(current_url, next_url.strip())
            if next_url == current_url:
                logger.warning("Next page URL repeats the current page, stopping url=%s", current_url)
                break

            # The server-provided URL already carries every query parameter.
            current_url = next_url
            params = None
            context.pause_between_pages()

        return records


class LinkHeaderPagination(_RateLimitAwareStrategy):
    """
    Shopify-style cursor paging: the ``Link`` response header names the next
    page through a ``page_info`` token.

    Only the first request carries the endpoint's extra params; later pages
    send just the page size and ``page_info``, since Shopify rejects filters
    alongside a cursor.
    """

    name = "link_header"
    page_info_param = "page_info"

    def fetch_all(
        self,
        *,
        url: str,
        options: EndpointOptions,
        context: PageFetchContext,
    ) -> list[Any]:
        records: list[Any] = []
        params: dict[str, Any] = {**options.extra_params, options.limit_param: options.limit}
        seen: set[str] = set()
        pages = 0

        while True:
            response = self._fetch_page(context, url, params)
            pages += 1
            page, terminal = _page_records(response.body, options.entity_key)
            records.extend(page)

            if terminal or not page or _page_limit_reached(pages, options):
                break

            page_info = page_info_from_link(response)
            if not page_info:
                break
            if page_info in seen:
                logger.warning("Link header repeats a page cursor, stopping url=%s page_info=%s", url, page_info)
                break
            seen.add(page_info)

            params = {options.limit_param: options.limit, self.page_info_param: page_info}
            context.pause_between_pages()

        return records


def page_info_from_link(response: ApiResponse, rel: str = "next") -> str | None:
    """
    The ``page_info`` cursor carried by the `rel` link, if any.
    """

    target = response.link(rel)
    if not target:
        return None
    values = parse_qs(urlsplit(target).query).get("page_info")
    return values[0] if values else None


STRATEGY_OFFSET = OffsetPagination.name
STRATEGY_CURSOR = CursorPagination.name
STRATEGY_CURSOR_RATE_LIMITED = RateLimitRecoveringCursorPagination.name
STRATEGY_FLAGGED_CURSOR = FlaggedCursorPagination.name
STRATEGY_NEXT_URL = NextUrlPagination.name
STRATEGY_LINK_HEADER = LinkHeaderPagination.name
