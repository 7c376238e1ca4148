"""
tests/test_pagination.py

Pagination strategies against small in-process mock servers.

Every strategy must return N*L + K records in N + 1 requests when the server
holds N full pages of size L followed by one short page of size K.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlsplit

import pytest

from app.connectors.base import ApiResponse, HttpError
from app.connectors.pagination import (
    CursorPagination,
    EndpointOptions,
    FlaggedCursorPagination,
    LinkHeaderPagination,
    NextUrlPagination,
    OffsetPagination,
    PaginationError,
    RateLimitRecoveringCursorPagination,
    extract_records,
    page_info_from_link,
)
from conftest import FakeResponse, FakeSession, RecordedCall

FULL_PAGES = 3
PAGE_SIZE = 4
TAIL = 2
TOTAL = FULL_PAGES * PAGE_SIZE + TAIL

URL = "https://api.test/items"


def _records(total: int = TOTAL) -> list[dict[str, str]]:
    return [{"id": f"r{index}"} for index in range(1, total + 1)]


def _index_after(records: list[dict[str, str]], cursor: str | None) -> int:
    if cursor is None:
        return 0
    ids = [record["id"] for record in records]
    return ids.index(cursor) + 1


def offset_server(records: list[dict[str, str]], entity_key: str = "items"):
    def handler(call: RecordedCall) -> FakeResponse:
        offset = int(call.params["offset"])
        limit = int(call.params["limit"])
        return FakeResponse(200, {entity_key: records[offset : offset + limit]})

    return handler


def cursor_server(records: list[dict[str, str]], *, cursor_param: str = "starting_after", flag: bool = False):
    def handler(call: RecordedCall) -> FakeResponse:
        start = _index_after(records, call.params.get(cursor_param))
        limit = int(call.params["limit"])
        page = records[start : start + limit]
        body: dict = {"data": page}
        if flag:
            body["has_more"] = start + limit < len(records)
        return FakeResponse(200, body)

    return handler


def next_url_server(records: list[dict[str, str]]):
    def handler(call: RecordedCall) -> FakeResponse:
        query = dict(parse_qsl(urlsplit(call.url).query))
        query.update({key: str(value) for key, value in call.params.items()})
        page_number = int(query.get("page", "1"))
        per_page = int(query["per_page"])
        start = (page_number - 1) * per_page
        page = records[start : start + per_page]
        next_page = None
        if start + per_page < len(records):
            next_page = f"{URL}?page={page_number + 1}&per_page={per_page}"
        return FakeResponse(200, {"tickets": page, "next_page": next_page})

    return handler


SHOP_URL = "https://acme.myshopify.com/admin/api/2024-01/products.json"


def link_header_server(records: list[dict[str, str]]):
    def handler(call: RecordedCall) -> FakeResponse:
        token = call.params.get("page_info")
        page_number = int(token[1:]) if token else 1
        limit = int(call.params["limit"])
        start = (page_number - 1) * limit
        headers = {}
        if start + limit < len(records):
            headers["Link"] = f'<{SHOP_URL}?limit={limit}&page_info=p{page_number + 1}>; rel="next"'
        return FakeResponse(200, {"products": records[start : start + limit]}, headers=headers)

    return handler


class TestExtractRecords:
    def test_bare_array_is_returned_as_is(self) -> None:
        body = [{"id": 1}, {"id": 2}]
        assert extract_records(body, "contacts") is body

    def test_entity_key_is_unwrapped(self) -> None:
        assert extract_records({"contacts": [{"id": 1}], "count": 1}, "contacts") == [{"id": 1}]

    def test_missing_entity_key_passes_body_through(self) -> None:
        body = {"id": "acct_1", "name": "Acme"}
        assert extract_records(body, "contacts") is body

    def test_null_entity_key_is_empty(self) -> None:
        assert extract_records({"contacts": None}, "contacts") == []

    def test_no_entity_key_configured(self) -> None:
        assert extract_records({"a": 1}, None) == {"a": 1}


class TestFullSweep:
    def test_offset(self, make_context) -> None:
        records = _records()
        session = FakeSession(offset_server(records))
        options = EndpointOptions(entity_key="items", limit=PAGE_SIZE)

        result = OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert result == records
        assert len(session.calls) == FULL_PAGES + 1
        assert [call.params["offset"] for call in session.calls] == [0, 4, 8, 12]

    def test_cursor_by_last_id_without_has_more(self, make_context) -> None:
        records = _records()
        session = FakeSession(cursor_server(records))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE)

        result = CursorPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert result == records
        assert len(session.calls) == FULL_PAGES + 1
        assert "starting_after" not in session.calls[0].params
        assert [call.params.get("starting_after") for call in session.calls[1:]] == ["r4", "r8", "r12"]

    def test_rate_limit_recovering_cursor(self, make_context) -> None:
        records = _records()
        session = FakeSession(cursor_server(records, cursor_param="startAfterId"))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE, cursor_param="startAfterId")

        result = RateLimitRecoveringCursorPagination().fetch_all(
            url=URL, options=options, context=make_context(session)
        )

        assert result == records
        assert len(session.calls) == FULL_PAGES + 1

    def test_next_url(self, make_context) -> None:
        records = _records()
        session = FakeSession(next_url_server(records))
        options = EndpointOptions(entity_key="tickets", limit_param="per_page", limit=PAGE_SIZE)

        result = NextUrlPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert result == records
        assert len(session.calls) == FULL_PAGES + 1
        assert session.calls[0].params == {"per_page": PAGE_SIZE}
        assert all(call.params == {} for call in session.calls[1:])

    def test_flagged_cursor(self, make_context) -> None:
        records = _records()
        session = FakeSession(cursor_server(records, flag=True))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE)

        result = FlaggedCursorPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert result == records
        assert len(session.calls) == FULL_PAGES + 1

    def test_link_header(self, make_context) -> None:
        records = _records()
        session = FakeSession(link_header_server(records))
        options = EndpointOptions(
            entity_key="products", limit=PAGE_SIZE, extra_params={"fields": "id,title", "status": "active"}
        )

        result = LinkHeaderPagination().fetch_all(url=SHOP_URL, options=options, context=make_context(session))

        assert result == records
        assert len(session.calls) == FULL_PAGES + 1
        assert session.calls[0].params == {"fields": "id,title", "status": "active", "limit": PAGE_SIZE}
        assert [call.params for call in session.calls[1:]] == [
            {"limit": PAGE_SIZE, "page_info": "p2"},
            {"limit": PAGE_SIZE, "page_info": "p3"},
            {"limit": PAGE_SIZE, "page_info": "p4"},
        ]
        assert all(call.url == SHOP_URL for call in session.calls)


class TestRateLimitRecovery:
    def test_429_on_page_two_re_requests_same_page(self, make_context, sleeps) -> None:
        records = _records()
        serve = cursor_server(records, cursor_param="startAfterId")
        throttled = {"done": False}

        def handler(call: RecordedCall) -> FakeResponse:
            if call.params.get("startAfterId") == "r4" and not throttled["done"]:
                throttled["done"] = True
                return FakeResponse(429)
            return serve(call)

        session = FakeSession(handler)
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE, cursor_param="startAfterId")
        strategy = RateLimitRecoveringCursorPagination(rate_limit_cooldown_seconds=10.0)

        result = strategy.fetch_all(url=URL, options=options, context=make_context(session, max_attempts=1))

        assert result == records
        assert len({record["id"] for record in result}) == TOTAL
        cursors = [call.params.get("startAfterId") for call in session.calls]
        assert cursors == [None, "r4", "r4", "r8", "r12"]
        assert sleeps == [10.0]

    def test_consecutive_cooldowns_are_capped(self, make_context, sleeps) -> None:
        session = FakeSession(lambda call: FakeResponse(429))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE)
        strategy = RateLimitRecoveringCursorPagination(rate_limit_cooldown_seconds=10.0, max_rate_limit_retries=5)

        with pytest.raises(HttpError) as exc_info:
            strategy.fetch_all(url=URL, options=options, context=make_context(session, max_attempts=1))

        assert exc_info.value.status_code == 429
        assert len(session.calls) == 6
        assert sleeps == [10.0] * 5

    def test_offset_cooldown_retries_same_offset(self, make_context, sleeps) -> None:
        records = _records()
        serve = offset_server(records)
        throttled = {"done": False}

        def handler(call: RecordedCall) -> FakeResponse:
            if call.params["offset"] == 8 and not throttled["done"]:
                throttled["done"] = True
                return FakeResponse(429)
            return serve(call)

        session = FakeSession(handler)
        strategy = OffsetPagination(rate_limit_cooldown_seconds=10.0)
        options = EndpointOptions(entity_key="items", limit=PAGE_SIZE)

        result = strategy.fetch_all(url=URL, options=options, context=make_context(session, max_attempts=1))

        assert result == records
        assert [call.params["offset"] for call in session.calls] == [0, 4, 8, 8, 12]

    def test_plain_cursor_does_not_recover(self, make_context) -> None:
        session = FakeSession(lambda call: FakeResponse(429))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE)

        with pytest.raises(HttpError):
            CursorPagination().fetch_all(url=URL, options=options, context=make_context(session, max_attempts=1))

        assert len(session.calls) == 1


class TestStopConditions:
    def test_empty_first_page_stops_immediately(self, make_context) -> None:
        session = FakeSession(offset_server([]))
        options = EndpointOptions(entity_key="items", limit=PAGE_SIZE)

        assert OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session)) == []
        assert len(session.calls) == 1

    def test_exact_multiple_needs_one_empty_page(self, make_context) -> None:
        records = _records(PAGE_SIZE * 2)
        session = FakeSession(offset_server(records))
        options = EndpointOptions(entity_key="items", limit=PAGE_SIZE)

        result = OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert result == records
        assert len(session.calls) == 3

    def test_bare_array_pages(self, make_context) -> None:
        records = _records()

        def handler(call: RecordedCall) -> FakeResponse:
            offset = int(call.params["offset"])
            return FakeResponse(200, records[offset : offset + PAGE_SIZE])

        session = FakeSession(handler)
        options = EndpointOptions(entity_key="contacts", limit=PAGE_SIZE)

        assert OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session)) == records

    def test_single_object_body_is_one_record(self, make_context) -> None:
        session = FakeSession(lambda call: FakeResponse(200, {"id": "acct_1", "name": "Acme"}))
        options = EndpointOptions(entity_key="items", limit=PAGE_SIZE)

        result = OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert result == [{"id": "acct_1", "name": "Acme"}]
        assert len(session.calls) == 1

    def test_flag_absent_stops(self, make_context) -> None:
        session = FakeSession(lambda call: FakeResponse(200, {"data": _records(PAGE_SIZE)}))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE)

        result = FlaggedCursorPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert len(result) == PAGE_SIZE
        assert len(session.calls) == 1

    def test_repeated_next_url_stops(self, make_context) -> None:
        def handler(call: RecordedCall) -> FakeResponse:
            return FakeResponse(200, {"tickets": _records(2), "next_page": f"{URL}?page=2"})

        session = FakeSession(handler)
        options = EndpointOptions(entity_key="tickets", limit_param="per_page", limit=2)

        result = NextUrlPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert len(session.calls) == 2
        assert len(result) == 4

    def test_nested_next_url_field(self, make_context) -> None:
        pages = [
            {"results": _records(2), "paging": {"next": {"link": f"{URL}?after=2"}}},
            {"results": [{"id": "r3"}]},
        ]
        session = FakeSession.from_responses([FakeResponse(200, body) for body in pages])
        options = EndpointOptions(entity_key="results", limit=2)

        result = NextUrlPagination(next_url_field="paging.next.link").fetch_all(
            url=URL, options=options, context=make_context(session)
        )

        assert [record["id"] for record in result] == ["r1", "r2", "r3"]
        assert session.calls[1].url == f"{URL}?after=2"

    def test_max_pages_bounds_the_sweep(self, make_context) -> None:
        session = FakeSession(offset_server(_records()))
        options = EndpointOptions(entity_key="items", limit=PAGE_SIZE, max_pages=2)

        result = OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session))

        assert len(result) == PAGE_SIZE * 2
        assert len(session.calls) == 2

    def test_missing_cursor_field_raises(self, make_context) -> None:
        session = FakeSession(lambda call: FakeResponse(200, {"data": [{"name": "x"}] * PAGE_SIZE}))
        options = EndpointOptions(entity_key="data", limit=PAGE_SIZE)

        with pytest.raises(PaginationError):
            CursorPagination().fetch_all(url=URL, options=options, context=make_context(session))


class TestLinkHeader:
    def test_missing_link_header_stops(self, make_context) -> None:
        session = FakeSession(lambda call: FakeResponse(200, {"products": _records(PAGE_SIZE)}))
        options = EndpointOptions(entity_key="products", limit=PAGE_SIZE)

        result = LinkHeaderPagination().fetch_all(url=SHOP_URL, options=options, context=make_context(session))

        assert len(result) == PAGE_SIZE
        assert len(session.calls) == 1

    def test_repeated_page_info_stops(self, make_context) -> None:
        link = f'<{SHOP_URL}?limit=2&page_info=same>; rel="next"'
        session = FakeSession(lambda call: FakeResponse(200, {"products": _records(2)}, headers={"Link": link}))
        options = EndpointOptions(entity_key="products", limit=2)

        result = LinkHeaderPagination().fetch_all(url=SHOP_URL, options=options, context=make_context(session))

        assert len(session.calls) == 2
        assert len(result) == 4

    def test_previous_link_alone_is_not_followed(self, make_context) -> None:
        link = f'<{SHOP_URL}?limit=2&page_info=back>; rel="previous"'
        session = FakeSession(lambda call: FakeResponse(200, {"products": _records(2)}, headers={"link": link}))
        options = EndpointOptions(entity_key="products", limit=2)

        LinkHeaderPagination().fetch_all(url=SHOP_URL, options=options, context=make_context(session))

        assert len(session.calls) == 1

    def test_page_info_from_link(self) -> None:
        response = ApiResponse(
            body=[],
            headers={
                "Link": (
                    f'<{SHOP_URL}?limit=50&page_info=prevtok>; rel="previous", '
                    f'<{SHOP_URL}?limit=50&page_info=nexttok>; rel="next"'
                )
            },
        )

        assert response.link("next") == f"{SHOP_URL}?limit=50&page_info=nexttok"
        assert page_info_from_link(response) == "nexttok"
        assert page_info_from_link(response, rel="previous") == "prevtok"
        assert page_info_from_link(ApiResponse(body=[])) is None


def test_page_delay_only_between_pages(make_context, sleeps) -> None:
    session = FakeSession(offset_server(_records()))
    options = EndpointOptions(entity_key="items", limit=PAGE_SIZE)

    OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session, page_delay_seconds=0.5))

    assert sleeps == [0.5] * FULL_PAGES


def test_extra_params_are_sent_on_every_page(make_context) -> None:
    session = FakeSession(offset_server(_records()))
    options = EndpointOptions(entity_key="items", limit=PAGE_SIZE, extra_params={"locationId": "loc_1"})

    OffsetPagination().fetch_all(url=URL, options=options, context=make_context(session))

    assert all(call.params["locationId"] == "loc_1" for call in session.calls)
