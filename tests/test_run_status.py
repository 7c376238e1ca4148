"""
tests/test_run_status.py

Run status join and the run state machine.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.sync import (
    EndpointResult,
    SyncRun,
    SyncRunStatus,
    can_transition,
    derive_run_status,
    format_run_timestamp,
)

OK = EndpointResult.succeeded("contacts", [{"id": 1}])
FAILED = EndpointResult.failed("orders", "HTTP 500")


@pytest.mark.parametrize(
    ("results", "expected"),
    [
        ([OK, OK], SyncRunStatus.SUCCEEDED),
        ([OK, FAILED], SyncRunStatus.PARTIAL),
        ([FAILED, FAILED], SyncRunStatus.FAILED),
        ([], SyncRunStatus.FAILED),
    ],
)
def test_derive_run_status(results: list[EndpointResult], expected: str) -> None:
    assert derive_run_status(results) == expected


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (SyncRunStatus.PENDING, SyncRunStatus.RUNNING, True),
        (SyncRunStatus.PENDING, SyncRunStatus.FAILED, True),
        (SyncRunStatus.PENDING, SyncRunStatus.SUCCEEDED, False),
        (SyncRunStatus.RUNNING, SyncRunStatus.SUCCEEDED, True),
        (SyncRunStatus.RUNNING, SyncRunStatus.PARTIAL, True),
        (SyncRunStatus.RUNNING, SyncRunStatus.FAILED, True),
        (SyncRunStatus.RUNNING, SyncRunStatus.PENDING, False),
        (SyncRunStatus.SUCCEEDED, SyncRunStatus.RUNNING, False),
        (SyncRunStatus.FAILED, SyncRunStatus.RUNNING, False),
        (SyncRunStatus.PARTIAL, SyncRunStatus.FAILED, False),
    ],
)
def test_state_machine(current: str, target: str, allowed: bool) -> None:
    assert can_transition(current, target) is allowed


def test_run_timestamp_is_utc_with_milliseconds() -> None:
    moment = datetime(2024, 3, 5, 9, 30, 15, 123456, tzinfo=timezone(timedelta(hours=2)))

    assert format_run_timestamp(moment) == "2024-03-05T07:30:15.123Z"


def test_run_summary_counts_only_successful_records() -> None:
    run = SyncRun(
        id="r1",
        source_id="s1",
        account_id="a1",
        source_type="keap",
        run_timestamp="2024-01-01T00:00:00.000Z",
        started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    ).with_results([OK, FAILED, EndpointResult.succeeded("tags", [{"id": 1}, {"id": 2}])])

    assert run.status == SyncRunStatus.PARTIAL
    assert run.total_records == 3
    assert run.succeeded_endpoints == ["contacts", "tags"]
    assert run.failed_endpoints == ["orders"]

    summary = run.to_summary()
    assert summary["status"] == "partial"
    assert [endpoint["name"] for endpoint in summary["endpoints"]] == ["contacts", "orders", "tags"]
    assert summary["endpoints"][1]["error"] == "HTTP 500"
    assert "records" not in summary["endpoints"][0]
