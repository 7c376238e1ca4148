"""
tests/test_sources_api.py

HTTP surface: sync trigger, run status lookup and connection test.
"""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

from app.domain.sync import EndpointResult
from app.main import create_app
from app.schemas.sync import ConnectionTestResponse, SyncJobAcceptedResponse
from app.services.sync_job_service import SyncJobService, get_sync_job_service
from db.session import get_db
from test_sync_job_service import FakeOrchestrator

HEADERS = {"X-Account-Id": "acct-1"}


@pytest.fixture()
def client(session_factory):
    service = SyncJobService(
        session_factory=session_factory,
        orchestrator=FakeOrchestrator(
            [
                EndpointResult.succeeded("customers", [{"id": 1}, {"id": 2}, {"id": 3}]),
                EndpointResult.failed("charges", "HTTP 500"),
            ]
        ),
    )

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app = create_app(validate_env=False, lifespan_checks=False)
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_sync_job_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_trigger_then_poll_status(client: TestClient, create_source) -> None:
    source = create_source()

    response = client.post(f"/sources/{source.id}/sync", headers=HEADERS)

    assert response.status_code == 202
    body = response.json()
    assert body["sourceId"] == str(source.id)
    assert body["status"] == "pending"

    status_response = client.get(f"/sync-runs/{body['jobId']}", headers=HEADERS)

    assert status_response.status_code == 200
    run = status_response.json()
    assert run["status"] == "partial"
    assert run["totalRecords"] == 3
    assert run["errorMessage"] is None
    assert [endpoint["name"] for endpoint in run["endpoints"]] == ["customers", "charges"]
    assert run["endpoints"][1]["error"] == "HTTP 500"
    assert run["endpoints"][0]["recordCount"] == 3
    assert run["endpoints"][0]["snapshotKey"] == "sources/customers.json"
    assert {"jobId", "sourceId", "accountId", "runTimestamp", "totalFiles", "snapshotLocation"} <= set(run)
    assert "job_id" not in run


def test_list_runs_filters_by_source_and_status(client: TestClient, create_source) -> None:
    source = create_source()
    client.post(f"/sources/{source.id}/sync", headers=HEADERS)

    partial = client.get("/sync-runs", params={"source_id": str(source.id), "status": "partial"}, headers=HEADERS)
    failed = client.get("/sync-runs", params={"source_id": str(source.id), "status": "failed"}, headers=HEADERS)

    assert len(partial.json()["runs"]) == 1
    assert failed.json()["runs"] == []


def test_missing_account_header_is_unauthorized(client: TestClient, create_source) -> None:
    source = create_source()

    assert client.post(f"/sources/{source.id}/sync").status_code == 401


def test_unknown_source_is_404(client: TestClient) -> None:
    assert client.post(f"/sources/{uuid.uuid4()}/sync", headers=HEADERS).status_code == 404


def test_other_accounts_source_is_403(client: TestClient, create_source) -> None:
    source = create_source(account_id="acct-2")

    assert client.post(f"/sources/{source.id}/sync", headers=HEADERS).status_code == 403


def test_inactive_source_is_400(client: TestClient, create_source) -> None:
    source = create_source(status="inactive")

    response = client.post(f"/sources/{source.id}/sync", headers=HEADERS)

    assert response.status_code == 400
    assert "not active" in response.json()["detail"]


def test_unknown_run_is_404(client: TestClient) -> None:
    assert client.get(f"/sync-runs/{uuid.uuid4()}", headers=HEADERS).status_code == 404


def test_other_accounts_run_is_hidden(client: TestClient, create_source) -> None:
    source = create_source()
    job_id = client.post(f"/sources/{source.id}/sync", headers=HEADERS).json()["jobId"]

    response = client.get(f"/sync-runs/{job_id}", headers={"X-Account-Id": "acct-2"})

    assert response.status_code == 404


def test_connection_test_endpoint(client: TestClient, create_source) -> None:
    source = create_source(name="Acme Stripe")

    response = client.post(f"/sources/{source.id}/test-connection", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Connected to Acme Stripe",
        "accountInfo": {},
        "error": None,
    }


def test_response_models_accept_both_spellings() -> None:
    by_alias = ConnectionTestResponse.model_validate({"success": True, "message": "ok", "accountInfo": {"id": 1}})
    by_name = ConnectionTestResponse(success=True, message="ok", account_info={"id": 1})

    assert by_alias == by_name
    assert by_name.model_dump(by_alias=True) == {
        "success": True,
        "message": "ok",
        "accountInfo": {"id": 1},
        "error": None,
    }
    assert "jobId" in SyncJobAcceptedResponse.model_json_schema()["properties"]
