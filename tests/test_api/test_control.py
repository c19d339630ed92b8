from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from order_intake.api.main import app
from order_intake.errors import LedgerNotConfigured
from order_intake.pipeline.intake import ALREADY_RUNNING, IntakePipeline, IntakeResult, get_intake_pipeline
from tests.fixtures.intake_fakes import (
    JANE_BODY,
    FailingSource,
    FakeClassifier,
    FakeClock,
    FakeSource,
    RecordingAlerts,
    RecordingLedger,
    jane_order,
    make_message,
)


def _pipeline(source: FakeSource | None = None, ledger: RecordingLedger | None = None) -> IntakePipeline:
    return IntakePipeline(
        source=source or FakeSource([[make_message("m1", JANE_BODY)]]),
        classifier=FakeClassifier({JANE_BODY: jane_order()}),
        ledger=ledger or RecordingLedger(),
        alerts=RecordingAlerts(),
        clock=FakeClock(),
    )


class _BusyPipeline:
    async def run(self) -> IntakeResult:
        return IntakeResult(skipped=True, errors=[ALREADY_RUNNING])


@pytest.fixture
def client() -> Iterator[TestClient]:
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["timestamp"].endswith("Z")


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-Id": "req-42"})
    assert response.headers["X-Request-Id"] == "req-42"


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_process_now_runs_intake(client: TestClient, method: str) -> None:
    ledger = RecordingLedger()
    app.dependency_overrides[get_intake_pipeline] = lambda: _pipeline(ledger=ledger)

    response = client.request(method, "/process-now")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Processing completed"
    assert body["summary"]["orders_detected"] == 1
    assert len(ledger.rows) == 1


def test_process_now_while_running_is_conflict(client: TestClient) -> None:
    app.dependency_overrides[get_intake_pipeline] = lambda: _BusyPipeline()

    response = client.post("/process-now")

    assert response.status_code == 409
    assert response.json()["error"] == ALREADY_RUNNING


def test_process_now_fetch_failure_is_bad_gateway(client: TestClient) -> None:
    app.dependency_overrides[get_intake_pipeline] = lambda: _pipeline(source=FailingSource())

    response = client.post("/process-now")

    assert response.status_code == 502
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("fetch failed:")
    assert body["summary"]["fetch_failed"] is True


def test_setup_sheets(client: TestClient) -> None:
    ledger = RecordingLedger()
    app.dependency_overrides[get_intake_pipeline] = lambda: _pipeline(ledger=ledger)

    response = client.post("/setup-sheets")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Google Sheets setup completed"}
    assert ledger.header_calls == 1


def test_setup_sheets_unconfigured(client: TestClient) -> None:
    ledger = RecordingLedger(outcome=LedgerNotConfigured("Google Sheets not configured"))
    app.dependency_overrides[get_intake_pipeline] = lambda: _pipeline(ledger=ledger)

    response = client.get("/setup-sheets")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Google Sheets not configured"}


def test_default_pipeline_without_credentials(client: TestClient) -> None:
    response = client.post("/process-now")

    assert response.status_code == 200
    assert response.json()["summary"]["fetched"] == 0
