from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from zoneinfo import ZoneInfo

import httpx
import pytest

from order_intake.config import Settings
from order_intake.errors import LedgerNotConfigured, SinkError
from order_intake.sinks import sheets as sheets_module
from order_intake.sinks.base import format_local_timestamp
from order_intake.sinks.sheets import (
    LEDGER_HEADERS,
    GoogleSheetsLedger,
    build_ledger_row,
    load_service_account_credentials,
)
from tests.fixtures.intake_fakes import JANE_BODY, T0, FakeClock, FakeHTTPClient, jane_order, make_message

NEW_YORK = ZoneInfo("America/New_York")


def _install(monkeypatch: pytest.MonkeyPatch, client: FakeHTTPClient) -> None:
    def _factory(**kwargs: Any) -> FakeHTTPClient:
        return client

    monkeypatch.setattr(sheets_module.httpx, "AsyncClient", _factory)


def _ledger(credentials: Any | None = None) -> GoogleSheetsLedger:
    return GoogleSheetsLedger(
        credentials=credentials or SimpleNamespace(valid=True, token="tok"),
        settings=Settings(google_sheet_id="sheet-1"),
        clock=FakeClock(),
    )


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (datetime(2026, 10, 18, 13, 0, 5, tzinfo=UTC), "10/18/2026, 9:00:05 AM"),
        (datetime(2026, 1, 5, 17, 30, tzinfo=UTC), "1/5/2026, 12:30:00 PM"),
        (datetime(2026, 1, 5, 5, 7, 9, tzinfo=UTC), "1/5/2026, 12:07:09 AM"),
    ],
)
def test_format_local_timestamp(value: datetime, expected: str) -> None:
    assert format_local_timestamp(value, NEW_YORK) == expected


def test_ledger_row_layout() -> None:
    row = build_ledger_row(jane_order(), make_message("m1", JANE_BODY), recorded_at=T0, tz=NEW_YORK)
    assert len(row) == len(LEDGER_HEADERS)
    assert row == [
        "10/18/2026, 9:00:00 AM",
        "Jane",
        "555-1234",
        "oysters",
        "2 dozen",
        "TBD",
        "pickup tomorrow",
        "normal",
        JANE_BODY,
        "m1",
        "Pending",
    ]


def test_invalid_credentials_disable_ledger() -> None:
    assert load_service_account_credentials(None) is None
    assert load_service_account_credentials("{not json") is None
    assert load_service_account_credentials('{"type": "service_account"}') is None


@pytest.mark.parametrize("raw", ["[]", '"abc"', "42", "null"])
def test_non_object_credentials_disable_only_the_ledger(raw: str) -> None:
    assert load_service_account_credentials(raw) is None

    ledger = GoogleSheetsLedger(settings=Settings(google_sheets_credentials=raw, google_sheet_id="sheet-1"))

    assert not ledger.configured


@pytest.mark.asyncio
async def test_append_posts_row(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient([httpx.Response(200, json={"updates": {"updatedRows": 1}})])
    _install(monkeypatch, client)

    assert await _ledger().append(jane_order(), make_message("m1", JANE_BODY)) is True

    sent = client.requests[0]
    assert sent["method"] == "POST"
    assert sent["url"] == "https://sheets.googleapis.com/v4/spreadsheets/sheet-1/values/Orders!A:K:append"
    assert sent["params"] == {"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"}
    assert sent["headers"]["Authorization"] == "Bearer tok"
    assert sent["json"]["values"][0][9] == "m1"


@pytest.mark.asyncio
async def test_append_failure_returns_false(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, FakeHTTPClient([httpx.Response(500, text="backend error")]))
    assert await _ledger().append(jane_order(), make_message("m1", JANE_BODY)) is False


@pytest.mark.asyncio
async def test_append_unconfigured_returns_false(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient()
    _install(monkeypatch, client)
    ledger = GoogleSheetsLedger(settings=Settings())

    assert not ledger.configured
    assert await ledger.append(jane_order(), make_message("m1", JANE_BODY)) is False
    assert client.requests == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Credentials:
        valid = False
        token = None

        def refresh(self, request: object) -> None:
            self.valid = True
            self.token = "fresh"

    client = FakeHTTPClient([httpx.Response(200, json={})])
    _install(monkeypatch, client)

    assert await _ledger(_Credentials()).append(jane_order(), make_message("m1", JANE_BODY))
    assert client.requests[0]["headers"]["Authorization"] == "Bearer fresh"


@pytest.mark.asyncio
async def test_setup_headers_writes_first_row(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient([httpx.Response(200, json={})])
    _install(monkeypatch, client)

    assert await _ledger().setup_headers() is True

    sent = client.requests[0]
    assert sent["method"] == "PUT"
    assert sent["url"].endswith("/values/Orders!A1:K1")
    assert sent["json"] == {"range": "Orders!A1:K1", "majorDimension": "ROWS", "values": [LEDGER_HEADERS]}


@pytest.mark.asyncio
async def test_setup_headers_errors_propagate(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, FakeHTTPClient([httpx.Response(403, text="forbidden")]))
    with pytest.raises(SinkError):
        await _ledger().setup_headers()

    with pytest.raises(LedgerNotConfigured):
        await GoogleSheetsLedger(settings=Settings()).setup_headers()
