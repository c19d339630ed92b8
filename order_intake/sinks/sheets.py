from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from typing import Any

import httpx
from google.auth.exceptions import GoogleAuthError, MalformedError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2 import service_account

from order_intake.config import Settings, get_settings
from order_intake.errors import LedgerNotConfigured, SinkError
from order_intake.models.message import Message
from order_intake.models.order import OrderJudgment
from order_intake.sinks.base import OrderLedger, format_local_timestamp

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
INITIAL_STATUS = "Pending"
LEDGER_HEADERS = [
    "Timestamp",
    "Customer Name",
    "Customer Phone",
    "Products",
    "Quantities",
    "Total Amount",
    "Special Requests",
    "Urgency",
    "Original Message",
    "Message ID",
    "Status",
]
_LAST_COLUMN = chr(ord("A") + len(LEDGER_HEADERS) - 1)


def build_ledger_row(
    order: OrderJudgment,
    message: Message,
    *,
    recorded_at: datetime,
    tz: tzinfo,
) -> list[str]:
    return [
        format_local_timestamp(recorded_at, tz),
        order.customer_name,
        order.customer_phone,
        ", ".join(order.products),
        ", ".join(order.quantities),
        order.total_amount,
        order.special_requests,
        order.urgency.value,
        message.body,
        message.id,
        INITIAL_STATUS,
    ]


def load_service_account_credentials(raw: str | None) -> service_account.Credentials | None:
    if not raw:
        logger.info("Google Sheets credentials not provided; ledger disabled")
        return None
    try:
        info = json.loads(raw)
        if not isinstance(info, dict):
            raise ValueError("service account info must be a JSON object")
        return service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
    except (ValueError, TypeError, KeyError, MalformedError) as exc:
        logger.error("Failed to initialize Google Sheets credentials: %s", exc)
        return None


class GoogleSheetsLedger(OrderLedger):
    def __init__(
        self,
        *,
        credentials: Any | None = None,
        sheet_id: str | None = None,
        tab: str | None = None,
        timeout_seconds: float | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._credentials = credentials or load_service_account_credentials(settings.google_sheets_credentials)
        self.sheet_id = sheet_id or settings.google_sheet_id
        self.tab = tab or settings.google_sheet_tab
        self.http_timeout_seconds = timeout_seconds or settings.sheets_http_timeout_seconds
        self.tz = settings.tzinfo()
        self._clock = clock or (lambda: datetime.now(UTC))
        if self._credentials is not None and not self.sheet_id:
            logger.warning("GOOGLE_SHEET_ID not provided; ledger disabled")

    @property
    def configured(self) -> bool:
        return self._credentials is not None and bool(self.sheet_id)

    async def _access_token(self) -> str:
        credentials = self._credentials
        if not credentials.valid:
            try:
                await asyncio.to_thread(credentials.refresh, GoogleRequest())
            except GoogleAuthError as exc:
                raise SinkError(f"Google credentials refresh failed: {exc}") from exc
        return str(credentials.token)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str],
        body: dict[str, Any],
    ) -> dict[str, Any]:
        token = await self._access_token()
        url = f"{SHEETS_API_URL}/{self.sheet_id}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout_seconds) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SinkError(
                f"Google Sheets returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.RequestError as exc:
            raise SinkError(f"Google Sheets request failed: {exc}") from exc
        try:
            return response.json()
        except ValueError:
            return {}

    async def append(self, order: OrderJudgment, message: Message) -> bool:
        if not self.configured:
            logger.info("Google Sheets not configured; order %s not logged", message.id)
            return False

        row = build_ledger_row(order, message, recorded_at=self._clock(), tz=self.tz)
        try:
            await self._request(
                "POST",
                f"/values/{self.tab}!A:{_LAST_COLUMN}:append",
                params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
                body={"values": [row]},
            )
        except SinkError:
            logger.exception(
                "Error logging order %s to Google Sheets",
                message.id,
                extra={"event_type": "intake.ledger.failed", "ops_payload": {"message_id": message.id}},
            )
            return False
        logger.info("Order %s logged to Google Sheets", message.id)
        return True

    async def setup_headers(self) -> bool:
        if not self.configured:
            raise LedgerNotConfigured("Google Sheets not configured")

        header_range = f"{self.tab}!A1:{_LAST_COLUMN}1"
        await self._request(
            "PUT",
            f"/values/{header_range}",
            params={"valueInputOption": "USER_ENTERED"},
            body={"range": header_range, "majorDimension": "ROWS", "values": [LEDGER_HEADERS]},
        )
        logger.info("Google Sheets headers written to %s", header_range)
        return True
