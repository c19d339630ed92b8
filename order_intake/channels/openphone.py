from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from order_intake.channels.base import MessageSource
from order_intake.config import Settings, get_settings
from order_intake.errors import FetchError
from order_intake.models.message import Message

logger = logging.getLogger(__name__)


def _isoformat_z(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class OpenPhoneSource(MessageSource):
    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        phone_number_id: str | None = None,
        timeout_seconds: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.api_key = api_key or settings.openphone_api_key
        self.api_url = (api_url or settings.openphone_api_url).rstrip("/")
        self.phone_number_id = phone_number_id or settings.openphone_phone_number_id
        self.http_timeout_seconds = timeout_seconds or settings.openphone_http_timeout_seconds
        if not self.api_key:
            logger.warning("OpenPhone API key not provided; message fetching disabled")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def fetch_since(self, since: datetime, limit: int) -> list[Message]:
        if not self.api_key:
            return []

        params: dict[str, Any] = {"limit": limit, "createdAfter": _isoformat_z(since)}
        if self.phone_number_id:
            params["phoneNumberId"] = self.phone_number_id
        headers = {"Authorization": self.api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout_seconds) as client:
                response = await client.get(f"{self.api_url}/messages", headers=headers, params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"OpenPhone returned HTTP {exc.response.status_code} when listing messages"
            ) from exc
        except httpx.RequestError as exc:
            raise FetchError(f"OpenPhone request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError("OpenPhone returned a non-JSON response") from exc

        return self._parse_messages(payload)

    def _parse_messages(self, payload: Any) -> list[Message]:
        if not isinstance(payload, dict):
            raise FetchError("OpenPhone response is not a JSON object")
        records = payload.get("data") or []
        messages: list[Message] = []
        for raw in records:
            if not isinstance(raw, dict):
                continue
            record = dict(raw)
            if record.get("body") is None and "text" in record:
                record["body"] = record["text"]
            try:
                messages.append(Message.model_validate(record))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed OpenPhone message %s: %s",
                    raw.get("id", "<no id>"),
                    exc.errors()[0].get("msg") if exc.errors() else exc,
                )
        return messages
