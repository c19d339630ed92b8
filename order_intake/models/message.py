from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DIRECTION_ALIASES = {"incoming": "inbound", "outgoing": "outbound"}


class MessageDirection(StrEnum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Message(BaseModel):
    """One text message as reported by the message provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    direction: MessageDirection
    sender: str = Field(default="", alias="from")
    body: str = ""
    created_at: datetime = Field(alias="createdAt")

    @field_validator("id", "sender", mode="before")
    @classmethod
    def coerce_str(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _DIRECTION_ALIASES.get(lowered, lowered)
        return value

    @field_validator("body", mode="before")
    @classmethod
    def default_body(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("created_at")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def is_inbound(self) -> bool:
        return self.direction is MessageDirection.INBOUND
