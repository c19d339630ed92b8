from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Literal, TypedDict
from uuid import uuid4

EventLevel = Literal["info", "warning", "error"]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CORRELATION_ID_HEADER = "x-request-id"
REDACTED = "[REDACTED]"

# Customer contact details show up in message bodies and classifier output.
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE_RE = re.compile(r"(?<!\w)\+?1?[\s.-]?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\w)|(?<!\w)\d{3}-\d{4}(?!\w)")
_SENSITIVE_KEY_PARTS = (
    "phone",
    "customer",
    "body",
    "sender",
    "token",
    "secret",
    "api_key",
    "authorization",
    "credentials",
    "webhook",
)

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class OpsEvent(TypedDict):
    timestamp: str
    level: EventLevel
    component: str
    event_type: str
    message: str
    correlation_id: str | None
    payload: dict[str, Any]


def iso_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def redact_text(value: str) -> str:
    return _PHONE_RE.sub(REDACTED, _EMAIL_RE.sub(REDACTED, value))


def redact_payload(value: Any, key: str | None = None) -> Any:
    if key is not None and any(part in key.lower() for part in _SENSITIVE_KEY_PARTS):
        return REDACTED
    if isinstance(value, dict):
        return {k: redact_payload(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact_payload(item) for item in value]
    if isinstance(value, str):
        return redact_text(value)
    return value


def current_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Bind a correlation id (a fresh one if none is given) for the enclosed block."""
    value = correlation_id or uuid4().hex
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


class OpsEventBuffer:
    """Bounded, thread-safe ring of recent log events for the ops console."""

    def __init__(self, max_size: int = 500) -> None:
        self._events: deque[OpsEvent] = deque(maxlen=max_size)
        self._lock = Lock()

    def add(self, event: OpsEvent) -> None:
        with self._lock:
            self._events.append(event)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def resize(self, max_size: int) -> None:
        with self._lock:
            self._events = deque(self._events, maxlen=max_size)

    def recent(
        self,
        *,
        limit: int,
        level: EventLevel | None = None,
        event_type: str | None = None,
        correlation_id: str | None = None,
    ) -> list[OpsEvent]:
        """Newest first. ``event_type`` and ``correlation_id`` match as substrings."""
        with self._lock:
            snapshot = list(self._events)
        matches: list[OpsEvent] = []
        for event in reversed(snapshot):
            if level is not None and event["level"] != level:
                continue
            if event_type is not None and event_type not in event["event_type"]:
                continue
            if correlation_id is not None and correlation_id not in (event["correlation_id"] or ""):
                continue
            matches.append(event)
            if len(matches) >= limit:
                break
        return matches


ops_event_buffer = OpsEventBuffer()


def _event_level(levelno: int) -> EventLevel:
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    return "info"


def event_from_record(record: logging.LogRecord) -> OpsEvent | None:
    event_type = getattr(record, "event_type", None)
    if event_type is None:
        return None
    payload = redact_payload(getattr(record, "ops_payload", None) or {})
    return {
        "timestamp": iso_now(),
        "level": _event_level(record.levelno),
        "component": record.name,
        "event_type": str(event_type),
        "message": redact_text(record.getMessage()),
        "correlation_id": getattr(record, "correlation_id", None) or current_correlation_id(),
        "payload": payload if isinstance(payload, dict) else {"value": payload},
    }


class OpsEventHandler(logging.Handler):
    """Mirrors records tagged with ``event_type`` into :data:`ops_event_buffer`."""

    def emit(self, record: logging.LogRecord) -> None:
        event = event_from_record(record)
        if event is not None:
            ops_event_buffer.add(event)


def configure_ops_event_logging(max_size: int) -> None:
    ops_event_buffer.resize(max_size)
    root_logger = logging.getLogger()
    if not any(isinstance(handler, OpsEventHandler) for handler in root_logger.handlers):
        root_logger.addHandler(OpsEventHandler())
