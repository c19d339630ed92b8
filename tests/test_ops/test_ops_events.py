from __future__ import annotations

import logging

from order_intake.ops.events import (
    REDACTED,
    OpsEventBuffer,
    correlation_scope,
    current_correlation_id,
    event_from_record,
    redact_payload,
    redact_text,
)


def _record(level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("order_intake.test", level, __file__, 1, "Order from %s", ("+1 555 555 1234",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_redact_text_masks_contact_details() -> None:
    text = "Jane 555-1234, +1 (203) 555-0199, jane@example.com, message AC1234567"
    assert redact_text(text) == f"Jane {REDACTED}, {REDACTED}, {REDACTED}, message AC1234567"


def test_redact_payload_masks_sensitive_keys() -> None:
    payload = {"message_id": "m1", "customer_phone": "555-1234", "nested": {"api_key": "sk"}, "count": 2}
    assert redact_payload(payload) == {
        "message_id": "m1",
        "customer_phone": REDACTED,
        "nested": {"api_key": REDACTED},
        "count": 2,
    }


def test_untagged_records_are_ignored() -> None:
    assert event_from_record(_record()) is None


def test_event_from_record() -> None:
    with correlation_scope("req-1"):
        event = event_from_record(_record(logging.ERROR, event_type="intake.fetch.failed", ops_payload={"n": 1}))

    assert event is not None
    assert event["level"] == "error"
    assert event["correlation_id"] == "req-1"
    assert event["message"] == f"Order from {REDACTED}"
    assert event["payload"] == {"n": 1}


def test_correlation_scope_restores_previous_value() -> None:
    with correlation_scope() as outer:
        assert current_correlation_id() == outer
        with correlation_scope("inner"):
            assert current_correlation_id() == "inner"
        assert current_correlation_id() == outer
    assert current_correlation_id() is None


def test_buffer_filters_and_bounds() -> None:
    buffer = OpsEventBuffer(max_size=10)
    for index in range(5):
        with correlation_scope(f"req-{index % 2}"):
            event = event_from_record(_record(logging.WARNING, event_type=f"intake.step{index}"))
        assert event is not None
        buffer.add(event)

    assert [event["event_type"] for event in buffer.recent(limit=2)] == ["intake.step4", "intake.step3"]
    assert [event["event_type"] for event in buffer.recent(limit=10, correlation_id="req-1")] == [
        "intake.step3",
        "intake.step1",
    ]

    buffer.resize(2)
    assert len(buffer.recent(limit=10)) == 2
