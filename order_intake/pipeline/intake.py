from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, TypeVar

from order_intake.channels.base import MessageSource
from order_intake.channels.openphone import OpenPhoneSource
from order_intake.config import Settings, get_settings
from order_intake.models.message import Message
from order_intake.models.order import OrderJudgment
from order_intake.pipeline.classify import Classifier
from order_intake.sinks.base import AlertChannel, OrderLedger
from order_intake.sinks.sheets import GoogleSheetsLedger
from order_intake.sinks.slack import SlackAlertChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALREADY_RUNNING = "intake already running"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(slots=True)
class PipelineState:
    """Dedup set and fetch watermark; lives for the lifetime of the process."""

    watermark: datetime
    processed_ids: set[str] = field(default_factory=set)


@dataclass(slots=True)
class IntakeResult:
    fetched: int = 0
    processed: int = 0
    duplicates_skipped: int = 0
    outbound_skipped: int = 0
    orders_detected: int = 0
    classification_failures: int = 0
    ledger_failures: int = 0
    alert_failures: int = 0
    skipped: bool = False
    fetch_failed: bool = False
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    watermark: datetime | None = None

    @property
    def sink_failures(self) -> int:
        return self.ledger_failures + self.alert_failures

    def summary(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "processed": self.processed,
            "duplicates_skipped": self.duplicates_skipped,
            "outbound_skipped": self.outbound_skipped,
            "orders_detected": self.orders_detected,
            "classification_failures": self.classification_failures,
            "ledger_failures": self.ledger_failures,
            "alert_failures": self.alert_failures,
            "sink_failures": self.sink_failures,
            "skipped": self.skipped,
            "fetch_failed": self.fetch_failed,
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "watermark": self.watermark.isoformat() if self.watermark else None,
        }


class IntakePipeline:
    """Pulls new messages, classifies them and fans detected orders out to both sinks.

    Only one run executes at a time; a run requested while another is in flight
    returns immediately with ``skipped=True``. ``run`` never raises.
    """

    def __init__(
        self,
        *,
        source: MessageSource,
        classifier: Classifier,
        ledger: OrderLedger,
        alerts: AlertChannel,
        page_size: int = 50,
        call_timeout_seconds: float = 120.0,
        clock: Callable[[], datetime] | None = None,
        state: PipelineState | None = None,
    ) -> None:
        self.source = source
        self.classifier = classifier
        self.ledger = ledger
        self.alerts = alerts
        self.page_size = page_size
        self.call_timeout_seconds = call_timeout_seconds
        self._clock = clock or _utcnow
        self.state = state or PipelineState(watermark=self._clock())
        self.last_result: IntakeResult | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def _bounded(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self.call_timeout_seconds)

    async def run(self) -> IntakeResult:
        if self._lock.locked():
            logger.info(
                "Intake run skipped: another run is in flight",
                extra={"event_type": "intake.run.skipped"},
            )
            return IntakeResult(skipped=True, errors=[ALREADY_RUNNING])

        async with self._lock:
            result = IntakeResult(started_at=self._clock(), watermark=self.state.watermark)
            logger.info("Starting message processing (since %s)", self.state.watermark.isoformat())
            try:
                await self._run_batch(result)
            except Exception as exc:  # pragma: no cover
                logger.exception(
                    "Intake run failed: %s",
                    exc,
                    extra={
                        "event_type": "intake.run.error",
                        "ops_payload": {"exception_type": type(exc).__name__, **result.summary()},
                    },
                )
                result.errors.append(_describe(exc))
            result.finished_at = self._clock()
            self.last_result = result
            return result

    async def _run_batch(self, result: IntakeResult) -> None:
        try:
            messages = await self._bounded(self.source.fetch_since(self.state.watermark, self.page_size))
        except Exception as exc:
            result.fetch_failed = True
            result.errors.append(f"fetch failed: {_describe(exc)}")
            logger.error(
                "Error fetching messages: %s",
                _describe(exc),
                extra={
                    "event_type": "intake.fetch.failed",
                    "ops_payload": {"exception_type": type(exc).__name__},
                },
            )
            return

        result.fetched = len(messages)
        logger.info("Found %d new messages", len(messages))
        for message in messages:
            await self._process_message(message, result)

        self.state.watermark = max(self.state.watermark, self._clock())
        result.watermark = self.state.watermark
        logger.info(
            "Message processing completed: %d processed, %d orders, %d sink failures",
            result.processed,
            result.orders_detected,
            result.sink_failures,
            extra={"event_type": "intake.run.completed", "ops_payload": result.summary()},
        )

    async def _process_message(self, message: Message, result: IntakeResult) -> None:
        if message.id in self.state.processed_ids:
            result.duplicates_skipped += 1
            return

        try:
            if not message.is_inbound:
                result.outbound_skipped += 1
                return

            logger.info("Processing message %s", message.id)
            judgment = await self._classify(message)
            if judgment.degraded:
                result.classification_failures += 1
            if not judgment.is_order:
                logger.info("No order detected in message %s", message.id)
                return

            result.orders_detected += 1
            logger.info(
                "Order detected in message %s",
                message.id,
                extra={"event_type": "intake.order.detected", "ops_payload": {"message_id": message.id}},
            )
            await self._fan_out(judgment, message, result)
        finally:
            self.state.processed_ids.add(message.id)
            result.processed += 1

    async def _classify(self, message: Message) -> OrderJudgment:
        try:
            return await self._bounded(self.classifier.classify(message))
        except Exception as exc:
            logger.warning("Classifier failed for message %s: %s", message.id, _describe(exc))
            return OrderJudgment.not_order(failure_reason=_describe(exc))

    async def _deliver(self, sink_name: str, call: Awaitable[bool], message_id: str) -> bool:
        try:
            return bool(await self._bounded(call))
        except Exception as exc:
            logger.error(
                "%s delivery failed for message %s: %s",
                sink_name,
                message_id,
                _describe(exc),
                extra={
                    "event_type": f"intake.{sink_name}.failed",
                    "ops_payload": {"message_id": message_id, "exception_type": type(exc).__name__},
                },
            )
            return False

    async def _fan_out(self, order: OrderJudgment, message: Message, result: IntakeResult) -> None:
        ledger_ok = await self._deliver("ledger", self.ledger.append(order, message), message.id)
        alert_ok = await self._deliver("alert", self.alerts.notify(order, message), message.id)
        if not ledger_ok:
            result.ledger_failures += 1
        if not alert_ok:
            result.alert_failures += 1

        if ledger_ok and alert_ok:
            logger.info("Order processed successfully: %s", message.id)
        else:
            logger.warning(
                "Order processed with some issues: %s (ledger=%s, alert=%s)",
                message.id,
                ledger_ok,
                alert_ok,
                extra={
                    "event_type": "intake.order.partial_delivery",
                    "ops_payload": {"message_id": message.id, "ledger_ok": ledger_ok, "alert_ok": alert_ok},
                },
            )


def build_intake_pipeline(settings: Settings | None = None) -> IntakePipeline:
    settings = settings or get_settings()
    return IntakePipeline(
        source=OpenPhoneSource(settings=settings),
        classifier=Classifier(settings=settings),
        ledger=GoogleSheetsLedger(settings=settings),
        alerts=SlackAlertChannel(settings=settings),
        page_size=settings.openphone_page_size,
        call_timeout_seconds=settings.call_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_intake_pipeline() -> IntakePipeline:
    return build_intake_pipeline()
