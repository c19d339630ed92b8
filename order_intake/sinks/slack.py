from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any

import httpx

from order_intake.config import Settings, get_settings
from order_intake.models.message import Message
from order_intake.models.order import OrderJudgment, Urgency
from order_intake.sinks.base import AlertChannel, format_local_timestamp

logger = logging.getLogger(__name__)

URGENCY_MARKERS = {
    Urgency.URGENT: "🚨",
    Urgency.ASAP: "⚡",
    Urgency.NORMAL: "📋",
}
DEFAULT_MARKER = "📋"
NO_SPECIAL_REQUESTS = "None"


def _field(label: str, value: str) -> dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


def build_order_alert(
    order: OrderJudgment,
    message: Message,
    *,
    business_name: str,
    tz: tzinfo,
) -> dict[str, Any]:
    marker = URGENCY_MARKERS.get(order.urgency, DEFAULT_MARKER)
    received = format_local_timestamp(message.created_at, tz)
    return {
        "text": f"{marker} *NEW ORDER RECEIVED*",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{marker} New Order - {business_name}"},
            },
            {
                "type": "section",
                "fields": [
                    _field("Customer", order.customer_name),
                    _field("Phone", order.customer_phone),
                    _field("Products", ", ".join(order.products)),
                    _field("Quantities", ", ".join(order.quantities)),
                    _field("Total Amount", order.total_amount),
                    _field("Urgency", order.urgency.value.upper()),
                ],
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Special Requests:*\n{order.special_requests or NO_SPECIAL_REQUESTS}",
                },
            },
            {"type": "divider"},
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f'*Original Message:*\n"{message.body}"'},
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"📅 Received: {received} | 🆔 Message ID: {message.id}",
                    }
                ],
            },
        ],
    }


class SlackAlertChannel(AlertChannel):
    def __init__(
        self,
        webhook_url: str | None = None,
        timeout_seconds: float | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.webhook_url = webhook_url or settings.slack_webhook_url
        self.http_timeout_seconds = timeout_seconds or settings.slack_http_timeout_seconds
        self.business_name = settings.alert_business_name
        self.tz = settings.tzinfo()
        if not self.webhook_url:
            logger.warning("Slack webhook URL not provided; order alerts disabled")

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def notify(self, order: OrderJudgment, message: Message) -> bool:
        if not self.webhook_url:
            logger.info("Slack webhook not configured; alert for %s not sent", message.id)
            return False

        payload = build_order_alert(order, message, business_name=self.business_name, tz=self.tz)
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout_seconds) as client:
                response = await client.post(
                    self.webhook_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL):
            logger.exception(
                "Failed to send Slack alert for %s",
                message.id,
                extra={"event_type": "intake.alert.failed", "ops_payload": {"message_id": message.id}},
            )
            return False
        if response.status_code >= 400:
            logger.error(
                "Slack webhook error %d for %s: %s",
                response.status_code,
                message.id,
                response.text,
                extra={"event_type": "intake.alert.failed", "ops_payload": {"message_id": message.id}},
            )
            return False
        logger.info("Order alert for %s sent to Slack", message.id)
        return True
