from __future__ import annotations

import json
import logging
from typing import Any

from order_intake.config import Settings, get_settings
from order_intake.errors import ClassificationError
from order_intake.models.message import Message
from order_intake.models.order import AMOUNT_TBD, UNKNOWN, OrderJudgment, Urgency
from order_intake.pipeline.llm import LLMRouter

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are an expert at identifying and extracting order information from text "
    "messages. Always respond with valid JSON."
)

_ORDER_SHAPE = """{
  "isOrder": true,
  "customerName": "extracted name or 'Unknown'",
  "customerPhone": "phone number",
  "products": ["product1", "product2"],
  "quantities": ["qty1", "qty2"],
  "totalAmount": "amount if mentioned or 'TBD'",
  "specialRequests": "any special instructions",
  "urgency": "normal/urgent/asap",
  "extractedText": "key order details"
}"""


def _prompt_for_message(message: Message) -> str:
    return (
        "Analyze the following message to determine if it contains an order. Look for:\n"
        "- Product names or descriptions\n"
        "- Quantities\n"
        "- Customer information (name, contact)\n"
        "- Delivery/pickup preferences\n"
        "- Payment information\n"
        "- Any clear intent to purchase\n\n"
        f"Message: {json.dumps(message.body, ensure_ascii=False)}\n"
        f"From: {message.sender}\n"
        f"Time: {message.created_at.isoformat()}\n\n"
        "If this is an order, respond with JSON in this exact format:\n"
        f"{_ORDER_SHAPE}\n\n"
        'If not an order, respond with: {"isOrder": false}\n'
        "Return ONLY the raw JSON object, no markdown wrapping."
    )


def _parse_judgment_payload(payload: str) -> dict[str, Any]:
    text = payload.strip()
    if text.startswith("```"):
        nl = text.find("\n")
        if nl != -1:
            text = text[nl + 1 :]
        if text.endswith("```"):
            text = text[:-3].rstrip()
    # Some models wrap the JSON object in prose; decode the first object and ignore the rest.
    start = text.find("{")
    if start == -1:
        raise ClassificationError("model response contains no JSON object")
    try:
        data, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError as exc:
        raise ClassificationError(f"model response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ClassificationError("model response is not a JSON object")
    return data


def _is_truthy_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _as_text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    text = str(value).strip()
    return [text] if text else []


def _build_judgment(output: dict[str, Any]) -> OrderJudgment:
    if "isOrder" not in output:
        raise ClassificationError("model response is missing isOrder")
    if not _is_truthy_flag(output["isOrder"]):
        return OrderJudgment.not_order()

    urgency_raw = str(output.get("urgency") or Urgency.NORMAL.value).strip().lower()
    urgency = Urgency(urgency_raw) if urgency_raw in {member.value for member in Urgency} else Urgency.NORMAL

    return OrderJudgment(
        is_order=True,
        customer_name=_as_text(output.get("customerName"), UNKNOWN),
        customer_phone=_as_text(output.get("customerPhone"), UNKNOWN),
        products=_as_text_list(output.get("products")),
        quantities=_as_text_list(output.get("quantities")),
        total_amount=_as_text(output.get("totalAmount"), AMOUNT_TBD),
        special_requests=_as_text(output.get("specialRequests"), ""),
        urgency=urgency,
        extracted_text=_as_text(output.get("extractedText"), ""),
    )


class Classifier:
    """Decides whether a message is an order. Never raises: failures become not-order."""

    def __init__(self, llm_router: LLMRouter | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.router = llm_router or LLMRouter(settings=self.settings)
        if not self.router.configured:
            logger.warning(
                "No API key for the classification models; every message will be classified as not an order"
            )

    async def classify(self, message: Message) -> OrderJudgment:
        if not self.router.configured:
            return OrderJudgment.not_order(failure_reason="classifier not configured")

        try:
            completion = await self.router.complete(
                prompt=_prompt_for_message(message),
                system_prompt=_SYSTEM_PROMPT,
                max_tokens=self.settings.classification_max_tokens,
                temperature=self.settings.classification_temperature,
            )
            judgment = _build_judgment(_parse_judgment_payload(completion.text))
        except Exception as exc:
            logger.warning(
                "Classification failed for message %s: %s",
                message.id,
                exc,
                extra={
                    "event_type": "intake.classification.failed",
                    "ops_payload": {"message_id": message.id, "exception_type": type(exc).__name__},
                },
            )
            return OrderJudgment.not_order(failure_reason=str(exc) or type(exc).__name__)

        logger.info(
            "Classified message %s with %s: is_order=%s",
            message.id,
            completion.model,
            judgment.is_order,
            extra={
                "event_type": "intake.classification.completed",
                "ops_payload": {
                    "message_id": message.id,
                    "model": completion.model,
                    "is_order": judgment.is_order,
                    "input_tokens": completion.input_tokens,
                    "output_tokens": completion.output_tokens,
                },
            },
        )
        return judgment
