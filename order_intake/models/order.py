from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "Unknown"
AMOUNT_TBD = "TBD"


class Urgency(StrEnum):
    NORMAL = "normal"
    URGENT = "urgent"
    ASAP = "asap"


class OrderJudgment(BaseModel):
    """Classifier verdict for a single message.

    Order fields are only meaningful when ``is_order`` is true. ``failure_reason``
    is set when the verdict is a fallback produced because the model call or its
    output was unusable; it never travels over the wire.
    """

    model_config = ConfigDict(populate_by_name=True)

    is_order: bool = Field(default=False, alias="isOrder")
    customer_name: str = Field(default=UNKNOWN, alias="customerName")
    customer_phone: str = Field(default=UNKNOWN, alias="customerPhone")
    products: list[str] = Field(default_factory=list)
    quantities: list[str] = Field(default_factory=list)
    total_amount: str = Field(default=AMOUNT_TBD, alias="totalAmount")
    special_requests: str = Field(default="", alias="specialRequests")
    urgency: Urgency = Urgency.NORMAL
    extracted_text: str = Field(default="", alias="extractedText")
    failure_reason: str | None = Field(default=None, exclude=True)

    @classmethod
    def not_order(cls, failure_reason: str | None = None) -> OrderJudgment:
        return cls(is_order=False, failure_reason=failure_reason)

    @property
    def degraded(self) -> bool:
        return self.failure_reason is not None
