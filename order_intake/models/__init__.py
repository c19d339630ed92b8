from order_intake.models.message import Message, MessageDirection
from order_intake.models.order import OrderJudgment, Urgency

__all__ = [
    "Message",
    "MessageDirection",
    "OrderJudgment",
    "Urgency",
]
