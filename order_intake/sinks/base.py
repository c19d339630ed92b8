from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, tzinfo

from order_intake.errors import LedgerNotConfigured
from order_intake.models.message import Message
from order_intake.models.order import OrderJudgment


def format_local_timestamp(value: datetime, tz: tzinfo) -> str:
    """Render ``value`` in ``tz`` as ``M/D/YYYY, h:mm:ss AM``."""
    local = value.astimezone(tz)
    hour12 = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local.month}/{local.day}/{local.year}, {hour12}:{local.minute:02d}:{local.second:02d} {meridiem}"


class OrderLedger(ABC):
    """Durable, append-only record of detected orders."""

    @abstractmethod
    async def append(self, order: OrderJudgment, message: Message) -> bool:
        """Append one row for ``order``. Returns False instead of raising on failure."""
        ...

    async def setup_headers(self) -> bool:
        """Write the column header row. Ledgers without a header row raise by default."""
        raise LedgerNotConfigured(f"{type(self).__name__} does not support header setup")


class AlertChannel(ABC):
    """Real-time notification of detected orders."""

    @abstractmethod
    async def notify(self, order: OrderJudgment, message: Message) -> bool:
        """Deliver one alert for ``order``. Returns False instead of raising on failure."""
        ...
