from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from order_intake.models.message import Message


class MessageSource(ABC):
    """Abstract interface for the provider that inbound messages are pulled from."""

    @abstractmethod
    async def fetch_since(self, since: datetime, limit: int) -> list[Message]:
        """Return messages created after ``since`` in the order the provider lists them.

        Returns an empty list when nothing is new. Raises FetchError when the
        provider cannot be reached or rejects the request."""
        ...
