"""
Real-time Broadcaster Abstract Base Class

The order pipeline publishes lifecycle events through this interface;
implementations decide how they reach the admin sessions.
"""

from abc import ABC, abstractmethod
from typing import Any


class OrderEvent:
    """Event names on the admin channel."""
    NEW_ORDER = "new-order"
    STATUS_UPDATED = "order-status-updated"
    CANCELLED = "order-cancelled"


def build_message(event: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Wire format of an admin channel message."""
    return {"event": event, "data": payload}


class BaseBroadcaster(ABC):
    """Abstract base class for real-time broadcasters."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        """Publish an event to the admin channel."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None
