"""
Notification Service Abstract Base Class

Defines the interface for reaching a customer when their order changes
status. Supports both Mock (development) and Real (production)
implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


@dataclass
class StatusNotification:
    """Everything needed to tell a customer about a status change."""
    order_id: int
    order_number: str
    customer_name: str
    customer_phone: str
    status: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization (Celery payloads)."""
        return asdict(self)


@dataclass(frozen=True)
class StatusMessage:
    title: str
    message: str


STATUS_MESSAGES: dict[str, tuple[str, str]] = {
    "confirmed": (
        "✅ Order Confirmed!",
        "Your order #{order_number} has been confirmed and is being prepared.",
    ),
    "preparing": (
        "👨‍🍳 Order Being Prepared",
        "Your delicious order #{order_number} is now being prepared with love!",
    ),
    "ready": (
        "🎉 Order Ready!",
        "Great news! Your order #{order_number} is ready for pickup/delivery.",
    ),
    "out-for-delivery": (
        "🚚 Out for Delivery",
        "Your order #{order_number} is on its way!",
    ),
    "delivered": (
        "✨ Order Delivered!",
        "Enjoy your meal! Your order #{order_number} has been delivered. "
        "Thank you for choosing {restaurant_name}!",
    ),
    "cancelled": (
        "❌ Order Cancelled",
        "Your order #{order_number} has been cancelled. "
        "If you have any questions, please contact us.",
    ),
}


def build_status_message(
    order_number: str,
    status: str,
    restaurant_name: str,
) -> Optional[StatusMessage]:
    """Render the customer-facing message for a status, if one exists."""
    template = STATUS_MESSAGES.get(status)
    if template is None:
        return None
    title, message = template
    return StatusMessage(
        title=title,
        message=message.format(order_number=order_number, restaurant_name=restaurant_name),
    )


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def send_order_status_update(
        self,
        notification: StatusNotification,
    ) -> NotificationResult:
        """Tell the customer their order moved to a new status."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
