"""
Mock Notification Service

Simulates customer notifications for development.
No actual messages are sent - just logged.
"""

import asyncio
import random
import uuid
import logging

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    StatusNotification,
    build_status_message,
)
from app.core.config import get_settings

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 0.1,
        max_latency: float = 0.3,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.sent: list[dict] = []
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {to_phone}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"to": to_phone, "message": message, "id": message_id})
        logger.info(f"Mock SMS sent to {to_phone}: {message[:50]}... (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def send_order_status_update(
        self,
        notification: StatusNotification,
    ) -> NotificationResult:
        """Log the notification that would be sent."""
        settings = get_settings()
        content = build_status_message(
            notification.order_number,
            notification.status,
            settings.restaurant_name,
        )

        if content is None:
            logger.debug(f"No notification template for status '{notification.status}'")
            return NotificationResult(
                success=False,
                error_message="No notification template found for status",
                provider="mock"
            )

        logger.info(
            f"📱 Notification would be sent to {notification.customer_name} "
            f"({notification.customer_phone}): {content.title} | "
            f"order {notification.order_number} -> {notification.status}"
        )

        return await self.send_sms(
            notification.customer_phone,
            f"{content.title}\n{content.message}",
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
