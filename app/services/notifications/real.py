"""
Real Notification Service

Production implementation sending order status updates as SMS through
Twilio. Delivery phone numbers are stored as 10 local digits; the
configured country code is prepended before dialing.
"""

import asyncio
import logging

from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    StatusNotification,
    build_status_message,
)
from app.core.config import get_settings

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio."""

    def __init__(self):
        settings = get_settings()
        self.restaurant_name = settings.restaurant_name
        self.country_code = settings.sms_country_code

        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "twilio"

    def _e164(self, phone: str) -> str:
        if phone.startswith("+"):
            return phone
        return f"{self.country_code}{phone}"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            # The Twilio client is blocking
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=self._e164(to_phone),
            )

            logger.info(f"SMS sent to {to_phone}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def send_order_status_update(
        self,
        notification: StatusNotification,
    ) -> NotificationResult:
        """Send the status update as an SMS."""
        content = build_status_message(
            notification.order_number,
            notification.status,
            self.restaurant_name,
        )
        if content is None:
            return NotificationResult(
                success=False,
                error_message="No notification template found for status",
                provider="twilio"
            )

        message = (
            f"Hi {notification.customer_name}! {content.title}\n"
            f"{content.message}\n"
            f"- {self.restaurant_name}"
        )
        return await self.send_sms(notification.customer_phone, message)

    async def health_check(self) -> bool:
        """Check the Twilio account is reachable."""
        if not self.twilio_client:
            return False
        try:
            await asyncio.to_thread(
                self.twilio_client.api.accounts(self.twilio_client.account_sid).fetch
            )
            return True
        except TwilioException as e:
            logger.error(f"Twilio health check failed: {e}")
            return False
