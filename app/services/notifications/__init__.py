"""
Notification Service Factory

Returns Mock or Real notification service based on ENV_MODE, and the
dispatcher the order pipeline talks to.
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    StatusNotification,
    build_status_message,
)
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.notifications.mock import MockNotificationService

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Get the configured notification service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Notification Service: Using MockNotificationService (development mode)")
        return MockNotificationService(failure_rate=settings.mock_notification_failure_rate)
    else:
        from app.services.notifications.real import RealNotificationService

        logger.info(f"Notification Service: Using RealNotificationService ({settings.env_mode.value} mode)")
        return RealNotificationService()


@lru_cache()
def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the dispatcher wired to the configured service."""
    settings = get_settings()
    return NotificationDispatcher(
        get_notification_service(),
        use_task_queue=settings.notifications_via_queue,
    )


def reset_notification_service() -> None:
    """Clear the cached service instances."""
    get_notification_dispatcher.cache_clear()
    get_notification_service.cache_clear()


__all__ = [
    "get_notification_service",
    "get_notification_dispatcher",
    "reset_notification_service",
    "BaseNotificationService",
    "MockNotificationService",
    "NotificationDispatcher",
    "NotificationResult",
    "StatusNotification",
    "build_status_message",
]
