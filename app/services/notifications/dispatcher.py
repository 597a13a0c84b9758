"""
Notification Dispatcher

Single entry point the order pipeline uses to reach a customer. Depending
on configuration the notification is either sent inline through the
active notification service or handed to the Celery worker.

The dispatcher does not swallow errors; callers decide how a failed
notification affects them (the order pipeline logs and moves on).
"""

import logging
from typing import Optional

from app.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    StatusNotification,
)

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Routes status notifications inline or through the task queue."""

    def __init__(self, service: BaseNotificationService, use_task_queue: bool = False):
        self.service = service
        self.use_task_queue = use_task_queue

    async def dispatch(self, notification: StatusNotification) -> Optional[NotificationResult]:
        """
        Send or enqueue a status notification.

        Returns:
            The delivery result when sent inline, None when enqueued.
        """
        if self.use_task_queue:
            from app.tasks import deliver_status_notification

            task = deliver_status_notification.delay(notification.to_dict())
            logger.info(
                f"Queued notification for order {notification.order_number} "
                f"({notification.status}) as task {task.id}"
            )
            return None

        result = await self.service.send_order_status_update(notification)
        if not result.success:
            logger.warning(
                f"Notification for order {notification.order_number} not delivered: "
                f"{result.error_message}"
            )
        return result
