"""
Celery Tasks
Background delivery of customer notifications.
"""

import asyncio
import logging
import time
from dataclasses import asdict

from app.celery_worker import celery_app
from app.services.notifications import get_notification_service, StatusNotification

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=0)
def deliver_status_notification(self, payload: dict) -> dict:
    """
    Deliver one order status notification.

    Runs in the Celery worker. Failures are logged and reported in the
    result; the task is never retried.

    Args:
        payload: StatusNotification fields

    Returns:
        dict: NotificationResult fields plus task bookkeeping
    """
    task_id = self.request.id
    notification = StatusNotification(**payload)
    start_time = time.time()

    try:
        service = get_notification_service()
        result = asdict(asyncio.run(service.send_order_status_update(notification)))
    except Exception as e:
        logger.exception(
            f"Task {task_id}: notification for order {notification.order_number} failed: {e}"
        )
        result = {"success": False, "error_message": str(e)}

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result.get('success'):
        logger.info(f"Task {task_id}: order {notification.order_number} notified in {elapsed}s")
    else:
        logger.warning(
            f"Task {task_id}: order {notification.order_number} not notified - "
            f"{result.get('error_message')}"
        )

    return result

