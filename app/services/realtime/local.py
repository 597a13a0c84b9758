"""
Local Broadcaster

Development broadcaster: publishes straight into this process's AdminHub.
Only admins connected to the same worker receive events.
"""

import logging
from typing import Any

from app.services.realtime.base import BaseBroadcaster, build_message
from app.services.realtime.hub import AdminHub

logger = logging.getLogger(__name__)


class LocalBroadcaster(BaseBroadcaster):
    """Publishes events to the in-process admin hub."""

    def __init__(self, hub: AdminHub):
        self.hub = hub

    @property
    def provider_name(self) -> str:
        return "local"

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        delivered = await self.hub.broadcast(build_message(event, payload))
        logger.debug(f"Event {event} delivered to {delivered} admin connection(s)")

    async def health_check(self) -> bool:
        return True
