"""
Real-time Broadcaster Factory

Returns the broadcaster used to push order lifecycle events to admin
sessions:
    - ENV_MODE=development → LocalBroadcaster (in-process hub)
    - ENV_MODE=staging/production → RedisBroadcaster (pub/sub + per-worker relay)
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.realtime.base import BaseBroadcaster, OrderEvent, build_message
from app.services.realtime.hub import AdminHub
from app.services.realtime.local import LocalBroadcaster

logger = logging.getLogger(__name__)


@lru_cache()
def get_admin_hub() -> AdminHub:
    """Process-wide hub of admin WebSocket connections."""
    return AdminHub()


@lru_cache()
def get_broadcaster() -> BaseBroadcaster:
    """Get the configured broadcaster instance."""
    settings = get_settings()
    hub = get_admin_hub()

    if settings.is_development:
        logger.info("Realtime: Using LocalBroadcaster (development mode)")
        return LocalBroadcaster(hub)
    else:
        from app.services.realtime.redis_pubsub import RedisBroadcaster

        logger.info(f"Realtime: Using RedisBroadcaster ({settings.env_mode.value} mode)")
        return RedisBroadcaster(settings.redis_url, settings.realtime_channel, hub)


def reset_broadcaster() -> None:
    """Clear cached instances."""
    get_broadcaster.cache_clear()
    get_admin_hub.cache_clear()


__all__ = [
    "get_admin_hub",
    "get_broadcaster",
    "reset_broadcaster",
    "AdminHub",
    "BaseBroadcaster",
    "LocalBroadcaster",
    "OrderEvent",
    "build_message",
]
