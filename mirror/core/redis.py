"""
Shared async Redis connection (FF_USE_REDIS).

Two users: RedisDeviceStore for per-device counters and favorites, and the
device channels the client subscribes to for speech and shopping results.
"""

import json
import logging
from typing import Any

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_client = None


def device_channel(device_id: str) -> str:
    return f"mirror:device:{device_id}"


async def get_redis():
    global _client
    if _client is None:
        import redis.asyncio as aioredis

        _client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            health_check_interval=30,
        )
    return _client


async def notify_device(device_id: str, event_type: str, data: Any = None) -> int:
    """Push {"type", "data"} to the device channel. Returns subscriber count, 0 when off or failed."""
    if not get_flags().use_redis:
        return 0
    message = json.dumps({"type": event_type, "data": data})
    try:
        client = await get_redis()
        return await client.publish(device_channel(device_id), message)
    except Exception as e:
        logger.warning("Notify %s failed for device %s: %s", event_type, device_id, e)
        return 0


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        logger.info("Redis connection closed")
    _client = None
