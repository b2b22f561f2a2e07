"""
Per-device key-value store. Redis OR process memory. Controlled by FF_USE_REDIS flag.

Holds what a browser would keep in local storage: favorites, the premium
flag and the daily look counters. Quota is per device, not per account, so
clearing the device's keys resets it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .flags import get_flags
from .redis import get_redis

logger = logging.getLogger(__name__)


class DeviceStore(ABC):
    """String key-value store scoped to one device."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    async def get_int(self, key: str) -> int:
        """Read a counter. Missing or garbage values read as 0."""
        raw = await self.get(key)
        try:
            return int(raw or "0")
        except ValueError:
            logger.warning("Non-integer counter %s=%r for device %s", key, raw, self.device_id)
            return 0


class MemoryDeviceStore(DeviceStore):
    """In-process store. Survives across requests, not across restarts."""

    _data: dict[str, dict[str, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(self.device_id, {}).get(key)

    async def set(self, key: str, value: str) -> None:
        self._data.setdefault(self.device_id, {})[key] = value

    @classmethod
    def clear_all(cls) -> None:
        cls._data.clear()


class RedisDeviceStore(DeviceStore):
    def _key(self, key: str) -> str:
        return f"device:{self.device_id}:{key}"

    async def get(self, key: str) -> Optional[str]:
        client = await get_redis()
        return await client.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        client = await get_redis()
        await client.set(self._key(key), value)


def get_device_store(device_id: str) -> DeviceStore:
    """Return the active device store based on feature flags."""
    flags = get_flags()
    if flags.use_redis:
        return RedisDeviceStore(device_id)
    return MemoryDeviceStore(device_id)
