"""
Session registry — one SessionMachine per device, kept in process memory.

Machines hold live asyncio tasks and speech tokens, so they are not
persisted. A process restart drops in-progress journeys. Quota, premium
flag and favorites live in the device store and survive.

The registry is bounded: machines idle for longer than SESSION_IDLE_SECONDS
are evicted, and past MAX_ACTIVE_SESSIONS the least recently used one goes.
An evicted device simply starts again from IDLE on its next request.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from ..core.config import get_settings
from ..core.device_store import DeviceStore, get_device_store
from ..services.remote_config import get_remote_config
from .capabilities import Capabilities, default_capabilities
from .machine import SessionMachine
from .paywall import resolve_country
from .policy import PolicyContext, resolve_lang

logger = logging.getLogger(__name__)

PREMIUM_KEY = "mirror_is_premium"


class MachineRegistry:
    """LRU of machines keyed by device id, with idle expiry."""

    def __init__(
        self,
        max_size: int,
        idle_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max(1, max_size)
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[SessionMachine, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._entries

    def get(self, device_id: str) -> Optional[SessionMachine]:
        """Fetch and mark as recently used."""
        self.prune()
        entry = self._entries.get(device_id)
        if entry is None:
            return None
        self._entries[device_id] = (entry[0], self._clock())
        self._entries.move_to_end(device_id)
        return entry[0]

    def peek(self, device_id: str) -> Optional[SessionMachine]:
        entry = self._entries.get(device_id)
        return entry[0] if entry else None

    def put(self, device_id: str, machine: SessionMachine) -> None:
        self._entries[device_id] = (machine, self._clock())
        self._entries.move_to_end(device_id)
        while len(self._entries) > self.max_size:
            oldest = next(iter(self._entries))
            self._evict(oldest, "capacity")

    def remove(self, device_id: str) -> Optional[SessionMachine]:
        entry = self._entries.pop(device_id, None)
        return entry[0] if entry else None

    def prune(self) -> int:
        """Evict machines idle past the limit. Returns how many went."""
        cutoff = self._clock() - self.idle_seconds
        expired = [device_id for device_id, (_, seen) in self._entries.items() if seen < cutoff]
        for device_id in expired:
            self._evict(device_id, "idle")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self, device_id: str, why: str) -> None:
        machine, _ = self._entries.pop(device_id)
        machine.reset()
        logger.info("Evicted machine for %s (%s, %d active)", device_id, why, len(self._entries))


_registry: Optional[MachineRegistry] = None
_capabilities: Optional[Capabilities] = None


def get_registry() -> MachineRegistry:
    global _registry
    if _registry is None:
        settings = get_settings()
        _registry = MachineRegistry(settings.max_active_sessions, settings.session_idle_seconds)
    return _registry


def set_registry(registry: Optional[MachineRegistry]) -> None:
    global _registry
    _registry = registry


def get_capabilities() -> Capabilities:
    global _capabilities
    if _capabilities is None:
        _capabilities = default_capabilities()
    return _capabilities


def set_capabilities(caps: Optional[Capabilities]) -> None:
    """Replace the backend wiring for machines created from now on."""
    global _capabilities
    _capabilities = caps


async def is_premium(store: DeviceStore) -> bool:
    return await store.get(PREMIUM_KEY) == "1"


async def set_premium(store: DeviceStore, premium: bool = True) -> None:
    await store.set(PREMIUM_KEY, "1" if premium else "0")
    logger.info("Premium %s for device %s", "granted" if premium else "revoked", store.device_id)


async def build_policy(
    store: DeviceStore,
    locale: Optional[str],
    timezone: Optional[str],
) -> PolicyContext:
    return PolicyContext(
        config=get_remote_config(),
        is_premium=await is_premium(store),
        lang=resolve_lang(locale),
        country=resolve_country(locale, timezone),
        timezone=timezone or None,
    )


async def get_machine(
    device_id: str,
    locale: Optional[str] = None,
    timezone: Optional[str] = None,
) -> SessionMachine:
    """Get or create the device's machine, refreshed with the caller's locale and premium flag."""
    store = get_device_store(device_id)
    policy = await build_policy(store, locale, timezone)

    registry = get_registry()
    machine = registry.get(device_id)
    if machine is None:
        machine = SessionMachine(device_id, policy, store, get_capabilities())
        registry.put(device_id, machine)
        logger.debug("Created machine for %s (%d active)", device_id, len(registry))
    elif machine.policy != policy:
        machine.apply_policy(policy)
    return machine


def peek_machine(device_id: str) -> Optional[SessionMachine]:
    return get_registry().peek(device_id)


def remove_machine(device_id: str) -> None:
    machine = get_registry().remove(device_id)
    if machine:
        machine.reset()


def clear_machines() -> None:
    get_registry().clear()
