"""
Entitlement ledger — answers "is this free right now?" and records usage.

Two counters:
  - looks used today, persisted in the device store under a key built from
    the device-local calendar date. A new date means a fresh key, so the
    counter rolls over on its own.
  - coach questions used this session, held in memory and zeroed on reset.

The daily counter is read, compared and incremented without any locking.
Only one device ever writes its own keys, from one event loop.
"""

import logging
from datetime import date, datetime, timezone as _tz
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.device_store import DeviceStore
from .policy import PolicyContext

logger = logging.getLogger(__name__)

LOOKS_KEY_PREFIX = "mirror_looks_"


def device_today(timezone: Optional[str] = None) -> date:
    """Today's date on the device. Falls back to UTC."""
    if timezone:
        try:
            return datetime.now(ZoneInfo(timezone)).date()
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug("Unknown timezone %r, using UTC", timezone)
    return datetime.now(_tz.utc).date()


def looks_key(day: date) -> str:
    return f"{LOOKS_KEY_PREFIX}{day.isoformat()}"


class EntitlementLedger:
    def __init__(
        self,
        store: DeviceStore,
        policy: PolicyContext,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.policy = policy
        self._today = today or (lambda: device_today(self.policy.timezone))
        self.coach_questions_used = 0

    def _today_key(self) -> str:
        return looks_key(self._today())

    async def looks_used_today(self) -> int:
        return await self.store.get_int(self._today_key())

    async def can_generate_look_today(self, is_premium: bool) -> bool:
        limit = self.policy.max_looks_per_day(is_premium)
        if limit <= 0:
            return False
        return await self.looks_used_today() < limit

    async def mark_look_used(self) -> int:
        """Count one look. Call only once the styled image is in hand."""
        key = self._today_key()
        used = await self.store.get_int(key) + 1
        await self.store.set(key, str(used))
        logger.info("Look used (device=%s, %s=%d)", self.store.device_id, key, used)
        return used

    def can_ask_coach_question(self, is_premium: bool) -> bool:
        if is_premium:
            return True
        return self.coach_questions_used < self.policy.free_coach_questions

    def record_coach_question_used(self) -> int:
        self.coach_questions_used += 1
        return self.coach_questions_used

    def reset_session(self) -> None:
        self.coach_questions_used = 0
