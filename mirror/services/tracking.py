"""
Append-only tracking: visitor sessions, saved looks and click events.

Tracking is best-effort. A failed write is logged, rolled back so the
request's session can still commit, and never surfaces to the user.
"""

import base64
import logging
import time
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.storage import get_image_store
from ..models.base import RecordBase
from ..models.tracking import ClickEvent, SavedLook, VisitorSession
from .look_generator import extract_base64

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


async def _insert(db: AsyncSession, row: RecordBase, what: str) -> Optional[str]:
    try:
        db.add(row)
        await db.flush()
        return row.id
    except Exception as e:
        logger.warning("Failed to record %s: %s", what, e)
        await db.rollback()
        return None


async def track_session(
    db: AsyncSession,
    device_id: Optional[str],
    timestamp: Optional[int] = None,
    user_agent: Optional[str] = None,
    initial_mode: Optional[str] = None,
) -> Optional[str]:
    row = VisitorSession(
        device_id=device_id,
        timestamp=timestamp or now_ms(),
        user_agent=user_agent,
        initial_mode=initial_mode,
    )
    return await _insert(db, row, f"session for device {device_id}")


async def record_saved_look(
    db: AsyncSession,
    device_id: Optional[str],
    mode: str,
    mood: str,
    image: str,
    timestamp: Optional[int] = None,
) -> Optional[str]:
    """Upload the look image to storage and record where it went."""
    image_url = None
    try:
        raw = base64.b64decode(extract_base64(image))
        image_url = await get_image_store().put_image(raw, device_id or "anonymous")
    except Exception as e:
        logger.warning("Look image upload failed for device %s: %s", device_id, e)

    row = SavedLook(
        device_id=device_id,
        timestamp=timestamp or now_ms(),
        mode=mode,
        mood=mood,
        image_url=image_url,
    )
    return await _insert(db, row, f"saved look for device {device_id}")


async def record_event(
    db: AsyncSession,
    device_id: Optional[str],
    event: str,
    payload: Optional[dict[str, Any]] = None,
    timestamp: Optional[int] = None,
) -> Optional[str]:
    row = ClickEvent(
        device_id=device_id,
        timestamp=timestamp or now_ms(),
        event=event,
        payload=payload or {},
    )
    return await _insert(db, row, f"event {event}")
