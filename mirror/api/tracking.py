"""
Tracking API — anonymous, append-only.

POST /v1/track/session — A visit started
POST /v1/track/look    — A look was saved (image goes to storage)
POST /v1/track/event   — Click event (affiliate clicks, paywall CTA...)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DeviceContext, get_db, get_optional_device
from ..services.tracking import record_event, record_saved_look, track_session

logger = logging.getLogger(__name__)

tracking_router = APIRouter(prefix="/track", tags=["tracking"])


class SessionTrack(BaseModel):
    timestamp: Optional[int] = None
    user_agent: Optional[str] = None
    initial_mode: Optional[str] = None


class LookTrack(BaseModel):
    timestamp: Optional[int] = None
    mode: str
    mood: str
    image: str


class EventTrack(BaseModel):
    # Any extra fields are kept as the event payload.
    model_config = ConfigDict(extra="allow")

    event: str
    timestamp: Optional[int] = None


@tracking_router.post("/session")
async def track_visit(
    request: SessionTrack,
    device: DeviceContext = Depends(get_optional_device),
    db: AsyncSession = Depends(get_db),
):
    row_id = await track_session(
        db,
        device.device_id or None,
        timestamp=request.timestamp,
        user_agent=request.user_agent or device.user_agent,
        initial_mode=request.initial_mode,
    )
    return {"ok": row_id is not None}


@tracking_router.post("/look")
async def track_look(
    request: LookTrack,
    device: DeviceContext = Depends(get_optional_device),
    db: AsyncSession = Depends(get_db),
):
    row_id = await record_saved_look(
        db,
        device.device_id or None,
        mode=request.mode,
        mood=request.mood,
        image=request.image,
        timestamp=request.timestamp,
    )
    return {"ok": row_id is not None}


@tracking_router.post("/event")
async def track_event(
    request: EventTrack,
    device: DeviceContext = Depends(get_optional_device),
    db: AsyncSession = Depends(get_db),
):
    row_id = await record_event(
        db,
        device.device_id or None,
        event=request.event,
        payload=request.model_dump(),
        timestamp=request.timestamp,
    )
    return {"ok": row_id is not None}
