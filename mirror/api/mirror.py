"""
Mirror session API — drives the per-device SessionMachine.

POST /v1/mirror/mode          — Pick makeup / clothes / hair
POST /v1/mirror/style         — Pick a mood for the next capture
POST /v1/mirror/capture       — Camera frame while in CAPTURE_INITIAL
POST /v1/mirror/progress      — "Let me see" frame while GUIDING
POST /v1/mirror/ask           — Coach question
POST /v1/mirror/next          — Next tutorial step
POST /v1/mirror/reset         — Home
POST /v1/mirror/new-look      — Start over with the same mode
POST /v1/mirror/shop          — Personal shopper
POST /v1/mirror/audio         — Audio guidance on/off
POST /v1/mirror/vault/open|close|save
GET  /v1/mirror/vault         — Saved favorites
GET  /v1/mirror/session       — Full snapshot for (re)rendering
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DeviceContext, get_db, get_device
from ..orchestrator.sessions import get_machine
from ..orchestrator.state import MirrorMode
from ..services.tracking import record_saved_look

logger = logging.getLogger(__name__)

mirror_router = APIRouter(prefix="/mirror", tags=["mirror"])

MAX_IMAGE_CHARS = 15 * 1024 * 1024   # ~11 MB of base64


class ModeRequest(BaseModel):
    mode: MirrorMode


class StyleRequest(BaseModel):
    style: str


class PhotoRequest(BaseModel):
    image: str  # data:image/jpeg;base64,...


class AskRequest(BaseModel):
    question: str


class AudioRequest(BaseModel):
    enabled: bool


async def _machine(device: DeviceContext):
    return await get_machine(device.device_id, device.locale, device.timezone)


def _check_image(image: str) -> str:
    if not image or len(image) > MAX_IMAGE_CHARS:
        raise HTTPException(status_code=400, detail="Invalid or oversized image")
    return image


# ── Mode, style, capture ─────────────────────────────────────────────

@mirror_router.post("/mode")
async def select_mode(request: ModeRequest, device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.select_mode(request.mode).to_dict()


@mirror_router.post("/style")
async def choose_style(request: StyleRequest, device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.choose_style(request.style).to_dict()


@mirror_router.post("/capture")
async def capture(request: PhotoRequest, device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    result = await machine.capture(_check_image(request.image))
    return result.to_dict()


# ── Guiding ──────────────────────────────────────────────────────────

@mirror_router.post("/progress")
async def check_progress(request: PhotoRequest, device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    result = await machine.check_progress(_check_image(request.image))
    return result.to_dict()


@mirror_router.post("/ask")
async def ask_coach(request: AskRequest, device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    result = await machine.ask_coach(request.question)
    return result.to_dict()


@mirror_router.post("/next")
async def advance_step(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.advance_step().to_dict()


@mirror_router.post("/shop")
async def open_shop(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.open_shop().to_dict()


@mirror_router.post("/audio")
async def set_audio(request: AudioRequest, device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.set_audio(request.enabled).to_dict()


# ── Lifecycle ────────────────────────────────────────────────────────

@mirror_router.post("/reset")
async def reset(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.reset().to_dict()


@mirror_router.post("/new-look")
async def new_look(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.new_look().to_dict()


@mirror_router.get("/session")
async def session_snapshot(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return await machine.snapshot()


# ── Style Vault ──────────────────────────────────────────────────────

@mirror_router.get("/vault")
async def list_vault(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return {"favorites": await machine.favorites()}


@mirror_router.post("/vault/open")
async def open_vault(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    result = await machine.open_vault()
    return result.to_dict()


@mirror_router.post("/vault/close")
async def close_vault(device: DeviceContext = Depends(get_device)):
    machine = await _machine(device)
    return machine.close_vault().to_dict()


@mirror_router.post("/vault/save")
async def save_to_vault(
    device: DeviceContext = Depends(get_device),
    db: AsyncSession = Depends(get_db),
):
    machine = await _machine(device)
    result = await machine.save_to_vault()

    favorite = result.data.get("favorite")
    if favorite:
        await record_saved_look(
            db,
            device.device_id,
            mode=favorite["mode"],
            mood=favorite["preference"],
            image=favorite["target_image"],
            timestamp=favorite["timestamp"],
        )
    return result.to_dict()
