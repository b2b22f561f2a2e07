"""
Realtime notifications. Thin wrapper around core.redis.
Typed event helpers for what the session machine pushes to a device.
"""

import base64
from dataclasses import asdict
from typing import Optional

from ..core import redis as _redis
from ..orchestrator.state import RecommendedItem


# ── Speech ───────────────────────────────────────────────────────────

async def speech_ready(device_id: str, token: int, text: str, audio: bytes):
    await _redis.notify_device(
        device_id,
        "speech",
        {
            "token": token,
            "text": text,
            "audio": base64.b64encode(audio).decode("utf-8"),
        },
    )


# ── Detached results ─────────────────────────────────────────────────

async def shopping_ready(device_id: str, items: list[RecommendedItem]):
    await _redis.notify_device(
        device_id,
        "shopping",
        {"items": [asdict(item) for item in items]},
    )


# ── Generic ──────────────────────────────────────────────────────────

async def notify(device_id: str, event_type: str, data: Optional[dict] = None):
    await _redis.notify_device(device_id, event_type, data)
