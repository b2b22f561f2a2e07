"""
FastAPI dependencies. Injected into route handlers.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db as _get_db


@dataclass
class DeviceContext:
    """Who is calling. There are no accounts; the client sends a stable device id."""
    device_id: str
    locale: Optional[str] = None
    timezone: Optional[str] = None
    user_agent: Optional[str] = None


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def get_device(
    x_device_id: str = Header(default=""),
    accept_language: str = Header(default=""),
    x_timezone: str = Header(default=""),
    user_agent: str = Header(default=""),
) -> DeviceContext:
    device_id = x_device_id.strip()
    if not device_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Device-Id header is required",
        )
    return DeviceContext(
        device_id=device_id,
        locale=accept_language or None,
        timezone=x_timezone or None,
        user_agent=user_agent or None,
    )


async def get_optional_device(
    x_device_id: str = Header(default=""),
    user_agent: str = Header(default=""),
) -> DeviceContext:
    """Same as get_device, for tracking endpoints that accept anonymous calls."""
    return DeviceContext(device_id=x_device_id.strip(), user_agent=user_agent or None)
