"""
Remote config — product toggles and billing policy loaded from the app_config record.

Loaded once at startup. If the record is missing, malformed or the database
is unreachable, built-in defaults apply and the app keeps working.
"""

import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import session_scope
from ..models.app_config import AppConfigRecord
from ..orchestrator.policy import RemoteConfig

logger = logging.getLogger(__name__)

CONFIG_KEY = "default"

_remote_config: Optional[RemoteConfig] = None


async def load_remote_config(db: AsyncSession, key: str = CONFIG_KEY) -> Optional[RemoteConfig]:
    """Read and validate the config record. None on any failure."""
    try:
        result = await db.execute(
            select(AppConfigRecord).where(AppConfigRecord.key == key)
        )
        record = result.scalar_one_or_none()
        if record is None:
            logger.info("No remote config record '%s', using defaults", key)
            return None
        return RemoteConfig.model_validate(record.config or {})
    except ValidationError as e:
        logger.warning("Remote config '%s' is invalid: %s", key, e)
        return None
    except Exception as e:
        logger.warning("Failed to load remote config: %s", e)
        return None


async def save_remote_config(db: AsyncSession, config: RemoteConfig, key: str = CONFIG_KEY) -> None:
    """Upsert the config record. Takes effect on next startup."""
    result = await db.execute(
        select(AppConfigRecord).where(AppConfigRecord.key == key)
    )
    record = result.scalar_one_or_none()
    payload = config.model_dump(mode="json", by_alias=True)
    if record:
        record.config = payload
    else:
        db.add(AppConfigRecord(key=key, config=payload))
    await db.flush()


async def init_remote_config() -> RemoteConfig:
    """Load once at startup. Falls back to defaults."""
    global _remote_config
    config = None
    try:
        async with session_scope() as db:
            config = await load_remote_config(db)
    except Exception as e:
        logger.warning("Remote config unavailable, using defaults: %s", e)

    _remote_config = config or RemoteConfig()
    logger.info(
        "Remote config: maintenance=%s billing=%s free_looks=%d",
        _remote_config.maintenance_mode,
        _remote_config.billing.enabled,
        _remote_config.limits.max_looks_per_day,
    )
    return _remote_config


def get_remote_config() -> RemoteConfig:
    """Current config. Defaults until init_remote_config() has run."""
    return _remote_config or RemoteConfig()


def set_remote_config(config: Optional[RemoteConfig]) -> None:
    global _remote_config
    _remote_config = config
