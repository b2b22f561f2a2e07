"""
Style Vault — favorite looks kept per device, newest first.
"""

import json
import logging
import secrets
import time

from ..core.device_store import DeviceStore
from .state import FavoriteItem, SessionData

logger = logging.getLogger(__name__)

FAVORITES_KEY = "mirror_favorites_v3"
MAX_FAVORITES = 100


async def load_favorites(store: DeviceStore) -> list[FavoriteItem]:
    raw = await store.get(FAVORITES_KEY)
    if not raw:
        return []
    try:
        return [FavoriteItem.from_dict(item) for item in json.loads(raw)]
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Unreadable favorites for device %s: %s", store.device_id, e)
        return []


async def add_favorite(store: DeviceStore, session: SessionData) -> FavoriteItem:
    """Save the session's look at the front of the vault. Oldest items fall off past the cap."""
    now = int(time.time() * 1000)
    item = FavoriteItem(
        id=f"fav_{secrets.token_hex(4)}_{now}",
        mode=session.mode,
        preference=session.preference or "Surprise Me",
        target_image=session.target_image,
        outcome_image=session.target_image,
        timestamp=now,
    )
    favorites = [item] + await load_favorites(store)
    favorites = favorites[:MAX_FAVORITES]
    await store.set(FAVORITES_KEY, json.dumps([f.to_dict() for f in favorites]))
    logger.info("Saved to vault (device=%s, total=%d)", store.device_id, len(favorites))
    return item
