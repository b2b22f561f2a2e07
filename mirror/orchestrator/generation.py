"""
Look generation pipeline.

  styled image ─► count the look ─► watermark ─► tutorial ─► (GUIDING)
                                                   └─► shopping (detached)

The look is counted against the daily quota as soon as a usable image
comes back, before branding and the tutorial. Nothing after that point
gives the look back. Shopping runs on its own and never blocks or fails
the pipeline.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..core.errors import GenerationError
from .capabilities import Capabilities
from .ledger import EntitlementLedger
from .state import MirrorMode, SessionData, TutorialStep

logger = logging.getLogger(__name__)

TRY_ANOTHER_ANGLE = "Please try another angle."
TIMEOUT_MESSAGE = "Emma is taking too long. Please try again."

GENERIC_ERROR = {
    "en": "Oops! Something went wrong.",
    "ja": "エラーが発生しました。",
    "pt": "Algo deu errado.",
    "es": "Algo salió mal.",
}


def generic_error(lang: str) -> str:
    return GENERIC_ERROR.get(lang, GENERIC_ERROR["en"])


@dataclass
class LookResult:
    original_image: str
    target_image: str
    compliment: str
    steps: list[TutorialStep]


class LookGenerationOrchestrator:
    def __init__(self, caps: Capabilities, ledger: EntitlementLedger):
        self.caps = caps
        self.ledger = ledger

    async def call(self, fn, *args, **kwargs) -> Any:
        """Run one backend call under the configured timeout."""
        try:
            return await asyncio.wait_for(fn(*args, **kwargs), timeout=self.caps.timeout)
        except asyncio.TimeoutError:
            logger.warning("Backend call %s timed out after %.0fs", getattr(fn, "__name__", fn), self.caps.timeout)
            raise GenerationError(TIMEOUT_MESSAGE)

    async def _brand(self, image: str) -> str:
        text = self.ledger.policy.config.branding.watermark_text
        try:
            return await self.call(self.caps.apply_branding, image, text)
        except Exception as e:
            logger.warning("Branding failed, using unbranded image: %s", e)
            return image

    async def generate(self, mode: MirrorMode, photo: str, style: str) -> LookResult:
        """Styled image + tutorial. Raises GenerationError on any blocking failure."""
        lang = self.ledger.policy.lang

        target = await self.call(self.caps.generate_styled_image, photo, mode, style, lang)
        if not target:
            raise GenerationError(TRY_ANOTHER_ANGLE)

        await self.ledger.mark_look_used()

        branded = await self._brand(target)
        compliment, steps = await self.call(self.caps.generate_tutorial, photo, branded, mode, lang)
        if not steps:
            raise GenerationError(TRY_ANOTHER_ANGLE)

        logger.info("Look ready (mode=%s, style=%s, steps=%d)", mode.value, style, len(steps))
        return LookResult(
            original_image=photo,
            target_image=branded,
            compliment=compliment,
            steps=list(steps),
        )

    async def fetch_shopping(self, session: SessionData, device_id: str) -> None:
        """
        Fill session.recommended_items. Writes into the session object it was
        given, so a result landing after a reset goes nowhere visible.
        """
        if not session.target_image or session.mode is None:
            return
        try:
            items = await self.call(
                self.caps.generate_shopping_items,
                session.target_image, session.mode, self.ledger.policy.lang,
            )
        except Exception as e:
            logger.warning("Shopping fetch failed (device=%s): %s", device_id, e)
            return

        session.recommended_items = list(items or [])
        logger.info("Shopping ready (device=%s, items=%d)", device_id, len(session.recommended_items))
        try:
            await self.caps.publish_shopping(device_id, session.recommended_items)
        except Exception as e:
            logger.warning("Shopping notification failed (device=%s): %s", device_id, e)
