"""
The outside world as seen by a session machine.

Every backend the machine talks to is an async callable on this bundle.
Production wiring lives in default_capabilities(); tests pass fakes.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

AsyncFn = Callable[..., Awaitable[Any]]


@dataclass
class Capabilities:
    # Look generator
    generate_styled_image: AsyncFn       # (photo, mode, style, lang) -> data URL or ""
    generate_tutorial: AsyncFn           # (original, target, mode, lang) -> (compliment, steps)
    generate_shopping_items: AsyncFn     # (target, mode, lang) -> list[RecommendedItem]
    generate_greeting: AsyncFn           # (photo, mode, lang) -> str
    get_progress_feedback: AsyncFn       # (target, progress, step, mode, lang) -> str
    answer_coach_question: AsyncFn       # (question, target, mode, step, lang) -> str
    # Speech
    synthesize: AsyncFn                  # (text) -> bytes
    # Checkout
    create_checkout: AsyncFn             # (method, *, country, lang, reason, billing, device_id) -> CheckoutSession
    # Branding
    apply_branding: AsyncFn              # (image, watermark_text) -> data URL
    # Realtime
    publish_speech: AsyncFn              # (device_id, token, text, audio)
    publish_shopping: AsyncFn            # (device_id, items)
    timeout: float = 90.0


def default_capabilities() -> Capabilities:
    from ..core.config import get_settings
    from ..services import branding, checkout, look_generator, realtime, speech

    return Capabilities(
        generate_styled_image=look_generator.generate_styled_image,
        generate_tutorial=look_generator.generate_tutorial,
        generate_shopping_items=look_generator.generate_shopping_items,
        generate_greeting=look_generator.generate_greeting,
        get_progress_feedback=look_generator.get_progress_feedback,
        answer_coach_question=look_generator.answer_coach_question,
        synthesize=speech.synthesize,
        create_checkout=checkout.create_checkout,
        apply_branding=branding.apply_branding,
        publish_speech=realtime.speech_ready,
        publish_shopping=realtime.shopping_ready,
        timeout=get_settings().backend_timeout_seconds,
    )
