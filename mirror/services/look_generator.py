"""
Look generation service — powered by Google Gemini.

Async wrapper around the sync google-genai SDK. Every public coroutine runs
its SDK call in a worker thread.

Images travel as data URLs ("data:image/jpeg;base64,...") in both directions,
the same shape the client captures and renders.

Capabilities:
  - Styled image per mode (makeup / outfit / hair)
  - Tutorial: compliment + ordered steps (JSON)
  - Shopping: 3 real products grounded with Google Search (JSON)
  - Greeting, progress feedback and coach answers (plain text)
"""

import asyncio
import base64
import json
import logging
from typing import Optional

from ..core.config import get_settings
from ..core.errors import GenerationError
from ..orchestrator.state import MirrorMode, RecommendedItem, TutorialStep

logger = logging.getLogger(__name__)

SAFETY_MESSAGE = (
    "I couldn't generate this specific look due to safety guidelines. "
    "Please try a different photo or style!"
)

STYLE_PROTOCOL = (
    "CRITICAL: Do NOT add, modify, or emphasize any facial hair (beards, stubble, or mustaches). "
    "Maintain a clean, sophisticated, and feminine aesthetic. Focus strictly on requested changes."
)

PRESERVATION_PROTOCOL = (
    "CRITICAL: Maintain the exact body shape, weight, height, and pose of the person. "
    "Do NOT change the background or environment. The person must be 100% recognizable "
    "as themselves in their current setting."
)

_LANG_NAMES = {"pt": "Portuguese", "es": "Spanish", "ja": "Japanese"}

_SHOPPING_CATEGORIES = {
    MirrorMode.MAKEUP: "makeup products",
    MirrorMode.CLOTHES: "clothing and outfits",
    MirrorMode.HAIR: "hair accessories and products",
}

_gemini_client = None


def _get_gemini_client():
    """Lazy-load and cache the google-genai client as a singleton."""
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    from google import genai

    settings = get_settings()
    if not settings.gemini_api_key:
        raise GenerationError("GEMINI_API_KEY is required for look generation")
    _gemini_client = genai.Client(api_key=settings.gemini_api_key)
    return _gemini_client


# ── Helpers ──────────────────────────────────────────────────────────


def lang_instruction(lang: str) -> str:
    name = _LANG_NAMES.get(lang, "English")
    return (
        f"Emma the Stylist instruction: All generated text must be in {name}. "
        "Brand 'Everyday Mirror' remains in English."
    )


def extract_base64(data_url: Optional[str]) -> str:
    """Strip the "data:...;base64," prefix if present."""
    if not data_url:
        return ""
    parts = data_url.split(",", 1)
    return parts[1] if len(parts) > 1 else data_url


def _image_part(data_url: str, what: str):
    from google.genai import types

    raw = extract_base64(data_url)
    if not raw:
        raise GenerationError(f"Invalid image data for {what}")
    try:
        image_bytes = base64.b64decode(raw)
    except ValueError:
        raise GenerationError(f"Invalid image data for {what}")
    return types.Part.from_bytes(data=image_bytes, mime_type="image/jpeg")


def image_from_response(response) -> str:
    """
    First inline image of the first candidate as a data URL.
    Empty string when the model returned no image. Raises on safety blocks.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    candidate = candidates[0]

    finish = getattr(candidate, "finish_reason", None)
    if finish is not None and getattr(finish, "name", str(finish)) == "SAFETY":
        raise GenerationError(SAFETY_MESSAGE)

    content = getattr(candidate, "content", None)
    for part in (getattr(content, "parts", None) or []):
        if part.inline_data is not None and part.inline_data.data:
            encoded = base64.b64encode(part.inline_data.data).decode("utf-8")
            return f"data:image/jpeg;base64,{encoded}"
    return ""


def build_look_prompt(mode: MirrorMode, style: str, lang: str) -> str:
    if mode == MirrorMode.MAKEUP:
        if style == "Surprise Me":
            base = "Apply a breathtaking, high-end makeup look that complements these features."
        else:
            base = f'Apply a professional "{style}" makeup look to this face.'
        return (
            f"{base} Focus strictly on cosmetic application (lips, eyes, skin, and contour). "
            f"{PRESERVATION_PROTOCOL} The person must look exactly like themselves, just with "
            f"professional makeup. {STYLE_PROTOCOL} OUTPUT THE EDITED IMAGE DATA. {lang_instruction(lang)}"
        )

    if mode == MirrorMode.CLOTHES:
        if style == "Carnival Celebration":
            base = "Transform this person's outfit into a spectacular Brazilian Carnival costume."
        else:
            base = f'Show this person wearing a high-fashion "{style}" outfit.'
        return (
            f"{base} Only the clothing should be transformed. {PRESERVATION_PROTOCOL} "
            "The person must be immediately recognizable as themselves in their exact environment "
            f"and pose. {STYLE_PROTOCOL} OUTPUT THE EDITED IMAGE DATA. {lang_instruction(lang)}"
        )

    return (
        f'Change the person\'s hair on top of their head to a sophisticated "{style}" style. '
        f"Only the hair should be modified. {PRESERVATION_PROTOCOL} Maintain facial identity exactly "
        "as it is without adding facial hair or changing body shape. OUTPUT THE EDITED IMAGE DATA. "
        f"{lang_instruction(lang)}"
    )


def _parse_json(text: Optional[str], default):
    if not text:
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Model returned malformed JSON: {e}")


# ── Sync functions (run in a thread for async compatibility) ─────────


def _sync_generate_styled_image(photo: str, mode: MirrorMode, style: str, lang: str) -> str:
    from google.genai import types

    settings = get_settings()
    client = _get_gemini_client()
    response = client.models.generate_content(
        model=settings.image_model,
        contents=[build_look_prompt(mode, style, lang), _image_part(photo, "look")],
        config=types.GenerateContentConfig(
            image_config=types.ImageConfig(aspect_ratio="1:1"),
        ),
    )
    return image_from_response(response)


def _sync_generate_tutorial(
    original_image: str, target_image: str, mode: MirrorMode, lang: str
) -> tuple[str, list[TutorialStep]]:
    from google.genai import types

    settings = get_settings()
    client = _get_gemini_client()
    prompt = f"""You are Emma, the Everyday Mirror stylist.
1. Provide a charming, natural, and realistic compliment (approx 15-20 words) about why this specific new look beautifully enhances their unique features. Create an emotional connection.
2. Provide professional steps to achieve this {mode.value.lower()} look.
{lang_instruction(lang)}"""

    schema = types.Schema(
        type=types.Type.OBJECT,
        properties={
            "compliment": types.Schema(type=types.Type.STRING),
            "steps": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(
                    type=types.Type.OBJECT,
                    properties={
                        "id": types.Schema(type=types.Type.INTEGER),
                        "title": types.Schema(type=types.Type.STRING),
                        "instruction": types.Schema(type=types.Type.STRING),
                        "tip": types.Schema(type=types.Type.STRING),
                    },
                    required=["id", "title", "instruction", "tip"],
                ),
            ),
        },
        required=["compliment", "steps"],
    )

    response = client.models.generate_content(
        model=settings.text_model,
        contents=[
            _image_part(original_image, "tutorial"),
            _image_part(target_image, "tutorial"),
            prompt,
        ],
        config=types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=schema,
        ),
    )

    data = _parse_json(response.text, {})
    steps = [TutorialStep.from_dict(s) for s in data.get("steps", [])]
    if not steps:
        raise GenerationError("Please try another angle.")
    return str(data.get("compliment", "")), steps


def _sync_generate_shopping_items(target_image: str, mode: MirrorMode, lang: str) -> list[RecommendedItem]:
    from google.genai import types

    settings = get_settings()
    client = _get_gemini_client()
    category = _SHOPPING_CATEGORIES.get(mode, "makeup products")
    prompt = (
        f"Identify 3 real-world {category} used in this look. Provide details for each: "
        "name, price, brand, url and matchReason. Respond with a JSON array only. "
        f"{lang_instruction(lang)}"
    )

    response = client.models.generate_content(
        model=settings.shopping_model,
        contents=[_image_part(target_image, "shopping"), prompt],
        config=types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())],
        ),
    )

    text = (response.text or "").strip()
    # Search-grounded responses cannot use a response schema and may be fenced.
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    data = _parse_json(text, [])
    if not isinstance(data, list):
        return []
    return [RecommendedItem.from_dict(item) for item in data if isinstance(item, dict)]


def _sync_generate_text(parts: list) -> str:
    settings = get_settings()
    client = _get_gemini_client()
    response = client.models.generate_content(model=settings.text_model, contents=parts)
    return (response.text or "").strip()


# ── Async public API ─────────────────────────────────────────────────


async def generate_styled_image(photo: str, mode: MirrorMode, style: str, lang: str) -> str:
    """Styled look as a data URL, or "" when the model produced no image."""
    logger.info("Generating %s look (style=%s, lang=%s)", mode.value, style, lang)
    return await asyncio.to_thread(_sync_generate_styled_image, photo, mode, style, lang)


async def generate_tutorial(
    original_image: str, target_image: str, mode: MirrorMode, lang: str
) -> tuple[str, list[TutorialStep]]:
    """Returns (compliment, steps)."""
    return await asyncio.to_thread(_sync_generate_tutorial, original_image, target_image, mode, lang)


async def generate_shopping_items(target_image: str, mode: MirrorMode, lang: str) -> list[RecommendedItem]:
    return await asyncio.to_thread(_sync_generate_shopping_items, target_image, mode, lang)


async def generate_greeting(photo: str, mode: MirrorMode, lang: str) -> str:
    prompt = f"""You are Emma, a world-class personal stylist for 'Everyday Mirror'.
1. Analyze their features and give a warm, specific, and natural compliment (about 15-20 words). Focus on something genuine like their smile, the light in their eyes, or their natural glow.
2. Follow it with: "Let's make you look even more fabulous today! When you're ready, pick a look below and I'll guide you."
{lang_instruction(lang)}"""
    parts = [prompt, _image_part(photo, "greeting")]
    return await asyncio.to_thread(_sync_generate_text, parts)


async def get_progress_feedback(
    target_image: str,
    progress_image: str,
    step: Optional[TutorialStep],
    mode: MirrorMode,
    lang: str,
) -> str:
    title = step.title if step else ""
    prompt = (
        f'Emma the Stylist: Compare their current progress for step: "{title}". '
        "Give warm, encouraging, and specific feedback on what they did well and what to tweak. "
        f"Be natural and helpful (approx 20 words). {lang_instruction(lang)}"
    )
    parts = [
        _image_part(target_image, "feedback"),
        _image_part(progress_image, "feedback"),
        prompt,
    ]
    return await asyncio.to_thread(_sync_generate_text, parts)


async def answer_coach_question(
    question: str,
    target_image: str,
    mode: MirrorMode,
    step: Optional[TutorialStep],
    lang: str,
) -> str:
    title = step.title if step else ""
    prompt = (
        f'User asks: "{question}". Emma, answer professionally and warmly based on the target '
        f'look provided in the image and current step "{title}". Keep it conversational and '
        f"encouraging. {lang_instruction(lang)}"
    )
    parts = [_image_part(target_image, "QA"), prompt]
    return await asyncio.to_thread(_sync_generate_text, parts)
