"""
Text-to-speech via Gemini TTS. Controlled by FF_USE_TTS flag.
"""

import asyncio
import logging
from typing import Optional

from ..core.config import get_settings
from ..core.errors import GenerationError
from ..core.flags import get_flags
from .look_generator import _get_gemini_client

logger = logging.getLogger(__name__)


def _sync_synthesize(text: str, voice: str) -> bytes:
    from google.genai import types

    settings = get_settings()
    client = _get_gemini_client()
    response = client.models.generate_content(
        model=settings.tts_model,
        contents=text,
        config=types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                ),
            ),
        ),
    )

    candidates = response.candidates or []
    parts = (candidates[0].content.parts or []) if candidates and candidates[0].content else []
    if not parts or parts[0].inline_data is None or not parts[0].inline_data.data:
        raise GenerationError("No audio returned")
    return parts[0].inline_data.data


async def synthesize(text: str, voice: Optional[str] = None) -> bytes:
    """Raw PCM audio for one coaching line."""
    if not get_flags().use_tts:
        raise GenerationError("Speech synthesis is disabled")
    voice = voice or get_settings().tts_voice
    logger.debug("Synthesizing %d chars (voice=%s)", len(text), voice)
    return await asyncio.to_thread(_sync_synthesize, text, voice)
