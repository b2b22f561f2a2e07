"""
Watermark the styled look before it is shown, saved or shared.
"""

import asyncio
import base64
import logging
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont

from .look_generator import extract_base64

logger = logging.getLogger(__name__)

DEFAULT_WATERMARK = "Everyday Mirror"
WATERMARK_FILL = (255, 255, 255, 102)  # white at 40% opacity
JPEG_QUALITY = 90


def _load_font(size: int):
    try:
        return ImageFont.truetype("DejaVuSerif-Italic.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def _sync_apply_branding(image_data_url: str, watermark_text: str) -> str:
    raw = base64.b64decode(extract_base64(image_data_url))
    base = Image.open(BytesIO(raw)).convert("RGBA")
    width, height = base.size

    font_size = max(16, int(width * 0.045))
    font = _load_font(font_size)
    padding = int(font_size * 1.2)

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    # Anchor bottom-right of the text at the padded corner.
    draw.text(
        (width - padding, height - padding),
        watermark_text or DEFAULT_WATERMARK,
        font=font,
        fill=WATERMARK_FILL,
        anchor="rd",
    )

    branded = Image.alpha_composite(base, overlay).convert("RGB")
    buffer = BytesIO()
    branded.save(buffer, "JPEG", quality=JPEG_QUALITY)
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/jpeg;base64,{encoded}"


async def apply_branding(image_data_url: str, watermark_text: str = DEFAULT_WATERMARK) -> str:
    """Return a watermarked JPEG data URL. Raises if the image cannot be decoded."""
    return await asyncio.to_thread(_sync_apply_branding, image_data_url, watermark_text)
