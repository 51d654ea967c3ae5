from __future__ import annotations

import base64
import io
import logging

from PIL import Image

logger = logging.getLogger(__name__)


def compress_screenshot(png_bytes: bytes, max_width: int = 256) -> str:
    """Compress a PNG screenshot to reduce size for streaming.

    Args:
        png_bytes: Raw PNG image bytes
        max_width: Maximum width to resize to (default 256px for efficient streaming)

    Returns:
        Base64-encoded compressed PNG string
    """
    try:
        img = Image.open(io.BytesIO(png_bytes))

        if img.width > max_width:
            ratio = max_width / img.width
            new_height = max(1, int(img.height * ratio))
            img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)

        output = io.BytesIO()
        img.save(output, format="PNG", optimize=True)
        return base64.b64encode(output.getvalue()).decode("utf-8")
    except Exception as e:
        # Fallback: return original as base64
        logger.debug(f"Screenshot compression failed, sending original: {e}")
        return base64.b64encode(png_bytes).decode("utf-8")
