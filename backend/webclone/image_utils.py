"""Screenshot helpers: base64 encoding and fitting images within model limits."""

import base64
import binascii
import logging
from io import BytesIO

from PIL import Image

logger = logging.getLogger(__name__)


def encode_screenshot(data: bytes) -> str:
    """Base64-encode raw screenshot bytes for transport."""
    return base64.b64encode(data).decode("utf-8")


def to_data_url(b64: str, media_type: str = "image/png") -> str:
    return f"data:{media_type};base64,{b64}"


def resize_if_needed(img_bytes: bytes, max_dim: int = 7000) -> bytes:
    """Resize image if either dimension exceeds max_dim. Returns PNG bytes."""
    img = Image.open(BytesIO(img_bytes))
    w, h = img.size
    if w <= max_dim and h <= max_dim:
        return img_bytes
    scale = max_dim / max(w, h)
    new_w, new_h = max(int(w * scale), 1), max(int(h * scale), 1)
    img = img.resize((new_w, new_h), Image.LANCZOS)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def fit_screenshot(b64: str, max_dim: int = 7000) -> str:
    """
    Downscale a base64 screenshot so neither side exceeds ``max_dim``.

    Full-page captures of long sites easily pass provider image limits.
    Anything that doesn't decode as an image, or is too large for Pillow
    to open safely, is passed through untouched for the provider to judge.
    """
    try:
        raw = base64.b64decode(b64)
        fitted = resize_if_needed(raw, max_dim=max_dim)
    except (binascii.Error, OSError, Image.DecompressionBombError) as e:
        logger.warning("[synthesis] Screenshot could not be decoded, sending as-is: %s", e)
        return b64
    if fitted is raw:
        return b64
    return encode_screenshot(fitted)
