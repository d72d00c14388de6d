"""
Encoding Dispatch
=================
Encodes a filled pixel buffer into PNG, WebP or JPEG bytes with Pillow.

PNG and WebP are lossless. For WebP the quality value is the compression
effort; PNG ignores it; JPEG uses it as the visual quality. A format with
no encoder yields empty bytes instead of raising.
"""

from __future__ import annotations

import io
import logging
from typing import Union

from PIL import Image

from .backend import PixelBuffer
from .models import ImageFormat, PixelFormat

logger = logging.getLogger(__name__)


def buffer_to_image(buffer: PixelBuffer) -> Image.Image:
    """Wrap the raw buffer as a Pillow image, honouring its stride."""
    mode = "L" if buffer.pixel_format is PixelFormat.GRAY8 else "RGBA"
    return Image.frombuffer(
        mode,
        (buffer.width, buffer.height),
        buffer.samples,
        "raw",
        mode,
        buffer.stride,
        1,
    )


def _encode_png(image: Image.Image, quality: int, out: io.BytesIO) -> None:
    image.save(out, format="PNG")


def _encode_webp(image: Image.Image, quality: int, out: io.BytesIO) -> None:
    image.save(out, format="WEBP", lossless=True, quality=quality)


def _encode_jpeg(image: Image.Image, quality: int, out: io.BytesIO) -> None:
    if image.mode == "RGBA":
        image = image.convert("RGB")
    image.save(out, format="JPEG", quality=quality)


_ENCODERS = {
    ImageFormat.PNG: _encode_png,
    ImageFormat.WEBP: _encode_webp,
    ImageFormat.JPEG: _encode_jpeg,
}


def encode_pixels(
    buffer: PixelBuffer,
    image_format: Union[ImageFormat, str],
    quality: int = 100,
) -> bytes:
    """
    Encode ``buffer`` in the requested format.

    Returns:
        Encoded bytes, or ``b""`` when the format has no encoder. Callers
        that need output must check the length.
    """
    encoder = _ENCODERS.get(image_format)
    if encoder is None:
        logger.warning(f"No encoder for image format {image_format!r}; returning empty bytes")
        return b""

    out = io.BytesIO()
    encoder(buffer_to_image(buffer), quality, out)
    return out.getvalue()
