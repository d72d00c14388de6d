"""
Data Models
===========
Pydantic models for conversion requests and per-page image results.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"


# ─── Enums ────────────────────────────────────────────────────────────────────


class ImageFormat(str, Enum):
    """Encoded image format for each rasterized page."""
    PNG = "png"
    WEBP = "webp"
    JPEG = "jpeg"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_MIME_TYPES = {
    ImageFormat.PNG: "image/png",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.JPEG: "image/jpeg",
}

_EXTENSIONS = {
    ImageFormat.PNG: "png",
    ImageFormat.WEBP: "webp",
    ImageFormat.JPEG: "jpg",
}

_FORMAT_ALIASES = {"jpg": "jpeg"}


class PixelFormat(str, Enum):
    """Channel layout of a pixel buffer."""
    GRAY8 = "gray8"
    RGBA8 = "rgba8"

    @property
    def bytes_per_pixel(self) -> int:
        return 1 if self is PixelFormat.GRAY8 else 4

    @classmethod
    def for_grayscale(cls, grayscale: bool) -> "PixelFormat":
        return cls.GRAY8 if grayscale else cls.RGBA8


def parse_image_format(value: Union[ImageFormat, str]) -> Union[ImageFormat, str]:
    """
    Normalize a user-supplied format name.

    Known names (case-insensitive, ``jpg`` accepted for JPEG) become an
    ImageFormat. Anything else is returned lowercased and will encode to
    empty bytes.
    """
    if isinstance(value, ImageFormat):
        return value
    name = str(value).strip().lower()
    name = _FORMAT_ALIASES.get(name, name)
    try:
        return ImageFormat(name)
    except ValueError:
        logger.warning(f"Unrecognized image format {value!r}; pages will encode to empty bytes")
        return name


# ─── Request / Result Models ──────────────────────────────────────────────────


class ConversionRequest(BaseModel):
    """
    Immutable options for one conversion call.

    ``quality`` controls JPEG compression and WebP lossless effort;
    PNG ignores it.
    """
    model_config = ConfigDict(frozen=True)

    dpi: int = Field(default=144, gt=0)
    quality: int = Field(default=100, ge=1, le=100)
    image_format: Union[ImageFormat, str] = Field(
        default=ImageFormat.WEBP,
        union_mode="left_to_right",
    )
    grayscale: bool = False
    base_name: Optional[str] = None

    @field_validator("image_format", mode="before")
    @classmethod
    def _normalize_format(cls, value):
        return parse_image_format(value)

    @property
    def is_known_format(self) -> bool:
        return isinstance(self.image_format, ImageFormat)

    @property
    def mime_type(self) -> str:
        if self.is_known_format:
            return self.image_format.mime_type
        return OCTET_STREAM

    @property
    def extension(self) -> str:
        if self.is_known_format:
            return self.image_format.extension
        return "bin"

    def file_name_for(self, page_index: int) -> str:
        """Suggested file name for a 0-based page index."""
        stem = self.base_name if self.base_name and self.base_name.strip() else "doc"
        return f"{stem}_page-{page_index + 1:03d}.{self.extension}"


class PageInfo(BaseModel):
    """Geometry of one page and its projected raster size."""
    page_number: int = Field(ge=1)
    width_pt: float
    height_pt: float
    width_px: int = Field(ge=1)
    height_px: int = Field(ge=1)


class ImageResult(BaseModel):
    """One encoded page, in page order."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime: str
    suggested_file_name: str
    page_number: int = Field(ge=1)
