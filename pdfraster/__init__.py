"""
pdfraster
=========
Rasterizes PDF pages into images and packages them as per-page image
files or as one self-contained HTML document with inline images.

Architecture:
    - Backend Guard: Serializes conversions and manages the MuPDF lifecycle
    - Page Rasterizer: Renders each page into a freshly sized pixel buffer
    - Encoder: Encodes buffers as PNG, WebP or JPEG (Pillow)
    - HTML Assembly: Inline data-URI page flow, minified with minify-html
    - Conversion Engine: Orchestrates the per-page pipeline

Version: 1.0.0
"""

__version__ = "1.0.0"

from .engine import ConverterConfig, DocumentConverter, to_html, to_images
from .exceptions import (
    BufferAllocationError,
    DocumentOpenError,
    InvalidArgumentError,
    MinificationError,
    PdfRasterError,
)
from .models import ConversionRequest, ImageFormat, ImageResult, PageInfo

__all__ = [
    "__version__",
    "BufferAllocationError",
    "ConversionRequest",
    "ConverterConfig",
    "DocumentConverter",
    "DocumentOpenError",
    "ImageFormat",
    "ImageResult",
    "InvalidArgumentError",
    "MinificationError",
    "PageInfo",
    "PdfRasterError",
    "to_html",
    "to_images",
]
