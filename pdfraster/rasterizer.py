"""
Page Rasterizer
===============
Renders one page into a freshly sized pixel buffer.

Pixel size per axis is ceil(points * dpi / 72), never below 1. Pages
that fail to load or paint are skipped rather than failing the conversion.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from typing import Iterator, Optional

from .backend import WHITE, DocumentHandle, PixelBuffer, RenderFlags, RenderingBackend
from .models import PixelFormat

logger = logging.getLogger(__name__)

POINTS_PER_INCH = 72.0


def pixel_size(width_pt: float, height_pt: float, dpi: int) -> tuple[int, int]:
    """Target buffer size in pixels for a page of the given size in points."""
    width_px = max(1, math.ceil(width_pt * dpi / POINTS_PER_INCH))
    height_px = max(1, math.ceil(height_pt * dpi / POINTS_PER_INCH))
    return width_px, height_px


class PageRasterizer:
    """Rasterizes pages of an open document through a rendering backend."""

    def __init__(self, backend: RenderingBackend):
        self.backend = backend

    @contextmanager
    def rasterize(
        self,
        document: DocumentHandle,
        page_index: int,
        dpi: int,
        grayscale: bool = False,
    ) -> Iterator[Optional[PixelBuffer]]:
        """
        Yield the filled buffer for ``page_index``, or None if the page was skipped.

        The page handle is closed before the buffer is yielded. The buffer
        is destroyed when the caller's block exits, normally or not.

        Raises:
            BufferAllocationError: If the pixel buffer cannot be created.
        """
        page = document.load_page(page_index)
        if page is None:
            logger.warning(f"Skipping page {page_index + 1}: page could not be loaded")
            yield None
            return

        with page:
            width_px, height_px = pixel_size(page.width_pt, page.height_pt, dpi)
            pixel_format = PixelFormat.for_grayscale(grayscale)
            buffer = self.backend.create_buffer(width_px, height_px, pixel_format)
            try:
                buffer.fill(WHITE)
                page.render(
                    buffer,
                    RenderFlags(
                        antialias_text=True,
                        annotations=True,
                        grayscale=grayscale,
                    ),
                )
            except Exception as e:
                buffer.close()
                logger.warning(f"Skipping page {page_index + 1}: rendering failed: {e}")
                painted = False
            except BaseException:
                buffer.close()
                raise
            else:
                painted = True

        if not painted:
            yield None
            return

        logger.debug(
            f"Rasterized page {page_index + 1} at {dpi} dpi: "
            f"{width_px}x{height_px} {pixel_format.value}"
        )
        with buffer:
            yield buffer
