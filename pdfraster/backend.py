"""
Rendering Backend
=================
Owned resource types around the PDF rendering engine, the MuPDF
implementation (PyMuPDF), and the process-wide lifecycle guard.

Every native-adjacent object (document, page, pixel buffer) is a context
manager whose close() releases it exactly once, so release happens on
every exit path: normal, skipped page, or raised error.

The backend is treated as non-reentrant. BackendGuard serializes whole
conversions behind one lock and initializes/shuts down the backend with
a reference count.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import fitz  # PyMuPDF

from .exceptions import BufferAllocationError, DocumentOpenError
from .models import PixelFormat

logger = logging.getLogger(__name__)

WHITE = 0xFF


@dataclass(frozen=True)
class RenderFlags:
    """Paint options passed to PageHandle.render()."""
    antialias_text: bool = True
    annotations: bool = True
    grayscale: bool = False


# ─── Owned Resources ──────────────────────────────────────────────────────────


class OwnedResource(ABC):
    """Context-managed resource released exactly once."""

    _closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()

    @abstractmethod
    def _release(self) -> None:
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class PixelBuffer(OwnedResource):
    """
    In-memory raster of ``width`` x ``height`` pixels.

    Freshly allocated per page and destroyed by close(); never pooled.
    """

    def __init__(self, width: int, height: int, pixel_format: PixelFormat):
        self.width = width
        self.height = height
        self.pixel_format = pixel_format

    @property
    @abstractmethod
    def stride(self) -> int:
        """Bytes per row, at least width * bytes_per_pixel."""

    @property
    @abstractmethod
    def samples(self) -> bytes:
        """Raw pixel bytes, ``stride * height`` long."""

    @abstractmethod
    def fill(self, value: int) -> None:
        """Set every byte of the buffer (all channels) to ``value``."""


class PageHandle(OwnedResource):
    """One loaded page. Geometry is in points (1/72 inch)."""

    @property
    @abstractmethod
    def width_pt(self) -> float:
        ...

    @property
    @abstractmethod
    def height_pt(self) -> float:
        ...

    @abstractmethod
    def render(self, buffer: PixelBuffer, flags: RenderFlags) -> None:
        """Paint the page over the full extent of ``buffer``."""


class DocumentHandle(OwnedResource):
    """A parsed document, owned by one conversion call."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        ...

    @abstractmethod
    def load_page(self, index: int) -> Optional[PageHandle]:
        """Load a page by 0-based index, or return None if it cannot be loaded."""


class RenderingBackend(ABC):
    """
    Rendering engine abstraction.

    Backends must:
    - Parse a PDF from memory into a DocumentHandle
    - Allocate pixel buffers of an exact size and format
    - Paint pages into caller-supplied buffers
    """

    name = "abstract"

    def version(self) -> Optional[str]:
        return None

    @abstractmethod
    def initialize(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def shutdown(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def open_document(self, data: bytes) -> DocumentHandle:
        """Raises DocumentOpenError when ``data`` is not an openable PDF."""
        raise NotImplementedError

    @abstractmethod
    def create_buffer(
        self, width: int, height: int, pixel_format: PixelFormat
    ) -> PixelBuffer:
        """Raises BufferAllocationError when the buffer cannot be created."""
        raise NotImplementedError


# ─── MuPDF (PyMuPDF) Implementation ───────────────────────────────────────────


def _colorspace_for(pixel_format: PixelFormat):
    return fitz.csGRAY if pixel_format is PixelFormat.GRAY8 else fitz.csRGB


class MuPdfPixelBuffer(PixelBuffer):
    """PixelBuffer backed by a fitz.Pixmap (RGBA8 carries an alpha channel)."""

    def __init__(self, width: int, height: int, pixel_format: PixelFormat):
        super().__init__(width, height, pixel_format)
        self.pixmap = fitz.Pixmap(
            _colorspace_for(pixel_format),
            fitz.IRect(0, 0, width, height),
            pixel_format is PixelFormat.RGBA8,
        )

    @property
    def stride(self) -> int:
        return self.pixmap.stride

    @property
    def samples(self) -> bytes:
        return self.pixmap.samples

    def fill(self, value: int) -> None:
        self.pixmap.clear_with(value)

    def _release(self) -> None:
        self.pixmap = None


class MuPdfPage(PageHandle):

    def __init__(self, page: fitz.Page):
        self._page = page
        rect = page.rect
        self._width_pt = float(rect.width)
        self._height_pt = float(rect.height)

    @property
    def width_pt(self) -> float:
        return self._width_pt

    @property
    def height_pt(self) -> float:
        return self._height_pt

    def render(self, buffer: PixelBuffer, flags: RenderFlags) -> None:
        if not isinstance(buffer, MuPdfPixelBuffer):
            raise TypeError("MuPdfPage can only render into a MuPdfPixelBuffer")

        fitz.TOOLS.set_aa_level(8 if flags.antialias_text else 0)

        # Scale each axis independently so the page covers the whole buffer.
        sx = buffer.width / self._width_pt if self._width_pt > 0 else 1.0
        sy = buffer.height / self._height_pt if self._height_pt > 0 else 1.0

        target = buffer.pixmap
        colorspace = fitz.csGRAY if flags.grayscale else fitz.csRGB
        rendered = self._page.get_pixmap(
            matrix=fitz.Matrix(sx, sy),
            colorspace=colorspace,
            alpha=False,
            annots=flags.annotations,
        )
        if rendered.n != target.n - int(target.alpha):
            rendered = fitz.Pixmap(_colorspace_for(buffer.pixel_format), rendered)
        if target.alpha:
            # Added alpha is fully opaque; page was composited over white.
            rendered = fitz.Pixmap(rendered, 1)
        target.copy(rendered, rendered.irect)

    def _release(self) -> None:
        self._page = None


class MuPdfDocument(DocumentHandle):

    def __init__(self, doc: fitz.Document):
        self._doc = doc

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def load_page(self, index: int) -> Optional[PageHandle]:
        try:
            page = self._doc.load_page(index)
        except (RuntimeError, ValueError, IndexError) as e:
            logger.warning(f"Failed loading page {index + 1}: {e}")
            return None
        return MuPdfPage(page)

    def _release(self) -> None:
        self._doc.close()


class MuPdfBackend(RenderingBackend):
    """Renders through MuPDF using PyMuPDF (fitz)."""

    name = "mupdf"

    def version(self) -> Optional[str]:
        return getattr(fitz, "VersionBind", None)

    def initialize(self) -> None:
        fitz.TOOLS.mupdf_display_errors(False)
        fitz.TOOLS.reset_mupdf_warnings()
        logger.debug(f"MuPDF backend initialized (PyMuPDF {self.version()})")

    def shutdown(self) -> None:
        # Drop everything MuPDF keeps in its resource store.
        fitz.TOOLS.store_shrink(100)
        logger.debug("MuPDF backend shut down")

    def open_document(self, data: bytes) -> DocumentHandle:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise DocumentOpenError() from e

        # MuPDF's repair pass can turn arbitrary bytes into an empty PDF.
        if doc.needs_pass or doc.page_count == 0:
            doc.close()
            raise DocumentOpenError()

        return MuPdfDocument(doc)

    def create_buffer(
        self, width: int, height: int, pixel_format: PixelFormat
    ) -> PixelBuffer:
        try:
            return MuPdfPixelBuffer(width, height, pixel_format)
        except Exception as e:
            # MuPDF size limits raise FzError* classes outside RuntimeError.
            raise BufferAllocationError(
                f"Failed to create {width}x{height} {pixel_format.value} bitmap: {e}"
            ) from e


# ─── Lifecycle Guard ──────────────────────────────────────────────────────────


class BackendGuard:
    """
    Serializes access to a rendering backend and manages its lifecycle.

    acquire() takes the lock and initializes the backend on the 0→1
    transition of the reference count; release() shuts it down on 1→0
    and releases the lock last. Use session() for scoped acquisition.
    """

    def __init__(self, backend: RenderingBackend):
        self.backend = backend
        self._lock = threading.Lock()
        self._init_count = 0

    @property
    def init_count(self) -> int:
        return self._init_count

    def acquire(self) -> RenderingBackend:
        self._lock.acquire()
        try:
            if self._init_count == 0:
                self.backend.initialize()
            self._init_count += 1
        except BaseException:
            self._lock.release()
            raise
        return self.backend

    def release(self) -> None:
        try:
            self._init_count -= 1
            if self._init_count == 0:
                self.backend.shutdown()
        finally:
            self._lock.release()

    @contextmanager
    def session(self) -> Iterator[RenderingBackend]:
        backend = self.acquire()
        try:
            yield backend
        finally:
            self.release()


_default_guard: Optional[BackendGuard] = None
_default_guard_lock = threading.Lock()


def get_default_guard() -> BackendGuard:
    """Process-wide guard around the MuPDF backend, created on first use."""
    global _default_guard
    with _default_guard_lock:
        if _default_guard is None:
            _default_guard = BackendGuard(MuPdfBackend())
        return _default_guard
