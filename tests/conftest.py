"""
Shared fixtures: an in-memory rendering backend that records every
resource acquisition/release and flags overlapping (reentrant) access.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

import fitz  # PyMuPDF
import pytest

from pdfraster.backend import (
    BackendGuard,
    DocumentHandle,
    PageHandle,
    PixelBuffer,
    RenderFlags,
    RenderingBackend,
)
from pdfraster.engine import ConverterConfig, DocumentConverter
from pdfraster.exceptions import BufferAllocationError, DocumentOpenError
from pdfraster.models import PixelFormat

LETTER = (612.0, 792.0)

# Three pages; the second one cannot be loaded.
THREE_PAGE_PDF = b"%PDF-fake three pages"
SINGLE_PAGE_PDF = b"%PDF-fake one page"


@dataclass
class Ledger:
    initialize_calls: int = 0
    shutdown_calls: int = 0
    documents_opened: int = 0
    documents_closed: int = 0
    pages_loaded: int = 0
    pages_closed: int = 0
    buffers_created: int = 0
    buffers_destroyed: int = 0
    renders: list = field(default_factory=list)
    overlaps: int = 0
    _busy: bool = False

    def enter(self):
        if self._busy:
            self.overlaps += 1
        self._busy = True

    def leave(self):
        self._busy = False


class FakeBuffer(PixelBuffer):

    def __init__(self, ledger: Ledger, width: int, height: int, pixel_format: PixelFormat):
        super().__init__(width, height, pixel_format)
        self._ledger = ledger
        row = width * pixel_format.bytes_per_pixel
        self._stride = (row + 3) // 4 * 4
        self.data = bytearray(self._stride * height)
        ledger.buffers_created += 1

    @property
    def stride(self) -> int:
        return self._stride

    @property
    def samples(self) -> bytes:
        return bytes(self.data)

    def fill(self, value: int) -> None:
        self.data[:] = bytes([value]) * len(self.data)

    def _release(self) -> None:
        self._ledger.buffers_destroyed += 1


class FakePage(PageHandle):

    def __init__(self, backend: "FakeBackend", size: tuple[float, float]):
        self._backend = backend
        self._size = size
        backend.ledger.pages_loaded += 1

    @property
    def width_pt(self) -> float:
        return self._size[0]

    @property
    def height_pt(self) -> float:
        return self._size[1]

    def render(self, buffer: PixelBuffer, flags: RenderFlags) -> None:
        ledger = self._backend.ledger
        ledger.enter()
        try:
            ledger.renders.append((buffer.width, buffer.height, buffer.pixel_format, flags))
            if self._backend.render_delay:
                time.sleep(self._backend.render_delay)
            if self._backend.fail_render:
                raise RuntimeError("paint failed")
        finally:
            ledger.leave()

    def _release(self) -> None:
        self._backend.ledger.pages_closed += 1


class FakeDocument(DocumentHandle):

    def __init__(self, backend: "FakeBackend", pages: list):
        self._backend = backend
        self._pages = pages
        backend.ledger.documents_opened += 1

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def load_page(self, index: int) -> Optional[PageHandle]:
        size = self._pages[index]
        if size is None:
            return None
        return FakePage(self._backend, size)

    def _release(self) -> None:
        self._backend.ledger.documents_closed += 1


class FakeBackend(RenderingBackend):
    name = "fake"

    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self.documents = {
            THREE_PAGE_PDF: [LETTER, None, (300.0, 200.5)],
            SINGLE_PAGE_PDF: [LETTER],
        }
        self.fail_initialize = False
        self.fail_allocation = False
        self.fail_render = False
        self.render_delay = 0.0
        self._initialized = False

    def initialize(self) -> None:
        if self.fail_initialize:
            raise RuntimeError("backend init failed")
        assert not self._initialized, "backend initialized twice"
        self._initialized = True
        self.ledger.initialize_calls += 1

    def shutdown(self) -> None:
        assert self._initialized, "backend shut down while not initialized"
        self._initialized = False
        self.ledger.shutdown_calls += 1

    def open_document(self, data: bytes) -> DocumentHandle:
        assert self._initialized
        if data not in self.documents:
            raise DocumentOpenError()
        return FakeDocument(self, self.documents[data])

    def create_buffer(self, width, height, pixel_format) -> PixelBuffer:
        if self.fail_allocation:
            raise BufferAllocationError()
        return FakeBuffer(self.ledger, width, height, pixel_format)


class FailingMinifier:
    def minify(self, html: str) -> str:
        from pdfraster.exceptions import MinificationError
        raise MinificationError("broken markup")


class TaggingMinifier:
    def minify(self, html: str) -> str:
        return "<!-- minified -->" + html


@pytest.fixture
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture
def backend(ledger) -> FakeBackend:
    return FakeBackend(ledger)


@pytest.fixture
def guard(backend) -> BackendGuard:
    return BackendGuard(backend)


@pytest.fixture
def converter(guard) -> DocumentConverter:
    return DocumentConverter(ConverterConfig(minify=False), guard=guard)


def make_pdf(sizes, text: Optional[str] = None, **save_options) -> bytes:
    """Build a real PDF in memory with PyMuPDF."""
    doc = fitz.open()
    for width, height in sizes:
        page = doc.new_page(width=width, height=height)
        if text:
            page.insert_text((36, 72), text, fontsize=36)
    data = doc.tobytes(**save_options)
    doc.close()
    return data


@pytest.fixture
def letter_pdf() -> bytes:
    return make_pdf([LETTER])
