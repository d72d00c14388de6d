"""
Conversion Engine
=================
Main orchestrator that opens a PDF, rasterizes every page, encodes the
pixels, and packages the result.

Usage:
    converter = DocumentConverter()
    html = converter.to_html(pdf_bytes, dpi=144, image_format="webp")
    images = converter.to_images(pdf_bytes, base_name="report")

Architecture:
    bytes → BackendGuard.session() → DocumentHandle → PageRasterizer →
    PixelBuffer → encode_pixels() → (HTML string | list[ImageResult])

The whole conversion runs under the backend guard's lock, so calls from
different threads are fully serialized.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

from pydantic import ValidationError

from .backend import BackendGuard, get_default_guard
from .encoder import encode_pixels
from .exceptions import InvalidArgumentError
from .markup import HtmlMinifier, HtmlPageDocument, Minifier, minify_or_original
from .models import ConversionRequest, ImageFormat, ImageResult, PageInfo
from .rasterizer import PageRasterizer, pixel_size

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class ConverterConfig:
    """Configuration for the conversion engine."""

    # Request defaults
    dpi: int = 144
    quality: int = 100
    image_format: str = ImageFormat.WEBP.value
    grayscale: bool = False

    # Output
    minify: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConverterConfig":
        """Build a config from PDFRASTER_* environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            dpi=int(env.get("PDFRASTER_DPI", defaults.dpi)),
            quality=int(env.get("PDFRASTER_QUALITY", defaults.quality)),
            image_format=env.get("PDFRASTER_FORMAT", defaults.image_format),
            grayscale=_env_bool(env.get("PDFRASTER_GRAYSCALE"), defaults.grayscale),
            minify=_env_bool(env.get("PDFRASTER_MINIFY"), defaults.minify),
            log_level=env.get("PDFRASTER_LOG_LEVEL", defaults.log_level),
            log_file=env.get("PDFRASTER_LOG_FILE") or defaults.log_file,
        )


class DocumentConverter:
    """
    Rasterizes PDFs into inline-image HTML documents or per-page images.

    Errors:
        InvalidArgumentError: missing/empty bytes or invalid options.
        DocumentOpenError: bytes are not an openable PDF.
        BufferAllocationError: a page's pixel buffer could not be created.

    Pages that fail to load or paint are skipped, and minifier failures
    fall back to unminified HTML.
    """

    def __init__(
        self,
        config: Optional[ConverterConfig] = None,
        guard: Optional[BackendGuard] = None,
        minifier: Optional[Minifier] = None,
    ):
        self.config = config or ConverterConfig()
        self._guard = guard
        if minifier is None and self.config.minify:
            minifier = HtmlMinifier()
        self.minifier = minifier
        self._setup_logging()

    @property
    def guard(self) -> BackendGuard:
        return self._guard or get_default_guard()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("pdfraster")
        package_logger.setLevel(log_level)

        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_path = Path(self.config.log_file).resolve()
            already_attached = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path
                for h in package_logger.handlers
            )
            if not already_attached:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)

    # ─── Public Operations ────────────────────────────────────────────────

    def to_html(
        self,
        data: Optional[bytes],
        request: Optional[ConversionRequest] = None,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        **options,
    ) -> str:
        """
        Rasterize every page into one self-contained HTML document.

        Args:
            data: Raw PDF bytes.
            request: Conversion options; keyword ``options`` override it.
            progress_callback: Callback(page_num, total_pages) after each page.

        Returns:
            Minified HTML (unminified if the minifier fails) with one
            inline ``<img>`` per rendered page.
        """
        pdf_bytes = self._validate_data(data)
        req = self._build_request(request, options)

        document = HtmlPageDocument()

        def add_page(index: int, encoded: bytes) -> None:
            document.add_page(encoded, req.mime_type)

        self._convert(pdf_bytes, req, add_page, progress_callback)
        return minify_or_original(document.render(), self.minifier)

    def to_images(
        self,
        data: Optional[bytes],
        request: Optional[ConversionRequest] = None,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        **options,
    ) -> list[ImageResult]:
        """
        Rasterize every page into its own encoded image.

        Returns:
            One ImageResult per rendered page, in page order, named
            ``{base_name or "doc"}_page-NNN.{ext}``.
        """
        pdf_bytes = self._validate_data(data)
        req = self._build_request(request, options)

        results: list[ImageResult] = []

        def add_page(index: int, encoded: bytes) -> None:
            results.append(ImageResult(
                data=encoded,
                mime=req.mime_type,
                suggested_file_name=req.file_name_for(index),
                page_number=index + 1,
            ))

        self._convert(pdf_bytes, req, add_page, progress_callback)
        return results

    def inspect(self, data: Optional[bytes], dpi: Optional[int] = None) -> list[PageInfo]:
        """Page sizes and projected pixel sizes, without rendering."""
        pdf_bytes = self._validate_data(data)
        req = self._build_request(None, {"dpi": dpi} if dpi is not None else {})

        pages: list[PageInfo] = []
        with self.guard.session() as backend:
            with backend.open_document(pdf_bytes) as document:
                for index in range(document.page_count):
                    page = document.load_page(index)
                    if page is None:
                        continue
                    with page:
                        width_px, height_px = pixel_size(page.width_pt, page.height_pt, req.dpi)
                        pages.append(PageInfo(
                            page_number=index + 1,
                            width_pt=page.width_pt,
                            height_pt=page.height_pt,
                            width_px=width_px,
                            height_px=height_px,
                        ))
        return pages

    # ─── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _validate_data(data) -> bytes:
        if data is None:
            raise InvalidArgumentError()
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError(
                f"PDF bytes must be bytes-like, got {type(data).__name__}"
            )
        pdf_bytes = bytes(data)
        if not pdf_bytes:
            raise InvalidArgumentError()
        return pdf_bytes

    def _build_request(
        self,
        request: Optional[ConversionRequest],
        options: dict,
    ) -> ConversionRequest:
        unknown = set(options) - set(ConversionRequest.model_fields)
        if unknown:
            raise InvalidArgumentError(f"Unknown conversion options: {sorted(unknown)}")

        if request is not None:
            values = request.model_dump()
        else:
            values = {
                "dpi": self.config.dpi,
                "quality": self.config.quality,
                "image_format": self.config.image_format,
                "grayscale": self.config.grayscale,
            }
        values.update(options)

        try:
            return ConversionRequest(**values)
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid conversion request: {e}") from e

    def _convert(
        self,
        pdf_bytes: bytes,
        request: ConversionRequest,
        on_page: Callable[[int, bytes], None],
        progress_callback: Optional[ProgressCallback],
    ) -> int:
        """Run the per-page pipeline; returns the number of pages produced."""
        start_time = time.time()
        produced = 0

        with self.guard.session() as backend:
            with backend.open_document(pdf_bytes) as document:
                total_pages = document.page_count
                logger.info(
                    f"Converting {total_pages} page(s) at {request.dpi} dpi "
                    f"to {request.extension} (grayscale={request.grayscale})"
                )
                rasterizer = PageRasterizer(backend)

                for index in range(total_pages):
                    with rasterizer.rasterize(
                        document, index, request.dpi, request.grayscale
                    ) as buffer:
                        if buffer is not None:
                            encoded = encode_pixels(buffer, request.image_format, request.quality)
                            on_page(index, encoded)
                            produced += 1

                    if progress_callback:
                        progress_callback(index + 1, total_pages)

        elapsed = time.time() - start_time
        logger.info(f"Conversion complete in {elapsed:.2f}s, {produced} page(s) rendered")
        return produced


# ─── Module-level Shortcuts ───────────────────────────────────────────────────

_default_converter: Optional[DocumentConverter] = None
_default_converter_lock = threading.Lock()


def _get_default_converter() -> DocumentConverter:
    global _default_converter
    with _default_converter_lock:
        if _default_converter is None:
            _default_converter = DocumentConverter(ConverterConfig.from_env())
        return _default_converter


def _given(**options) -> dict:
    # Omitted options fall back to the converter's (environment) config.
    return {key: value for key, value in options.items() if value is not None}


def to_html(
    data: Optional[bytes],
    dpi: Optional[int] = None,
    quality: Optional[int] = None,
    image_format: Union[ImageFormat, str, None] = None,
    grayscale: Optional[bool] = None,
) -> str:
    """
    Rasterize ``data`` into a single self-contained HTML document.

    Options left as None use the PDFRASTER_* environment defaults
    (dpi 144, quality 100, webp, color when unset).
    """
    return _get_default_converter().to_html(
        data,
        **_given(dpi=dpi, quality=quality, image_format=image_format, grayscale=grayscale),
    )


def to_images(
    data: Optional[bytes],
    dpi: Optional[int] = None,
    quality: Optional[int] = None,
    image_format: Union[ImageFormat, str, None] = None,
    grayscale: Optional[bool] = None,
    base_name: Optional[str] = None,
) -> list[ImageResult]:
    """Rasterize ``data`` into one encoded image per page."""
    return _get_default_converter().to_images(
        data,
        **_given(
            dpi=dpi,
            quality=quality,
            image_format=image_format,
            grayscale=grayscale,
            base_name=base_name,
        ),
    )
