"""
Exceptions
==========
Error kinds raised by the rasterization pipeline.

Only InvalidArgumentError, DocumentOpenError and BufferAllocationError
stop a conversion. MinificationError is absorbed by the converter, which
falls back to the unminified markup.
"""

from __future__ import annotations


class PdfRasterError(Exception):
    """Base exception for all pdfraster errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown rasterization error occurred."


class InvalidArgumentError(PdfRasterError, ValueError):
    """Raised when the input bytes are missing or a request field is invalid."""

    @property
    def default_message(self) -> str:
        return "PDF bytes must be a non-empty byte sequence."


class DocumentOpenError(PdfRasterError, RuntimeError):
    """Raised when the backend cannot parse the supplied bytes."""

    @property
    def default_message(self) -> str:
        return "Cannot open PDF. Make sure the file is valid (and not password-protected)."


class BufferAllocationError(PdfRasterError, RuntimeError):
    """Raised when a page's pixel buffer cannot be created."""

    @property
    def default_message(self) -> str:
        return "Failed to create bitmap."


class MinificationError(PdfRasterError):
    """Raised by a minifier that could not process the markup."""

    @property
    def default_message(self) -> str:
        return "HTML minification failed."
