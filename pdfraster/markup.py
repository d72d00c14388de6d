"""
HTML Assembly
=============
Builds the self-contained HTML document (one inline <img> per page) and
minifies it with minify-html.

Minification is best effort: on any minifier error the unminified
markup is returned.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional, Protocol

import minify_html

from .exceptions import MinificationError

logger = logging.getLogger(__name__)

HTML_HEAD = (
    "<!doctype html><html><head><meta charset='utf-8'/>"
    "<meta name='viewport' content='width=device-width,initial-scale=1'/>"
    "<style>body{margin:0;padding:0}"
    "img.page{display:block;max-width:100%;height:auto;margin:0 auto}</style>"
    "</head><body>"
)
HTML_TAIL = "</body></html>"


class Minifier(Protocol):
    def minify(self, html: str) -> str:
        """Return equivalent, smaller markup or raise MinificationError."""


class HtmlMinifier:
    """Aggressive whitespace and CSS minification; scripts left as-is."""

    def minify(self, html: str) -> str:
        try:
            result = minify_html.minify(
                html,
                minify_css=True,
                minify_js=False,
                keep_closing_tags=True,
            )
        except Exception as e:
            raise MinificationError(f"HTML minification failed: {e}") from e
        if html and not result:
            raise MinificationError("HTML minifier returned empty output")
        return result


class HtmlPageDocument:
    """Accumulates page images into the fixed page-flow skeleton."""

    def __init__(self) -> None:
        self._parts: list[str] = [HTML_HEAD]
        self.image_count = 0

    def add_page(self, image_bytes: bytes, mime: str) -> None:
        payload = base64.b64encode(image_bytes).decode("ascii")
        self._parts.append(
            "<img class='page' loading='lazy' decoding='async' "
            f"src='data:{mime};base64,{payload}'/>"
        )
        self.image_count += 1

    def render(self) -> str:
        return "".join(self._parts) + HTML_TAIL


def minify_or_original(html: str, minifier: Optional[Minifier]) -> str:
    """Minify ``html``; fall back to the input when the minifier fails."""
    if minifier is None:
        return html
    try:
        return minifier.minify(html)
    except MinificationError as e:
        logger.warning(f"{e}; returning unminified HTML")
        return html
