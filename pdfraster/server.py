"""
HTTP Microservice
=================
Flask-based HTTP API for the PDF rasterizer.

Endpoints:
    POST   /api/convert/html     → PDF upload → self-contained HTML
    POST   /api/convert/images   → PDF upload → JSON list of base64 page images
    GET    /api/health           → Health check
    GET    /api/info             → Version and capability info

Both convert endpoints take a multipart ``file`` field plus optional form
fields ``dpi``, ``quality``, ``format``, ``grayscale`` and (images only)
``base_name``.
"""

from __future__ import annotations

import base64
import logging

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from . import __version__
from .engine import ConverterConfig, DocumentConverter
from .exceptions import BufferAllocationError, DocumentOpenError, InvalidArgumentError
from .models import ImageFormat

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)


def create_app(config: dict = None) -> Flask:
    """Create and configure the Flask app."""
    if config:
        app.config.update(config)

    app.config.setdefault("MAX_CONTENT_LENGTH", 200 * 1024 * 1024)  # 200MB
    if "CONVERTER" not in app.config:
        app.config["CONVERTER"] = DocumentConverter(ConverterConfig.from_env())

    return app


def _converter() -> DocumentConverter:
    converter = app.config.get("CONVERTER")
    if converter is None:
        converter = create_app().config["CONVERTER"]
    return converter


def _read_upload() -> bytes:
    if "file" not in request.files:
        raise InvalidArgumentError("Provide the PDF as a multipart 'file' field")
    return request.files["file"].read()


def _form_options(allow_base_name: bool = False) -> dict:
    """Conversion options from form fields; absent fields use config defaults."""
    form = request.form
    options: dict = {}
    try:
        if form.get("dpi"):
            options["dpi"] = int(form["dpi"])
        if form.get("quality"):
            options["quality"] = int(form["quality"])
    except ValueError as e:
        raise InvalidArgumentError(f"dpi and quality must be integers: {e}") from e
    if form.get("format"):
        options["image_format"] = form["format"]
    if form.get("grayscale"):
        options["grayscale"] = form["grayscale"].strip().lower() in ("1", "true", "yes", "on")
    if allow_base_name and form.get("base_name"):
        options["base_name"] = form["base_name"]
    return options


@app.errorhandler(InvalidArgumentError)
def _invalid_argument(e: InvalidArgumentError):
    return jsonify({"error": e.message}), 400


@app.errorhandler(DocumentOpenError)
def _document_open_failed(e: DocumentOpenError):
    return jsonify({"error": e.message}), 422


@app.errorhandler(BufferAllocationError)
def _buffer_allocation_failed(e: BufferAllocationError):
    logger.error(f"Conversion aborted: {e.message}")
    return jsonify({"error": e.message}), 500


# ─── Health / Info ────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    converter = _converter()
    return jsonify({
        "status": "healthy",
        "service": "pdfraster",
        "version": __version__,
        "backend_sessions": converter.guard.init_count,
    })


@app.route("/api/info", methods=["GET"])
def info():
    """Version and capability info."""
    converter = _converter()
    backend = converter.guard.backend
    return jsonify({
        "version": __version__,
        "engine": backend.name,
        "engine_version": backend.version(),
        "outputs": ["html", "images"],
        "image_formats": [f.value for f in ImageFormat],
        "defaults": {
            "dpi": converter.config.dpi,
            "quality": converter.config.quality,
            "format": converter.config.image_format,
            "grayscale": converter.config.grayscale,
        },
    })


# ─── Conversion Endpoints ─────────────────────────────────────────────────────


@app.route("/api/convert/html", methods=["POST"])
def convert_html():
    """Convert an uploaded PDF into one self-contained HTML document."""
    data = _read_upload()
    html = _converter().to_html(data, **_form_options())
    return Response(html, mimetype="text/html")


@app.route("/api/convert/images", methods=["POST"])
def convert_images():
    """Convert an uploaded PDF into one base64-encoded image per page."""
    data = _read_upload()
    results = _converter().to_images(data, **_form_options(allow_base_name=True))
    return jsonify({
        "count": len(results),
        "pages": [
            {
                "page_number": r.page_number,
                "file_name": r.suggested_file_name,
                "mime": r.mime,
                "data_base64": base64.b64encode(r.data).decode("ascii"),
            }
            for r in results
        ],
    })


def run_server(host: str = "0.0.0.0", port: int = 5000, debug: bool = False):
    """Run the Flask development server."""
    create_app()
    logger.info(f"Starting pdfraster service on {host}:{port}")
    app.run(host=host, port=port, debug=debug)
