"""
CLI Interface
=============
Command-line interface for the PDF rasterizer.

Usage:
    python -m pdfraster html <pdf_path> [-o out.html] [options]
    python -m pdfraster images <pdf_path> [-o out_dir] [options]
    python -m pdfraster info <pdf_path> [--dpi N]
    python -m pdfraster serve [--host H] [--port P]
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from .engine import ConverterConfig, DocumentConverter
from .exceptions import PdfRasterError

console = Console()


def _conversion_options(func):
    """Options shared by the html and images commands."""
    options = [
        click.option("--dpi", default=None, type=int, help="Target rasterization DPI [default: 144]"),
        click.option("--quality", "-q", default=None, type=int, help="Encoder quality 1-100 [default: 100]"),
        click.option(
            "--format", "-f", "image_format",
            default=None,
            type=click.Choice(["png", "webp", "jpeg", "jpg"], case_sensitive=False),
            help="Image format per page [default: webp]",
        ),
        click.option("--grayscale", is_flag=True, default=False, help="Render pages in 8-bit grayscale"),
        click.option(
            "--log-level",
            default="WARNING",
            type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
            help="Logging level",
        ),
        click.option("--log-file", default=None, help="Path to log file"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _make_converter(log_level: str, log_file: str | None) -> DocumentConverter:
    config = ConverterConfig.from_env()
    config.log_level = log_level
    config.log_file = log_file or config.log_file
    return DocumentConverter(config)


def _request_options(dpi, quality, image_format, grayscale) -> dict:
    """Only pass options the user actually set, so env defaults apply otherwise."""
    options = {
        "dpi": dpi,
        "quality": quality,
        "image_format": image_format,
        "grayscale": grayscale or None,
    }
    return {k: v for k, v in options.items() if v is not None}


def _run_with_progress(description: str, func):
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=None)

        def on_page(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        return func(on_page)


def _fail(message: str):
    console.print(f"[red]Error:[/] {message}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="pdfraster")
def cli():
    """PDF Rasterizer: render PDF pages to images or inline-image HTML."""
    pass


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", default=None, help="Output HTML file [default: <pdf>.html]")
@_conversion_options
def html(pdf_path, output, dpi, quality, image_format, grayscale, log_level, log_file):
    """Convert a PDF into one self-contained HTML document."""
    output_path = Path(output) if output else Path(pdf_path).with_suffix(".html")
    converter = _make_converter(log_level, log_file)
    data = Path(pdf_path).read_bytes()
    options = _request_options(dpi, quality, image_format, grayscale)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]PDF Rasterizer v{__version__}[/]\n"
            f"[dim]HTML: {os.path.basename(pdf_path)} → {output_path}[/]",
            border_style="cyan",
        )
    )

    try:
        markup = _run_with_progress(
            "Rendering pages...",
            lambda cb: converter.to_html(data, progress_callback=cb, **options),
        )
    except PdfRasterError as e:
        _fail(e.message)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(markup, encoding="utf-8")
    console.print(
        f"[green]✓[/] Wrote {output_path} "
        f"[dim]({len(markup.encode('utf-8')) / 1024:.1f} KB)[/]"
    )


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", default=None, help="Output directory [default: <pdf>_pages]")
@click.option("--base-name", "-n", default=None, help="File name prefix [default: doc]")
@_conversion_options
def images(pdf_path, output, base_name, dpi, quality, image_format, grayscale, log_level, log_file):
    """Convert a PDF into one image file per page."""
    pdf = Path(pdf_path)
    output_dir = Path(output) if output else pdf.with_name(f"{pdf.stem}_pages")
    converter = _make_converter(log_level, log_file)
    data = pdf.read_bytes()
    options = _request_options(dpi, quality, image_format, grayscale)
    if base_name is not None:
        options["base_name"] = base_name

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]PDF Rasterizer v{__version__}[/]\n"
            f"[dim]Images: {pdf.name} → {output_dir}/[/]",
            border_style="cyan",
        )
    )

    try:
        results = _run_with_progress(
            "Rendering pages...",
            lambda cb: converter.to_images(data, progress_callback=cb, **options),
        )
    except PdfRasterError as e:
        _fail(e.message)

    output_dir.mkdir(parents=True, exist_ok=True)
    table = Table(title="Rendered Pages", border_style="cyan")
    table.add_column("Page", justify="right")
    table.add_column("File", style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")

    for result in results:
        (output_dir / result.suggested_file_name).write_bytes(result.data)
        table.add_row(
            str(result.page_number),
            result.suggested_file_name,
            result.mime,
            f"{len(result.data) / 1024:.1f} KB",
        )

    console.print(table)
    console.print(f"[green]✓[/] Wrote {len(results)} image(s) to {output_dir}")


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--dpi", default=144, type=int, help="DPI used for projected pixel sizes")
def info(pdf_path: str, dpi: int):
    """Display page sizes and their raster dimensions at a DPI."""
    converter = _make_converter("WARNING", None)
    try:
        pages = converter.inspect(Path(pdf_path).read_bytes(), dpi=dpi)
    except PdfRasterError as e:
        _fail(e.message)

    console.print()
    table = Table(title=f"PDF Information: {os.path.basename(pdf_path)}", border_style="cyan")
    table.add_column("Page", justify="right", style="bold")
    table.add_column("Size (pt)", justify="right")
    table.add_column(f"Pixels @ {dpi} dpi", justify="right")

    for page in pages:
        table.add_row(
            str(page.page_number),
            f"{page.width_pt:.1f} × {page.height_pt:.1f}",
            f"{page.width_px} × {page.height_px}",
        )

    console.print(table)
    console.print(
        f"[dim]File size: {os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB | "
        f"Loadable pages: {len(pages)}[/]"
    )
    console.print()


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP conversion service."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]PDF Rasterizer Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


if __name__ == "__main__":
    cli()
