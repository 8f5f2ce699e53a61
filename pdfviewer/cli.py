"""
CLI Interface
=============
Command-line tooling for the viewer core.

Usage:
    python -m pdfviewer info <source>
    python -m pdfviewer render <source> -p 2 -s 1.5 -r 90 -o page.png
    python -m pdfviewer annotate <source> -p 1 --at 120 80 --text "Draft"
    python -m pdfviewer serve [--host H] [--port P]
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import ViewerConfig
from .errors import NotFoundError, ViewerError
from .loader import DocumentLoader, is_url
from .models import Tool
from .persistence import JsonFilePersistenceGateway
from .renderer import PageRenderer
from .session import ViewerSession

console = Console()

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"])


def _fail(e: Exception, log_level: str = "INFO"):
    console.print(f"[red]Error:[/] {e}")
    if log_level == "DEBUG":
        console.print_exception()
    sys.exit(1)


def _source_label(source: str) -> str:
    return source if is_url(source) else os.path.basename(source)


@click.group()
@click.version_option(version=__version__, prog_name="pdfviewer")
def cli():
    """PDF Viewer Core — page rendering and text annotation tooling."""
    pass


@cli.command()
@click.argument("source")
@click.option("--timeout", default=30.0, type=float, help="Load timeout in seconds")
def info(source: str, timeout: float):
    """Display page count and page geometry of a PDF (path or URL)."""
    config = ViewerConfig.from_env(load_timeout=timeout, log_level="WARNING")
    try:
        with DocumentLoader(config).load(source) as document:
            table = Table(title="PDF Information", border_style="cyan")
            table.add_column("Property", style="bold")
            table.add_column("Value")

            table.add_row("Source", _source_label(source))
            table.add_row("Document ID", document.document_id[:16] + "...")
            table.add_row("Pages", str(document.page_count))

            metadata = document.metadata
            for key in ["title", "author", "subject", "creator", "producer"]:
                val = metadata.get(key, "")
                if val:
                    table.add_row(key.title(), val)

            console.print()
            console.print(table)

            pages = Table(title="Page Geometry (scale 1.0)", border_style="green")
            pages.add_column("Page", justify="right")
            pages.add_column("Width (pt)", justify="right")
            pages.add_column("Height (pt)", justify="right")
            pages.add_column("Aspect", justify="right")
            for index in range(1, document.page_count + 1):
                page = document.get_page(index)
                pages.add_row(
                    str(index),
                    f"{page.width:.1f}",
                    f"{page.height:.1f}",
                    f"{page.width / page.height:.3f}" if page.height else "-",
                )
            console.print(pages)
            console.print()
    except ViewerError as e:
        _fail(e)


@cli.command()
@click.argument("source")
@click.option("--page", "-p", default=1, type=int, help="Page number (1-indexed)")
@click.option("--scale", "-s", default=1.0, type=float, help="Zoom factor")
@click.option(
    "--rotation", "-r",
    default="0",
    type=click.Choice(["0", "90", "180", "270"]),
    help="Clockwise rotation",
)
@click.option("--output", "-o", default=None, help="Output PNG path")
@click.option("--log-level", default="WARNING", type=LOG_LEVELS, help="Logging level")
def render(source: str, page: int, scale: float, rotation: str, output: str, log_level: str):
    """Render one page of a PDF to PNG."""
    config = ViewerConfig.from_env(log_level=log_level)
    output = output or f"{Path(_source_label(source)).stem or 'page'}_p{page}.png"
    try:
        with DocumentLoader(config).load(source) as document:
            surface = PageRenderer().render_page(document, page, scale, int(rotation))
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_bytes(surface.to_png())
    except ViewerError as e:
        _fail(e, log_level)

    console.print(
        f"[green]✓[/] Page {page} → [bold]{output}[/] "
        f"({surface.width}x{surface.height}px, digest {surface.digest()[:12]})"
    )


@cli.command()
@click.argument("source")
@click.option("--page", "-p", default=1, type=int, help="Page to annotate")
@click.option("--at", "at", nargs=2, type=float, required=True, help="Screen X Y")
@click.option("--text", "-t", default="Draft", help="Annotation text")
@click.option("--scale", "-s", default=1.0, type=float, help="Viewport scale of X/Y")
@click.option("--storage-dir", default=None, help="Annotation store directory")
@click.option("--log-level", default="WARNING", type=LOG_LEVELS, help="Logging level")
def annotate(source: str, page: int, at, text: str, scale: float, storage_dir: str, log_level: str):
    """Add a text annotation and save it to the JSON annotation store."""
    config = ViewerConfig.from_env(storage_dir=storage_dir, log_level=log_level)
    gateway = JsonFilePersistenceGateway(config.storage_dir)

    try:
        with ViewerSession(config, gateway=gateway) as session:
            session.initialize(source)
            try:
                previous = gateway.load(session.document_id)
            except NotFoundError:
                previous = None
            session.navigate("page", page)
            session.zoom("set", scale=scale)
            if previous:
                session.annotations.restore(previous.annotations)
            session.active_tool = Tool.ADD_TEXT
            annotation = session.add_annotation_at(at[0], at[1], text=text)
            snapshot = session.save()
    except ViewerError as e:
        _fail(e, log_level)

    table = Table(title="Annotation Saved", border_style="green")
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("ID", annotation.id)
    table.add_row("Page", str(annotation.page))
    table.add_row("Page-local X/Y", f"{annotation.x:.1f}, {annotation.y:.1f}")
    table.add_row("Text", annotation.text)
    table.add_row("Total on document", str(snapshot.annotation_count))
    table.add_row("Store", str(gateway.path_for(snapshot.document_id)))
    console.print()
    console.print(table)
    console.print()


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP viewer service."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]PDF Viewer Service v{__version__}[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


# ─── Entry point (for python -m pdfviewer.cli) ────────────────────────────────


if __name__ == "__main__":
    cli()
