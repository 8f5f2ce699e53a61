"""Shared fixtures: in-memory PDFs and isolated viewer configuration."""

from __future__ import annotations

import fitz  # PyMuPDF
import pytest

from pdfviewer import config as viewer_config
from pdfviewer.config import ViewerConfig


def build_pdf(page_sizes) -> bytes:
    """Build a PDF with one labelled, partly filled page per size."""
    doc = fitz.open()
    for number, (width, height) in enumerate(page_sizes, start=1):
        page = doc.new_page(width=width, height=height)
        page.insert_text((width * 0.1, height * 0.1), f"Page {number}", fontsize=12)
        page.draw_rect(
            fitz.Rect(width * 0.1, height * 0.2, width * 0.5, height * 0.4),
            color=(1, 0, 0),
            fill=(0, 0, 1),
        )
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf():
    def _make(pages: int = 5, size=(612, 792), sizes=None) -> bytes:
        return build_pdf(sizes or [size] * pages)
    return _make


@pytest.fixture
def five_page_pdf(make_pdf) -> bytes:
    return make_pdf(5)


@pytest.fixture
def config(tmp_path) -> ViewerConfig:
    return ViewerConfig(
        initial_scale=1.0,
        load_timeout=10.0,
        storage_dir=str(tmp_path / "annotations"),
        log_level="WARNING",
    )


@pytest.fixture(autouse=True)
def isolated_config():
    viewer_config.reset_config()
    yield
    viewer_config.reset_config()
