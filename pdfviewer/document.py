"""
Document Handles
================
Decoder-neutral `Document` / `Page` interface plus the PyMuPDF (fitz)
implementation used in production.

A Document owns decoder resources until `release()` is called; it is
exclusively owned by one viewer session. PyMuPDF objects are not
thread-safe, so all decoder access goes through the document lock.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Union

import fitz  # PyMuPDF

from .errors import RenderError, RenderFailure
from .models import PageGeometry, RasterSurface, Rotation

logger = logging.getLogger(__name__)

SourceRef = Union[str, bytes]


class Page(ABC):
    """One page of a loaded document. Size is in points at scale 1."""

    def __init__(self, index: int, width: float, height: float):
        self.index = index
        self.width = width
        self.height = height

    @property
    def size(self) -> tuple[float, float]:
        return (self.width, self.height)

    def geometry(self, scale: float, rotation: Rotation = Rotation.DEG_0) -> PageGeometry:
        """Viewport geometry at scale/rotation; 90 and 270 swap the axes."""
        width, height = self.width * scale, self.height * scale
        if rotation.swaps_axes:
            width, height = height, width
        return PageGeometry(
            page=self.index,
            width_px=width,
            height_px=height,
            scale=scale,
            rotation=rotation,
        )

    @abstractmethod
    def render(self, scale: float, rotation: Rotation) -> RasterSurface:
        """Paint the page into a new raster surface."""


class Document(ABC):
    """An opened paged document. Page count is fixed for its lifetime."""

    def __init__(self, source_ref: SourceRef, document_id: str):
        self.source_ref = source_ref
        self.document_id = document_id

    @property
    @abstractmethod
    def page_count(self) -> int:
        ...

    @property
    @abstractmethod
    def released(self) -> bool:
        ...

    @abstractmethod
    def get_page(self, index: int) -> Page:
        """Return page `index` (1-indexed)."""

    @abstractmethod
    def release(self):
        """Free decoder resources. Safe to call more than once."""

    def check_page_index(self, index) -> int:
        if self.released:
            raise RenderError(
                "Document has been released", RenderFailure.RELEASED, page=None
            )
        if isinstance(index, bool) or not isinstance(index, int):
            raise RenderError(
                f"Page index must be an integer (got {index!r})",
                RenderFailure.OUT_OF_RANGE,
            )
        if not 1 <= index <= self.page_count:
            raise RenderError(
                f"Page {index} out of range 1..{self.page_count}",
                RenderFailure.OUT_OF_RANGE,
                page=index,
            )
        return index

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.document_id[:12]} "
            f"pages={self.page_count} released={self.released}>"
        )


# ─── PyMuPDF implementation ───────────────────────────────────────────────────


class PyMuPDFPage(Page):
    """Page backed by a fitz document; decoded on each render."""

    def __init__(self, document: "PyMuPDFDocument", index: int, width: float, height: float):
        super().__init__(index, width, height)
        self._document = document

    def render(self, scale: float, rotation: Rotation) -> RasterSurface:
        with self._document.lock:
            fitz_doc = self._document.fitz_document
            page = fitz_doc.load_page(self.index - 1)
            matrix = fitz.Matrix(scale, scale).prerotate(rotation.value)
            pix = page.get_pixmap(matrix=matrix, alpha=False)

            return RasterSurface(
                page=self.index,
                width=pix.width,
                height=pix.height,
                samples=bytes(pix.samples),
                stride=pix.stride,
                channels=pix.n,
                scale=scale,
                rotation=rotation,
            )


class PyMuPDFDocument(Document):
    """
    Document backed by `fitz.Document`.

    Only the page count is read at open time; page sizes are read and
    cached on first access.
    """

    def __init__(self, fitz_doc: fitz.Document, source_ref: SourceRef, document_id: str):
        super().__init__(source_ref, document_id)
        self._fitz = fitz_doc
        self._page_count = fitz_doc.page_count
        self._pages: dict[int, PyMuPDFPage] = {}
        self.lock = threading.RLock()

    @property
    def fitz_document(self) -> fitz.Document:
        if self._fitz is None:
            raise RenderError("Document has been released", RenderFailure.RELEASED)
        return self._fitz

    @property
    def page_count(self) -> int:
        return self._page_count

    @property
    def released(self) -> bool:
        return self._fitz is None

    @property
    def metadata(self) -> dict:
        with self.lock:
            return dict(self.fitz_document.metadata or {})

    def get_page(self, index: int) -> PyMuPDFPage:
        self.check_page_index(index)
        with self.lock:
            page = self._pages.get(index)
            if page is None:
                fitz_doc = self.fitz_document
                try:
                    rect = fitz_doc.load_page(index - 1).rect
                except Exception as e:
                    raise RenderError(
                        f"Cannot decode page {index}: {e}",
                        RenderFailure.CONTENT_ERROR,
                        page=index,
                    ) from e
                page = PyMuPDFPage(self, index, rect.width, rect.height)
                self._pages[index] = page
            return page

    def release(self):
        with self.lock:
            if self._fitz is None:
                return
            try:
                self._fitz.close()
            finally:
                self._fitz = None
                self._pages.clear()
        logger.debug(f"Released document {self.document_id[:12]}")
