"""
Viewer Session
==============
Host-facing facade that wires the loader, viewport, render scheduler,
annotation layer and persistence gateway together.

Usage:
    with ViewerSession(config) as session:
        session.initialize("https://example.com/doc.pdf")
        session.navigate("next")
        session.zoom("in")
        session.active_tool = Tool.ADD_TEXT
        session.add_annotation_at(120, 80)
        session.save()

Data flow:
    initialize → Document → ViewportController.reset → RenderScheduler
    navigate/zoom/rotate → one render request per state change
    add_annotation_at → AnnotationLayer (page-local coordinates)
    save → PersistenceGateway
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .annotations import AnnotationLayer
from .config import ViewerConfig, get_config
from .document import Document
from .errors import LoadError, RenderError, ValidationError
from .loader import DocumentLoader, LoadSource
from .models import (
    Annotation,
    AnnotationOverlay,
    AnnotationSnapshot,
    RenderOutcome,
    Tool,
    ViewportState,
)
from .persistence import (
    HttpPersistenceGateway,
    JsonFilePersistenceGateway,
    PersistenceGateway,
)
from .renderer import PageRenderer
from .scheduler import RenderScheduler
from .viewport import ViewportController

logger = logging.getLogger(__name__)

_LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def default_gateway(config: ViewerConfig) -> PersistenceGateway:
    """Remote gateway when a URL is configured, JSON files otherwise."""
    if config.gateway_url:
        return HttpPersistenceGateway(config.gateway_url, timeout=config.gateway_timeout)
    return JsonFilePersistenceGateway(config.storage_dir)


class ViewerSession:
    """
    One open viewer: a document, its viewport and its annotations.

    The session exclusively owns its Document and releases it on
    `close()` or when `initialize()` replaces it.
    """

    def __init__(
        self,
        config: Optional[ViewerConfig] = None,
        gateway: Optional[PersistenceGateway] = None,
        loader: Optional[DocumentLoader] = None,
        renderer: Optional[PageRenderer] = None,
    ):
        self.config = config or get_config()
        self._setup_logging()

        self.gateway = gateway or default_gateway(self.config)
        self.loader = loader or DocumentLoader(self.config)
        self.renderer = renderer or PageRenderer()
        self.scheduler = RenderScheduler(self.renderer, on_publish=self._on_render)
        self.viewport = ViewportController(0, self.config, on_change=self._request_render)
        self.annotations = AnnotationLayer(
            default_text=self.config.default_text,
            default_font_size=self.config.default_font_size,
            default_color=self.config.default_color,
        )

        self.document: Optional[Document] = None
        self.source_ref: Optional[LoadSource] = None
        self.active_tool: Optional[Tool] = None
        self.last_error: Optional[Exception] = None

    def _setup_logging(self):
        """Configure the package logger based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("pdfviewer")
        package_logger.setLevel(log_level)

        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
            package_logger.addHandler(console)

        if self.config.log_file:
            log_path = Path(self.config.log_file)
            already = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path.absolute()
                for h in package_logger.handlers
            )
            if not already:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
                package_logger.addHandler(file_handler)

    # ─── Lifecycle ────────────────────────────────────────────────────────

    @property
    def document_id(self) -> Optional[str]:
        return self.document.document_id if self.document else None

    @property
    def state(self) -> ViewportState:
        return self.viewport.state

    @property
    def current(self) -> Optional[RenderOutcome]:
        return self.scheduler.current

    @property
    def current_surface(self):
        outcome = self.scheduler.current
        return outcome.surface if outcome else None

    def initialize(self, source_ref: LoadSource) -> Document:
        """
        Open a new document, replacing any current one.

        The previous document is released and its annotations are
        discarded. On failure the session keeps no document and the
        error is recorded in `last_error` and re-raised; `reload()`
        retries the same source.
        """
        self.source_ref = source_ref
        self._drop_document()
        self.annotations.clear()
        return self._open(source_ref)

    def reload(self) -> Document:
        """
        Re-open the current source, keeping annotations.

        Annotations anchored past the new page count are flagged orphaned.
        """
        if self.source_ref is None:
            raise ValidationError("Nothing to reload: no source was initialized")
        self._drop_document()
        document = self._open(self.source_ref)
        self.annotations.reconcile(document.page_count)
        return document

    def close(self):
        self._drop_document()
        self.scheduler.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ─── Viewport commands ────────────────────────────────────────────────

    def navigate(self, command: str, page=None) -> ViewportState:
        self._require_document()
        return self.viewport.navigate(command, page)

    def zoom(self, command: str, scale=None, box=None) -> ViewportState:
        document = self._require_document()
        page_size = None
        if box is not None:
            page_size = document.get_page(self.state.current_page).size
        return self.viewport.zoom(command, scale=scale, page_size=page_size, box=box)

    def rotate(self, angle) -> ViewportState:
        self._require_document()
        return self.viewport.set_rotation(angle)

    def wait_for_render(self, timeout: Optional[float] = None) -> Optional[RenderOutcome]:
        """Block until pending renders finish; return the displayed outcome."""
        self.scheduler.wait_idle(timeout)
        return self.scheduler.current

    # ─── Annotation commands ──────────────────────────────────────────────

    def add_annotation_at(self, x: float, y: float, text: Optional[str] = None) -> Optional[Annotation]:
        """
        Handle a click on the current page at surface coordinates (x, y).

        Only creates an annotation while the add-text tool is active.
        """
        self._require_document()
        if self.active_tool != Tool.ADD_TEXT:
            logger.debug(f"Click at ({x}, {y}) ignored: no annotation tool active")
            return None
        state = self.state
        return self.annotations.add_annotation(x, y, state.current_page, state, text=text)

    def update_annotation_text(self, annotation_id: str, text: str):
        self.annotations.update_annotation_text(annotation_id, text)

    def remove_annotation(self, annotation_id: str):
        self.annotations.remove_annotation(annotation_id)

    def overlay(self) -> list[AnnotationOverlay]:
        self._require_document()
        return self.annotations.overlay(self.state)

    def save(self) -> AnnotationSnapshot:
        """
        Push the annotation collection through the gateway.

        Raises PersistenceError on failure; the in-memory collection is
        left exactly as it was.
        """
        document = self._require_document()
        return self.gateway.save(document.document_id, self.annotations.annotations())

    # ─── Internals ────────────────────────────────────────────────────────

    def _open(self, source_ref: LoadSource) -> Document:
        try:
            document = self.loader.load(source_ref)
        except LoadError as e:
            self.last_error = e
            self.viewport.reset(0)
            logger.error(f"Failed to load PDF: {e}")
            raise

        self.document = document
        self.last_error = None
        self.annotations.bind(document.page_count, lambda p: document.get_page(p).size)
        self.viewport.reset(document.page_count)
        return document

    def _drop_document(self):
        if self.document is None:
            return
        self.scheduler.invalidate()
        self.scheduler.wait_idle(timeout=self.config.load_timeout)
        self.document.release()
        self.document = None

    def _require_document(self) -> Document:
        if self.document is None:
            raise ValidationError("No document loaded")
        return self.document

    def _request_render(self, state: ViewportState):
        if self.document is not None:
            self.scheduler.submit(state, self.document)

    def _on_render(self, outcome: RenderOutcome):
        if outcome.error is not None:
            self.last_error = outcome.error
        elif isinstance(self.last_error, RenderError):
            self.last_error = None
