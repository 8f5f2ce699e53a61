"""
Annotation Layer
================
Page-anchored text annotations and the screen ↔ page transform.

Annotations are stored in page-local coordinates: points at scale 1,
before display rotation. Screen coordinates are relative to the
top-left corner of the rendered raster surface.

    forward (page → screen), page size W×H, then × scale:
        0°    (x, y)
        90°   (H - y, x)
        180°  (W - x, H - y)
        270°  (y, W - x)

The collection is owned by the layer; callers only ever receive
copies, so the public methods are the only way to mutate it.
Unknown ids raise NotFoundError.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .errors import NotFoundError, ValidationError
from .models import Annotation, AnnotationOverlay, Rotation, ViewportState

logger = logging.getLogger(__name__)

# page number → (width, height) in points at scale 1
PageSizeLookup = Callable[[int], tuple[float, float]]


def screen_to_page(
    screen_x: float,
    screen_y: float,
    scale: float,
    rotation: Rotation,
    page_size: tuple[float, float],
) -> tuple[float, float]:
    """Invert the display transform for one point."""
    width, height = page_size
    u, v = screen_x / scale, screen_y / scale
    if rotation == Rotation.DEG_90:
        return v, height - u
    if rotation == Rotation.DEG_180:
        return width - u, height - v
    if rotation == Rotation.DEG_270:
        return width - v, u
    return u, v


def page_to_screen(
    x: float,
    y: float,
    scale: float,
    rotation: Rotation,
    page_size: tuple[float, float],
) -> tuple[float, float]:
    """Apply the display transform to one page-local point."""
    width, height = page_size
    if rotation == Rotation.DEG_90:
        u, v = height - y, x
    elif rotation == Rotation.DEG_180:
        u, v = width - x, height - y
    elif rotation == Rotation.DEG_270:
        u, v = y, width - x
    else:
        u, v = x, y
    return u * scale, v * scale


class AnnotationLayer:
    """
    In-memory annotation collection for one document.

    Insertion order is preserved; many annotations per page are allowed.
    """

    def __init__(
        self,
        page_count: int = 0,
        page_size: Optional[PageSizeLookup] = None,
        default_text: str = "Click to edit",
        default_font_size: float = 16.0,
        default_color: str = "#000000",
    ):
        self._annotations: dict[str, Annotation] = {}
        self.page_count = page_count
        self._page_size = page_size
        self.default_text = default_text
        self.default_font_size = default_font_size
        self.default_color = default_color

    def bind(self, page_count: int, page_size: PageSizeLookup):
        """Attach the layer to a (re)loaded document's geometry."""
        self.page_count = page_count
        self._page_size = page_size

    def __len__(self) -> int:
        return len(self._annotations)

    def __contains__(self, annotation_id: str) -> bool:
        return annotation_id in self._annotations

    # ─── Creation & mutation ──────────────────────────────────────────────

    def add_annotation(
        self,
        screen_x: float,
        screen_y: float,
        page: int,
        viewport: ViewportState,
        text: Optional[str] = None,
        font_size: Optional[float] = None,
        color: Optional[str] = None,
    ) -> Annotation:
        """
        Place a new annotation at a screen point on `page`.

        The point is converted to page-local space under the viewport's
        scale and rotation, so the annotation follows that document
        location through later zoom and rotation changes.
        """
        self._check_page(page)
        x, y = screen_to_page(
            screen_x, screen_y, viewport.scale, viewport.rotation, self._size_of(page)
        )
        try:
            annotation = Annotation(
                page=page,
                x=x,
                y=y,
                text=self.default_text if text is None else text,
                font_size=self.default_font_size if font_size is None else font_size,
                color=self.default_color if color is None else color,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid annotation: {e}") from e
        self._annotations[annotation.id] = annotation
        logger.info(
            f"Added annotation {annotation.id[:8]} on page {page} at ({x:.1f}, {y:.1f})"
        )
        return annotation.model_copy()

    def update_annotation_text(self, annotation_id: str, text: str):
        if not isinstance(text, str):
            raise ValidationError(f"Annotation text must be a string (got {type(text).__name__})")
        self._require(annotation_id).text = text

    def update_annotation_style(
        self,
        annotation_id: str,
        font_size: Optional[float] = None,
        color: Optional[str] = None,
    ) -> Annotation:
        current = self._require(annotation_id)
        changes = {}
        if font_size is not None:
            changes["font_size"] = font_size
        if color is not None:
            changes["color"] = color
        try:
            updated = Annotation.model_validate({**current.model_dump(), **changes})
        except ValueError as e:
            raise ValidationError(f"Invalid annotation style: {e}") from e
        self._annotations[annotation_id] = updated
        return updated.model_copy()

    def move_annotation(
        self,
        annotation_id: str,
        screen_x: float,
        screen_y: float,
        viewport: ViewportState,
    ) -> Annotation:
        """Drag an annotation to a new screen point on its own page."""
        annotation = self._require(annotation_id)
        annotation.x, annotation.y = screen_to_page(
            screen_x,
            screen_y,
            viewport.scale,
            viewport.rotation,
            self._size_of(annotation.page),
        )
        return annotation.model_copy()

    def remove_annotation(self, annotation_id: str):
        self._require(annotation_id)
        del self._annotations[annotation_id]
        logger.info(f"Removed annotation {annotation_id[:8]}")

    def restore(self, annotations: list[Annotation]) -> int:
        """Re-insert previously saved annotations, keeping their ids."""
        for annotation in annotations:
            restored = annotation.model_copy()
            restored.orphaned = restored.page > self.page_count
            self._annotations[restored.id] = restored
        logger.info(f"Restored {len(annotations)} annotation(s)")
        return len(annotations)

    def clear(self) -> int:
        """Discard the whole collection (document replaced)."""
        count = len(self._annotations)
        self._annotations.clear()
        if count:
            logger.info(f"Discarded {count} annotations")
        return count

    def reconcile(self, page_count: int) -> list[str]:
        """
        Re-check page anchors after a reload of the same document.

        Annotations beyond the new page count are kept but flagged
        orphaned; ones back in range lose the flag. Returns the ids of
        orphaned annotations.
        """
        self.page_count = page_count
        orphaned = []
        for annotation in self._annotations.values():
            annotation.orphaned = annotation.page > page_count
            if annotation.orphaned:
                orphaned.append(annotation.id)
        if orphaned:
            logger.warning(
                f"{len(orphaned)} annotation(s) reference pages beyond {page_count}; "
                f"flagged as orphaned"
            )
        return orphaned

    # ─── Queries ──────────────────────────────────────────────────────────

    def get(self, annotation_id: str) -> Annotation:
        return self._require(annotation_id).model_copy()

    def annotations(self) -> list[Annotation]:
        """Every annotation, orphaned included, in insertion order."""
        return [a.model_copy() for a in self._annotations.values()]

    def orphaned(self) -> list[Annotation]:
        return [a.model_copy() for a in self._annotations.values() if a.orphaned]

    def get_annotations_for_page(self, page: int) -> tuple[Annotation, ...]:
        """Annotations anchored to `page`, insertion order, orphans excluded."""
        return tuple(
            a.model_copy()
            for a in self._annotations.values()
            if a.page == page and not a.orphaned
        )

    def to_screen(self, annotation: Annotation, viewport: ViewportState) -> tuple[float, float]:
        return page_to_screen(
            annotation.x,
            annotation.y,
            viewport.scale,
            viewport.rotation,
            self._size_of(annotation.page),
        )

    def overlay(self, viewport: ViewportState) -> list[AnnotationOverlay]:
        """Positioned overlay items for the page the viewport shows."""
        items = []
        for annotation in self.get_annotations_for_page(viewport.current_page):
            left, top = self.to_screen(annotation, viewport)
            items.append(AnnotationOverlay(
                id=annotation.id,
                text=annotation.text,
                left=left,
                top=top,
                font_size=annotation.font_size * viewport.scale,
                color=annotation.color,
            ))
        return items

    # ─── Helpers ──────────────────────────────────────────────────────────

    def _require(self, annotation_id: str) -> Annotation:
        annotation = self._annotations.get(annotation_id)
        if annotation is None:
            raise NotFoundError(f"Annotation not found: {annotation_id}")
        return annotation

    def _check_page(self, page):
        if isinstance(page, bool) or not isinstance(page, int):
            raise ValidationError(f"Page must be an integer (got {page!r})")
        if not 1 <= page <= self.page_count:
            raise ValidationError(f"Page {page} outside 1..{self.page_count}")

    def _size_of(self, page: int) -> tuple[float, float]:
        if self._page_size is None:
            raise ValidationError("Annotation layer is not bound to a document")
        return self._page_size(page)
