"""
Page Renderer
=============
Rasterizes one page of a loaded document at a scale and rotation.

Rendering is CPU-bound and runs on the render scheduler's consumer
thread in interactive use. Output is deterministic: identical
arguments against the same document give pixel-identical surfaces.
"""

from __future__ import annotations

import logging
import time

from .document import Document
from .errors import RenderError, RenderFailure, ValidationError
from .models import PageGeometry, RasterSurface, Rotation, validate_scale

logger = logging.getLogger(__name__)


class PageRenderer:
    """
    Stateless rendering front-end over the Document/Page interface.

    Validates arguments, then translates any decoder failure into
    RenderError(content-error) so the host never sees a raw decoder
    exception.
    """

    def page_geometry(
        self,
        document: Document,
        page_index: int,
        scale: float,
        rotation=Rotation.DEG_0,
    ) -> PageGeometry:
        """Geometry of a page at scale/rotation without painting it."""
        scale = validate_scale(scale)
        rotation = Rotation.parse(rotation)
        document.check_page_index(page_index)
        return document.get_page(page_index).geometry(scale, rotation)

    def render_page(
        self,
        document: Document,
        page_index: int,
        scale: float,
        rotation=Rotation.DEG_0,
    ) -> RasterSurface:
        """
        Render a page.

        Args:
            document: Loaded, unreleased document.
            page_index: 1-indexed page number.
            scale: Zoom factor (> 0); 1.0 means 72 dpi.
            rotation: Clockwise 0/90/180/270.

        Raises:
            RenderError: out-of-range page, released document, or
                malformed page content.
            ValidationError: bad scale or rotation.
        """
        scale = validate_scale(scale)
        rotation = Rotation.parse(rotation)
        document.check_page_index(page_index)

        start = time.perf_counter()
        page = document.get_page(page_index)
        try:
            surface = page.render(scale, rotation)
        except (RenderError, ValidationError):
            raise
        except Exception as e:
            logger.warning(f"Page {page_index} failed to render: {e}")
            raise RenderError(
                f"Page {page_index} content could not be rendered: {e}",
                RenderFailure.CONTENT_ERROR,
                page=page_index,
            ) from e

        logger.debug(
            f"Rendered page {page_index} at scale={scale:.3f} "
            f"rotation={rotation.value} → {surface.width}x{surface.height}px "
            f"in {(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return surface
