"""
Data Models
===========
Pydantic models for viewer state, page geometry and annotations.
Annotation models serialize to JSON for the persistence gateway.
"""

from __future__ import annotations

import hashlib
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import fitz  # PyMuPDF
from pydantic import BaseModel, ConfigDict, Field, computed_field

from .errors import RenderError, ValidationError


# ─── Enums ────────────────────────────────────────────────────────────────────


class Rotation(int, Enum):
    """Clockwise display rotation in degrees."""
    DEG_0 = 0
    DEG_90 = 90
    DEG_180 = 180
    DEG_270 = 270

    @classmethod
    def parse(cls, value) -> "Rotation":
        """Strictly coerce a value to a Rotation; only 0/90/180/270 pass."""
        if isinstance(value, Rotation):
            return value
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(
                f"Rotation must be one of 0, 90, 180, 270 (got {value!r})"
            )
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Rotation must be one of 0, 90, 180, 270 (got {value!r})"
            ) from None

    @property
    def swaps_axes(self) -> bool:
        return self in (Rotation.DEG_90, Rotation.DEG_270)


class Tool(str, Enum):
    """Interaction tools the host can activate."""
    ADD_TEXT = "add-text"


# ─── Geometry ─────────────────────────────────────────────────────────────────


class PageGeometry(BaseModel):
    """Pixel size of a page at a given scale and rotation."""
    model_config = ConfigDict(frozen=True)

    page: int = Field(ge=1)
    width_px: float = Field(ge=0)
    height_px: float = Field(ge=0)
    scale: float = Field(gt=0)
    rotation: Rotation = Rotation.DEG_0

    @computed_field
    @property
    def aspect_ratio(self) -> float:
        if self.height_px == 0:
            return 0.0
        return self.width_px / self.height_px


def validate_scale(scale) -> float:
    """Reject non-numeric, non-finite or non-positive scale factors."""
    if isinstance(scale, bool) or not isinstance(scale, (int, float)):
        raise ValidationError(f"Scale must be a number (got {scale!r})")
    if not math.isfinite(scale) or scale <= 0:
        raise ValidationError(f"Scale must be a positive finite number (got {scale!r})")
    return float(scale)


@dataclass(frozen=True)
class RasterSurface:
    """
    Rendered pixels of one page.

    `samples` holds packed RGB rows (no alpha), `stride` bytes per row.
    """

    page: int
    width: int
    height: int
    samples: bytes = field(repr=False)
    stride: int
    channels: int = 3
    scale: float = 1.0
    rotation: Rotation = Rotation.DEG_0

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0

    def digest(self) -> str:
        """SHA-256 over the raw samples; equal digests mean equal pixels."""
        return hashlib.sha256(self.samples).hexdigest()

    def to_png(self) -> bytes:
        pix = fitz.Pixmap(fitz.csRGB, self.width, self.height, self.samples, 0)
        return pix.tobytes("png")


# ─── Viewport ─────────────────────────────────────────────────────────────────


class ViewportState(BaseModel):
    """
    Snapshot of what the viewer displays.

    `current_page` is 1-indexed and 0 only for an empty document.
    Snapshots are immutable; each transition produces a new one.
    """
    model_config = ConfigDict(frozen=True)

    current_page: int = Field(ge=0)
    page_count: int = Field(ge=0)
    scale: float = Field(gt=0)
    rotation: Rotation = Rotation.DEG_0

    @property
    def render_key(self) -> tuple[int, float, int]:
        return (self.current_page, self.scale, self.rotation.value)


@dataclass(frozen=True)
class RenderRequest:
    """A queued render of one viewport state, tagged with its sequence."""
    seq: int
    state: ViewportState


@dataclass(frozen=True)
class RenderOutcome:
    """Published result of the latest render: a surface or a page error."""
    seq: int
    state: ViewportState
    surface: Optional[RasterSurface] = None
    error: Optional[RenderError] = None

    @property
    def ok(self) -> bool:
        return self.surface is not None


# ─── Annotations ─────────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Annotation(BaseModel):
    """
    A user-placed text annotation.

    (x, y) is in page-local space at scale 1 with no rotation applied,
    so the annotation stays on the same document location under any
    zoom or rotation.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    page: int = Field(ge=1)
    x: float
    y: float
    text: str = ""
    font_size: float = Field(default=16.0, gt=0)
    color: str = Field(default="#000000", pattern=r"^#[0-9a-fA-F]{6}$")
    orphaned: bool = False
    created_at: str = Field(default_factory=_now_iso)


class AnnotationOverlay(BaseModel):
    """Screen placement of an annotation on the current raster surface."""
    id: str
    text: str
    left: float
    top: float
    font_size: float
    color: str


class AnnotationSnapshot(BaseModel):
    """Payload handed to the persistence gateway."""
    document_id: str
    annotations: list[Annotation] = Field(default_factory=list)
    saved_at: str = Field(default_factory=_now_iso)

    @computed_field
    @property
    def annotation_count(self) -> int:
        return len(self.annotations)
