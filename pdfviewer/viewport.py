"""
Viewport Controller
===================
Deterministic state machine over (current_page, scale, rotation).

Transitions:
    go_to_next      page + 1, no-op on the last page
    go_to_prev      page - 1, no-op on page 1
    go_to_page(n)   clamped into [1, page_count]; non-integers rejected
    zoom_in/out     × / ÷ zoom_factor, saturating at [min_scale, max_scale]
    set_scale(s)    clamped; non-positive or non-finite rejected
    zoom_to_fit     largest scale that fits the page in a box
    set_rotation    only 0 / 90 / 180 / 270

Every transition that changes the state emits exactly one render
request to the listener. A transition that leaves the state unchanged
emits nothing.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .config import ViewerConfig, get_config
from .errors import ValidationError
from .models import Rotation, ViewportState, validate_scale

logger = logging.getLogger(__name__)

StateListener = Callable[[ViewportState], None]

# Scales closer than this are treated as equal
_SCALE_EPSILON = 1e-9


class NavigationCommand:
    NEXT = "next"
    PREV = "prev"
    FIRST = "first"
    LAST = "last"
    PAGE = "page"

    ALL = (NEXT, PREV, FIRST, LAST, PAGE)


class ZoomCommand:
    IN = "in"
    OUT = "out"
    FIT = "fit"
    RESET = "reset"
    SET = "set"

    ALL = (IN, OUT, FIT, RESET, SET)


class ViewportController:
    """
    Owns the viewport state of one viewer session.

    `on_change` receives each new state; the session wires it to the
    render scheduler.
    """

    def __init__(
        self,
        page_count: int = 0,
        config: Optional[ViewerConfig] = None,
        on_change: Optional[StateListener] = None,
    ):
        self.config = config or get_config()
        self.on_change = on_change
        self._state = self._initial_state(page_count)

    @property
    def state(self) -> ViewportState:
        return self._state

    @property
    def page_count(self) -> int:
        return self._state.page_count

    def reset(self, page_count: int) -> ViewportState:
        """Start over on a newly loaded document; always requests a render."""
        self._state = self._initial_state(page_count)
        logger.debug(f"Viewport reset: {page_count} pages")
        self._emit()
        return self._state

    # ─── Navigation ───────────────────────────────────────────────────────

    def go_to_next(self) -> ViewportState:
        return self._transition(current_page=self._clamp_page(self._state.current_page + 1))

    def go_to_prev(self) -> ViewportState:
        return self._transition(current_page=self._clamp_page(self._state.current_page - 1))

    def go_to_first(self) -> ViewportState:
        return self._transition(current_page=self._clamp_page(1))

    def go_to_last(self) -> ViewportState:
        return self._transition(current_page=self._clamp_page(self._state.page_count))

    def go_to_page(self, page) -> ViewportState:
        """Jump to `page`; out-of-range integers clamp, anything else fails."""
        if isinstance(page, bool) or not isinstance(page, int):
            raise ValidationError(f"Page number must be an integer (got {page!r})")
        return self._transition(current_page=self._clamp_page(page))

    def navigate(self, command: str, page=None) -> ViewportState:
        if command == NavigationCommand.NEXT:
            return self.go_to_next()
        if command == NavigationCommand.PREV:
            return self.go_to_prev()
        if command == NavigationCommand.FIRST:
            return self.go_to_first()
        if command == NavigationCommand.LAST:
            return self.go_to_last()
        if command == NavigationCommand.PAGE:
            if page is None:
                raise ValidationError("Navigation command 'page' requires a page number")
            return self.go_to_page(page)
        raise ValidationError(
            f"Unknown navigation command {command!r}; expected one of {NavigationCommand.ALL}"
        )

    # ─── Zoom ─────────────────────────────────────────────────────────────

    def zoom_in(self) -> ViewportState:
        return self._transition(scale=self._clamp_scale(self._state.scale * self.config.zoom_factor))

    def zoom_out(self) -> ViewportState:
        return self._transition(scale=self._clamp_scale(self._state.scale / self.config.zoom_factor))

    def set_scale(self, scale) -> ViewportState:
        return self._transition(scale=self._clamp_scale(validate_scale(scale)))

    def reset_zoom(self) -> ViewportState:
        return self._transition(scale=self.config.initial_scale)

    def zoom_to_fit(self, page_size: tuple[float, float], box_width: float, box_height: float) -> ViewportState:
        """
        Fit the current page (unrotated size in points) into a box.

        Rotation is taken into account: at 90/270 the page's width is
        laid along the box height.
        """
        box_width = validate_scale(box_width)
        box_height = validate_scale(box_height)
        width, height = page_size
        if width <= 0 or height <= 0:
            raise ValidationError(f"Page size must be positive (got {page_size!r})")
        if self._state.rotation.swaps_axes:
            width, height = height, width
        fit = min(box_width / width, box_height / height)
        return self._transition(scale=self._clamp_scale(fit))

    def zoom(self, command: str, scale=None, page_size=None, box=None) -> ViewportState:
        if command == ZoomCommand.IN:
            return self.zoom_in()
        if command == ZoomCommand.OUT:
            return self.zoom_out()
        if command == ZoomCommand.RESET:
            return self.reset_zoom()
        if command == ZoomCommand.SET:
            if scale is None:
                raise ValidationError("Zoom command 'set' requires a scale")
            return self.set_scale(scale)
        if command == ZoomCommand.FIT:
            if page_size is None or box is None:
                raise ValidationError("Zoom command 'fit' requires a page size and a box")
            return self.zoom_to_fit(page_size, *box)
        raise ValidationError(
            f"Unknown zoom command {command!r}; expected one of {ZoomCommand.ALL}"
        )

    # ─── Rotation ─────────────────────────────────────────────────────────

    def set_rotation(self, angle) -> ViewportState:
        return self._transition(rotation=Rotation.parse(angle))

    def rotate_clockwise(self) -> ViewportState:
        return self.set_rotation(Rotation((self._state.rotation.value + 90) % 360))

    def rotate_counterclockwise(self) -> ViewportState:
        return self.set_rotation(Rotation((self._state.rotation.value + 270) % 360))

    # ─── Internals ────────────────────────────────────────────────────────

    def _initial_state(self, page_count: int) -> ViewportState:
        if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count < 0:
            raise ValidationError(f"Page count must be a non-negative integer (got {page_count!r})")
        return ViewportState(
            current_page=1 if page_count else 0,
            page_count=page_count,
            scale=self.config.initial_scale,
            rotation=Rotation.DEG_0,
        )

    def _clamp_page(self, page: int) -> int:
        if self._state.page_count == 0:
            return 0
        return max(1, min(page, self._state.page_count))

    def _clamp_scale(self, scale: float) -> float:
        return max(self.config.min_scale, min(scale, self.config.max_scale))

    def _transition(self, **changes) -> ViewportState:
        old = self._state
        new = old.model_copy(update=changes)

        unchanged = (
            new.current_page == old.current_page
            and abs(new.scale - old.scale) < _SCALE_EPSILON
            and new.rotation == old.rotation
        )
        if unchanged:
            return old

        self._state = new
        logger.debug(
            f"Viewport: page {old.current_page}→{new.current_page}, "
            f"scale {old.scale:.3f}→{new.scale:.3f}, "
            f"rotation {old.rotation.value}→{new.rotation.value}"
        )
        self._emit()
        return new

    def _emit(self):
        if self.on_change and self._state.page_count > 0:
            self.on_change(self._state)
