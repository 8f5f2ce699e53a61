"""
Render Scheduler
================
Consumer loop that executes render requests off the interaction thread.

Ordering:
    - Every submitted request gets a monotonically increasing sequence.
    - One consumer thread renders requests in submission order, so
      decoder access to a document is serialized.
    - A request already superseded when dequeued is skipped unrendered.
    - A result is published only if its sequence is still the latest
      issued when rendering finishes (last-write-wins); stale results
      are discarded, never painted over a newer surface.

There is no hard cancellation of an in-flight render.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from .document import Document
from .errors import RenderError, RenderFailure
from .models import RasterSurface, RenderOutcome, RenderRequest, ViewportState
from .renderer import PageRenderer

logger = logging.getLogger(__name__)

PublishCallback = Callable[[RenderOutcome], None]


class RenderScheduler:
    """Single-consumer render queue with last-write-wins publication."""

    def __init__(
        self,
        renderer: Optional[PageRenderer] = None,
        on_publish: Optional[PublishCallback] = None,
        name: str = "pdfviewer-render",
    ):
        self.renderer = renderer or PageRenderer()
        self._listeners: list[PublishCallback] = []
        if on_publish:
            self._listeners.append(on_publish)

        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._latest_seq = 0
        self._pending = 0
        self._current: Optional[RenderOutcome] = None
        self._discarded = 0
        self._name = name
        self._thread: Optional[threading.Thread] = None

    # ─── Public API ───────────────────────────────────────────────────────

    @property
    def latest_seq(self) -> int:
        with self._lock:
            return self._latest_seq

    @property
    def current(self) -> Optional[RenderOutcome]:
        """The most recently published outcome."""
        with self._lock:
            return self._current

    @property
    def discarded_count(self) -> int:
        with self._lock:
            return self._discarded

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()
        logger.debug(f"Render consumer '{self._name}' started")

    def stop(self, timeout: float = 5.0):
        """Stop the consumer after the request it is currently rendering."""
        if not self._thread:
            return
        self._queue.put(None)
        self._thread.join(timeout)
        self._thread = None
        logger.debug(f"Render consumer '{self._name}' stopped")

    def submit(self, state: ViewportState, document: Document) -> RenderRequest:
        """Issue a render request; it supersedes every earlier one."""
        with self._lock:
            self._latest_seq += 1
            request = RenderRequest(seq=self._latest_seq, state=state)
            self._pending += 1
        self._queue.put((request, document))
        self.start()
        logger.debug(
            f"Render request #{request.seq}: page={state.current_page} "
            f"scale={state.scale:.3f} rotation={state.rotation.value}"
        )
        return request

    def invalidate(self) -> int:
        """Supersede all issued requests without issuing a new one."""
        with self._lock:
            self._latest_seq += 1
            self._current = None
            return self._latest_seq

    def is_current(self, request: RenderRequest) -> bool:
        with self._lock:
            return request.seq == self._latest_seq

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted request is finished or skipped."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def publish(
        self,
        request: RenderRequest,
        surface: Optional[RasterSurface] = None,
        error: Optional[RenderError] = None,
    ) -> bool:
        """
        Publish the result of `request` if it is still current.

        Returns False (and drops the result) when a newer request has
        been issued since.
        """
        with self._lock:
            if request.seq != self._latest_seq:
                self._discarded += 1
                logger.debug(
                    f"Discarding stale render #{request.seq} "
                    f"(latest is #{self._latest_seq})"
                )
                return False
            outcome = RenderOutcome(
                seq=request.seq, state=request.state, surface=surface, error=error
            )
            self._current = outcome

        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception:
                logger.exception(f"Render listener failed for #{request.seq}")
        return True

    # ─── Consumer loop ────────────────────────────────────────────────────

    def _run(self):
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                return
            request, document = item
            try:
                self._process(request, document)
            finally:
                self._queue.task_done()
                with self._idle:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.notify_all()

    def _process(self, request: RenderRequest, document: Document):
        if not self.is_current(request):
            logger.debug(f"Skipping superseded render #{request.seq}")
            with self._lock:
                self._discarded += 1
            return

        state = request.state
        try:
            surface = self.renderer.render_page(
                document, state.current_page, state.scale, state.rotation
            )
        except RenderError as e:
            logger.warning(f"Render #{request.seq} failed: {e}")
            self.publish(request, error=e)
        except Exception as e:
            logger.error(f"Render #{request.seq} crashed: {e}", exc_info=True)
            self.publish(
                request,
                error=RenderError(
                    f"Unexpected render failure: {e}",
                    RenderFailure.CONTENT_ERROR,
                    page=state.current_page,
                ),
            )
        else:
            self.publish(request, surface=surface)
