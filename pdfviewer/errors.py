"""
Error Taxonomy
==============
Every failure the viewer surfaces to its host is one of these.

    ViewerError
    ├── LoadError          fetch-failure | parse-failure | timeout
    ├── RenderError        out-of-range | content-error | released
    ├── ValidationError    bad navigation / zoom / rotation argument
    ├── NotFoundError      annotation id unknown
    └── PersistenceError   gateway rejected or unreachable

Decoder and network exceptions are translated into these at the
loader, renderer and gateway boundaries.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class LoadFailure(str, Enum):
    FETCH_FAILURE = "fetch-failure"
    PARSE_FAILURE = "parse-failure"
    TIMEOUT = "timeout"


class RenderFailure(str, Enum):
    OUT_OF_RANGE = "out-of-range"
    CONTENT_ERROR = "content-error"
    RELEASED = "released"


class ViewerError(Exception):
    """Base class for all viewer errors."""

    reason: Optional[Enum] = None

    def __init__(self, message: str, reason: Optional[Enum] = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "type": type(self).__name__,
            "reason": self.reason.value if self.reason is not None else None,
        }


class LoadError(ViewerError):
    """The document could not be opened."""

    def __init__(self, message: str, reason: LoadFailure):
        super().__init__(message, reason)


class RenderError(ViewerError):
    """A page could not be rasterized."""

    def __init__(self, message: str, reason: RenderFailure, page: Optional[int] = None):
        super().__init__(message, reason)
        self.page = page


class ValidationError(ViewerError, ValueError):
    """Invalid argument from the caller (a programming error)."""


class NotFoundError(ViewerError, KeyError):
    """Annotation id is not in the collection."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class PersistenceError(ViewerError):
    """The persistence gateway failed to store annotations."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
