"""
Viewer Configuration
====================
Process-wide configuration with an explicit initialization lifecycle.

Call `init_config()` once at startup before opening any document.
Later calls with identical values are no-ops; calls with different
values raise, since sessions may already hold the old settings.
`get_config()` lazily initializes from defaults + environment if the
host never called `init_config()`.

Environment overrides:
    PDFVIEWER_LOAD_TIMEOUT   seconds before a load fails with timeout
    PDFVIEWER_STORAGE_DIR    directory for the JSON annotation store
    PDFVIEWER_GATEWAY_URL    base URL of a remote annotation service
    PDFVIEWER_LOG_LEVEL      DEBUG / INFO / WARNING / ERROR
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).parent.parent.absolute()


@dataclass(frozen=True)
class ViewerConfig:
    """Configuration for viewer sessions."""

    # Zoom
    min_scale: float = 0.5
    max_scale: float = 3.0
    initial_scale: float = 1.2
    zoom_factor: float = 1.2

    # Loading
    load_timeout: float = 30.0
    fetch_timeout: float = 20.0

    # New annotations
    default_text: str = "Click to edit"
    default_font_size: float = 16.0
    default_color: str = "#000000"

    # Persistence
    storage_dir: str = str(_PROJECT_ROOT / "storage" / "annotations")
    gateway_url: Optional[str] = None
    gateway_timeout: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if not 0 < self.min_scale <= self.max_scale:
            raise ValidationError(
                f"Invalid scale bounds: [{self.min_scale}, {self.max_scale}]"
            )
        if not self.min_scale <= self.initial_scale <= self.max_scale:
            raise ValidationError(
                f"initial_scale {self.initial_scale} outside "
                f"[{self.min_scale}, {self.max_scale}]"
            )
        if self.zoom_factor <= 1:
            raise ValidationError("zoom_factor must be greater than 1")
        if self.load_timeout <= 0:
            raise ValidationError("load_timeout must be positive")

    @classmethod
    def from_env(cls, **overrides) -> "ViewerConfig":
        """Build a config from defaults, environment, then explicit overrides."""
        env: dict = {}
        if os.environ.get("PDFVIEWER_LOAD_TIMEOUT"):
            env["load_timeout"] = float(os.environ["PDFVIEWER_LOAD_TIMEOUT"])
        if os.environ.get("PDFVIEWER_STORAGE_DIR"):
            env["storage_dir"] = os.environ["PDFVIEWER_STORAGE_DIR"]
        if os.environ.get("PDFVIEWER_GATEWAY_URL"):
            env["gateway_url"] = os.environ["PDFVIEWER_GATEWAY_URL"]
        if os.environ.get("PDFVIEWER_LOG_LEVEL"):
            env["log_level"] = os.environ["PDFVIEWER_LOG_LEVEL"].upper()

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValidationError(f"Unknown config keys: {sorted(unknown)}")

        env.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**env)

    def with_overrides(self, **changes) -> "ViewerConfig":
        return replace(self, **changes)


# ─── Process-wide instance ────────────────────────────────────────────────────

_config: Optional[ViewerConfig] = None
_config_lock = threading.Lock()


def init_config(config: Optional[ViewerConfig] = None) -> ViewerConfig:
    """Initialize the process-wide configuration exactly once."""
    global _config
    with _config_lock:
        new = config or ViewerConfig.from_env()
        if _config is not None:
            if _config != new:
                raise RuntimeError(
                    "Viewer configuration already initialized with different values"
                )
            return _config
        _config = new
        logger.debug(f"Viewer configuration initialized: {_config}")
        return _config


def get_config() -> ViewerConfig:
    """Return the process-wide configuration, initializing defaults if needed."""
    if _config is None:
        return init_config()
    return _config


def reset_config():
    """Forget the process-wide configuration (test isolation only)."""
    global _config
    with _config_lock:
        _config = None
