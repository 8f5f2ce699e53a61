"""
HTTP Host Surface
=================
Flask API that lets a browser page drive viewer sessions.

Endpoints:
    GET    /api/health                                → Health check
    GET    /api/info                                  → Version info
    POST   /api/sessions                              → Open a PDF (upload or URL)
    GET    /api/sessions/<sid>                        → Viewport + annotation state
    DELETE /api/sessions/<sid>                        → Close a session
    POST   /api/sessions/<sid>/reload                 → Retry / reload the source
    POST   /api/sessions/<sid>/navigate               → {"command", "page"}
    POST   /api/sessions/<sid>/zoom                   → {"command", "scale", "box"}
    POST   /api/sessions/<sid>/rotate                 → {"angle"}
    GET    /api/sessions/<sid>/page.png               → Current raster surface
    GET    /api/sessions/<sid>/annotations            → Overlay for current page
    POST   /api/sessions/<sid>/annotations            → {"x", "y", "text"}
    PUT    /api/sessions/<sid>/annotations/<aid>      → {"text", "font_size", "color"}
    DELETE /api/sessions/<sid>/annotations/<aid>      → Remove an annotation
    POST   /api/sessions/<sid>/save                   → Persist annotations
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from . import __version__
from .config import ViewerConfig, get_config
from .errors import (
    LoadError,
    LoadFailure,
    NotFoundError,
    PersistenceError,
    RenderError,
    ValidationError,
    ViewerError,
)
from .loader import is_url
from .models import Tool
from .persistence import PersistenceGateway
from .session import ViewerSession

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# ─── In-memory session registry ──────────────────────────────────────────────

sessions: dict[str, ViewerSession] = {}
sessions_lock = threading.Lock()
# Each session's routes run one at a time under its own lock
session_locks: dict[str, threading.Lock] = {}

_gateway: Optional[PersistenceGateway] = None


def create_app(config: Optional[dict] = None, gateway: Optional[PersistenceGateway] = None) -> Flask:
    """Create and configure the Flask app."""
    global _gateway
    if config:
        app.config.update(config)

    app.config.setdefault("VIEWER_CONFIG", get_config())
    app.config.setdefault("RENDER_TIMEOUT", 30.0)
    app.config.setdefault("MAX_CONTENT_LENGTH", 200 * 1024 * 1024)  # 200MB
    _gateway = gateway
    return app


def _viewer_config() -> ViewerConfig:
    return app.config.get("VIEWER_CONFIG") or get_config()


@contextmanager
def _locked_session(session_id: str) -> Iterator[ViewerSession]:
    """Look up a session and hold its lock for the rest of the request."""
    with sessions_lock:
        session = sessions.get(session_id)
        lock = session_locks.get(session_id)
    if session is None or lock is None:
        raise NotFoundError(f"Session not found: {session_id}")
    with lock:
        yield session


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _session_payload(session_id: str, session: ViewerSession) -> dict:
    state = session.state
    outcome = session.current
    return {
        "session_id": session_id,
        "document_id": session.document_id,
        "viewport": state.model_dump(mode="json"),
        "active_tool": session.active_tool.value if session.active_tool else None,
        "annotation_count": len(session.annotations),
        "render": None if outcome is None else {
            "seq": outcome.seq,
            "ok": outcome.ok,
            "width": outcome.surface.width if outcome.surface else None,
            "height": outcome.surface.height if outcome.surface else None,
            "error": outcome.error.to_dict() if outcome.error else None,
        },
        "error": session.last_error.to_dict()
        if isinstance(session.last_error, ViewerError) else None,
    }


# ─── Error mapping ────────────────────────────────────────────────────────────


@app.errorhandler(ViewerError)
def handle_viewer_error(e: ViewerError):
    if isinstance(e, ValidationError):
        status = 400
    elif isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, LoadError):
        status = 504 if e.reason == LoadFailure.TIMEOUT else 422
    elif isinstance(e, RenderError):
        status = 422
    elif isinstance(e, PersistenceError):
        status = 502
    else:
        status = 500
    return jsonify(e.to_dict()), status


# ─── Health / Info ────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    with sessions_lock:
        active = len(sessions)
    return jsonify({
        "status": "healthy",
        "service": "pdf-viewer",
        "version": __version__,
        "active_sessions": active,
    })


@app.route("/api/info", methods=["GET"])
def info():
    config = _viewer_config()
    return jsonify({
        "version": __version__,
        "engine": "PyMuPDF",
        "scale_bounds": [config.min_scale, config.max_scale],
        "zoom_factor": config.zoom_factor,
        "rotations": [0, 90, 180, 270],
        "tools": [t.value for t in Tool],
        "supported_sources": ["upload", "url"],
    })


# ─── Sessions ─────────────────────────────────────────────────────────────────


@app.route("/api/sessions", methods=["POST"])
def open_session():
    """
    Open a PDF in a new session.

    Accepts either a multipart upload under "file" or a JSON body
    with an http(s) "url". Server-side paths are never opened.
    """
    if "file" in request.files:
        file = request.files["file"]
        if not file.filename:
            return jsonify({"error": "No file selected"}), 400
        source = file.read()
    elif request.is_json and _body().get("url"):
        source = _body()["url"]
        if not is_url(source):
            raise ValidationError("url must be an http:// or https:// URL")
    else:
        return jsonify({"error": "Provide a file upload or JSON with url"}), 400

    session = ViewerSession(_viewer_config(), gateway=_gateway)
    try:
        session.initialize(source)
    except LoadError:
        session.close()
        raise

    session_id = uuid.uuid4().hex
    with sessions_lock:
        sessions[session_id] = session
        session_locks[session_id] = threading.Lock()

    logger.info(
        f"Session {session_id[:8]} opened: {session.state.page_count} pages"
    )
    return jsonify(_session_payload(session_id, session)), 201


@app.route("/api/sessions/<session_id>", methods=["GET"])
def get_session(session_id: str):
    with _locked_session(session_id) as session:
        return jsonify(_session_payload(session_id, session))


@app.route("/api/sessions/<session_id>", methods=["DELETE"])
def close_session(session_id: str):
    with sessions_lock:
        session = sessions.pop(session_id, None)
        lock = session_locks.pop(session_id, None)
    if session is None or lock is None:
        raise NotFoundError(f"Session not found: {session_id}")
    with lock:
        session.close()
    return jsonify({"success": True})


@app.route("/api/sessions/<session_id>/reload", methods=["POST"])
def reload_session(session_id: str):
    with _locked_session(session_id) as session:
        session.reload()
        payload = _session_payload(session_id, session)
        payload["orphaned"] = [a.id for a in session.annotations.orphaned()]
        return jsonify(payload)


@app.route("/api/sessions/<session_id>/navigate", methods=["POST"])
def navigate(session_id: str):
    data = _body()
    with _locked_session(session_id) as session:
        session.navigate(data.get("command", ""), data.get("page"))
        return jsonify(_session_payload(session_id, session))


@app.route("/api/sessions/<session_id>/zoom", methods=["POST"])
def zoom(session_id: str):
    data = _body()
    box = data.get("box")
    if box is not None:
        if not isinstance(box, (list, tuple)) or len(box) != 2:
            raise ValidationError("box must be [width, height]")
        box = tuple(box)
    with _locked_session(session_id) as session:
        session.zoom(data.get("command", ""), scale=data.get("scale"), box=box)
        return jsonify(_session_payload(session_id, session))


@app.route("/api/sessions/<session_id>/rotate", methods=["POST"])
def rotate(session_id: str):
    angle = _body().get("angle")
    with _locked_session(session_id) as session:
        session.rotate(angle)
        return jsonify(_session_payload(session_id, session))


@app.route("/api/sessions/<session_id>/page.png", methods=["GET"])
def page_image(session_id: str):
    """Serve the displayed surface, waiting for in-flight renders first."""
    with _locked_session(session_id) as session:
        outcome = session.wait_for_render(app.config.get("RENDER_TIMEOUT", 30.0))
    if outcome is None:
        return jsonify({"error": "Nothing rendered yet"}), 404
    if outcome.error is not None:
        raise outcome.error
    return Response(
        outcome.surface.to_png(),
        mimetype="image/png",
        headers={
            "X-Render-Seq": str(outcome.seq),
            "X-Page": str(outcome.state.current_page),
        },
    )


# ─── Annotations ──────────────────────────────────────────────────────────────


@app.route("/api/sessions/<session_id>/annotations", methods=["GET"])
def list_annotations(session_id: str):
    with _locked_session(session_id) as session:
        return jsonify({
            "page": session.state.current_page,
            "overlay": [item.model_dump() for item in session.overlay()],
            "annotations": [a.model_dump() for a in session.annotations.annotations()],
        })


@app.route("/api/sessions/<session_id>/annotations", methods=["POST"])
def add_annotation(session_id: str):
    data = _body()
    try:
        x, y = float(data["x"]), float(data["y"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("x and y are required numbers") from None

    with _locked_session(session_id) as session:
        # A click through the API is an add-text gesture for this call only
        previous_tool = session.active_tool
        session.active_tool = Tool.ADD_TEXT
        try:
            annotation = session.add_annotation_at(x, y, text=data.get("text"))
        finally:
            session.active_tool = previous_tool
        return jsonify(annotation.model_dump()), 201


@app.route("/api/sessions/<session_id>/annotations/<annotation_id>", methods=["PUT"])
def update_annotation(session_id: str, annotation_id: str):
    data = _body()
    with _locked_session(session_id) as session:
        if "text" in data:
            session.update_annotation_text(annotation_id, data["text"])
        if "font_size" in data or "color" in data:
            session.annotations.update_annotation_style(
                annotation_id,
                font_size=data.get("font_size"),
                color=data.get("color"),
            )
        return jsonify(session.annotations.get(annotation_id).model_dump())


@app.route("/api/sessions/<session_id>/annotations/<annotation_id>", methods=["DELETE"])
def delete_annotation(session_id: str, annotation_id: str):
    with _locked_session(session_id) as session:
        session.remove_annotation(annotation_id)
    return jsonify({"success": True})


@app.route("/api/sessions/<session_id>/save", methods=["POST"])
def save(session_id: str):
    with _locked_session(session_id) as session:
        snapshot = session.save()
    return jsonify({
        "success": True,
        "document_id": snapshot.document_id,
        "annotation_count": snapshot.annotation_count,
        "saved_at": snapshot.saved_at,
    })


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the viewer HTTP service."""
    create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
