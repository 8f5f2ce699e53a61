"""
Test Suite for the HTTP API
===========================
Drives viewer sessions through the Flask test client.
"""

from __future__ import annotations

import io
import json
import threading

import pytest

from pdfviewer import server
from pdfviewer.persistence import JsonFilePersistenceGateway


@pytest.fixture
def storage(tmp_path):
    return tmp_path / "store"


@pytest.fixture
def client(config, storage):
    app = server.create_app(
        {"TESTING": True, "VIEWER_CONFIG": config, "RENDER_TIMEOUT": 10.0},
        gateway=JsonFilePersistenceGateway(str(storage)),
    )
    with app.test_client() as client:
        yield client

    with server.sessions_lock:
        leftover = list(server.sessions.values())
        server.sessions.clear()
        server.session_locks.clear()
    for session in leftover:
        session.close()


@pytest.fixture
def session_id(client, five_page_pdf):
    resp = client.post(
        "/api/sessions",
        data={"file": (io.BytesIO(five_page_pdf), "doc.pdf")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    return resp.get_json()["session_id"]


# ═══════════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════════


class TestService:
    """Test health and info endpoints."""

    def test_health(self, client):
        data = client.get("/api/health").get_json()
        assert data["status"] == "healthy"
        assert data["active_sessions"] == 0

    def test_info(self, client):
        data = client.get("/api/info").get_json()
        assert data["scale_bounds"] == [0.5, 3.0]
        assert data["rotations"] == [0, 90, 180, 270]
        assert "add-text" in data["tools"]


# ═══════════════════════════════════════════════════════════════════════════════
# SESSIONS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSessions:
    """Test opening, inspecting and closing sessions."""

    def test_open_upload(self, client, session_id):
        data = client.get(f"/api/sessions/{session_id}").get_json()
        assert data["viewport"]["page_count"] == 5
        assert data["viewport"]["current_page"] == 1
        assert data["error"] is None

    def test_open_requires_source(self, client):
        resp = client.post("/api/sessions", json={})
        assert resp.status_code == 400

    def test_corrupt_upload(self, client):
        resp = client.post(
            "/api/sessions",
            data={"file": (io.BytesIO(b"not a pdf"), "broken.pdf")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 422
        assert resp.get_json()["reason"] == "parse-failure"
        assert server.sessions == {}

    def test_rejects_server_paths(self, client, make_pdf, tmp_path):
        local = tmp_path / "private" / "internal.pdf"
        local.parent.mkdir()
        local.write_bytes(make_pdf(2))

        resp = client.post("/api/sessions", json={"url": str(local)})
        assert resp.status_code == 400
        assert resp.get_json()["type"] == "ValidationError"

        resp = client.post("/api/sessions", json={"url": "file:///etc/passwd"})
        assert resp.status_code == 400
        assert server.sessions == {}

    def test_requests_are_serialized_per_session(self, client, session_id):
        results = []

        def navigate():
            with server.app.test_client() as other:
                resp = other.post(
                    f"/api/sessions/{session_id}/navigate", json={"command": "next"}
                )
                results.append(resp.get_json()["viewport"]["current_page"])

        lock = server.session_locks[session_id]
        with lock:
            worker = threading.Thread(target=navigate)
            worker.start()
            worker.join(0.3)
            # Blocked until the session is free
            assert worker.is_alive()
            assert results == []
        worker.join(10)
        assert results == [2]

    def test_unknown_session(self, client):
        resp = client.get("/api/sessions/does-not-exist")
        assert resp.status_code == 404

    def test_close(self, client, session_id):
        assert client.delete(f"/api/sessions/{session_id}").status_code == 200
        assert client.get(f"/api/sessions/{session_id}").status_code == 404


# ═══════════════════════════════════════════════════════════════════════════════
# VIEWPORT
# ═══════════════════════════════════════════════════════════════════════════════


class TestViewportEndpoints:
    """Test navigation, zoom, rotation and page images."""

    def test_navigate(self, client, session_id):
        resp = client.post(f"/api/sessions/{session_id}/navigate", json={"command": "page", "page": 3})
        assert resp.get_json()["viewport"]["current_page"] == 3

        resp = client.post(f"/api/sessions/{session_id}/navigate", json={"command": "page", "page": 99})
        assert resp.get_json()["viewport"]["current_page"] == 5

    def test_navigate_rejects_fraction(self, client, session_id):
        resp = client.post(f"/api/sessions/{session_id}/navigate", json={"command": "page", "page": 2.5})
        assert resp.status_code == 400
        assert resp.get_json()["type"] == "ValidationError"

    def test_zoom(self, client, session_id):
        resp = client.post(f"/api/sessions/{session_id}/zoom", json={"command": "set", "scale": 10})
        assert resp.get_json()["viewport"]["scale"] == 3.0

        resp = client.post(f"/api/sessions/{session_id}/zoom", json={"command": "fit", "box": [306, 2000]})
        assert resp.get_json()["viewport"]["scale"] == pytest.approx(0.5)

    def test_rotate(self, client, session_id):
        resp = client.post(f"/api/sessions/{session_id}/rotate", json={"angle": 90})
        assert resp.get_json()["viewport"]["rotation"] == 90

        resp = client.post(f"/api/sessions/{session_id}/rotate", json={"angle": 45})
        assert resp.status_code == 400

    def test_page_png(self, client, session_id):
        client.post(f"/api/sessions/{session_id}/navigate", json={"command": "next"})
        resp = client.get(f"/api/sessions/{session_id}/page.png")
        assert resp.status_code == 200
        assert resp.mimetype == "image/png"
        assert resp.data.startswith(b"\x89PNG")
        assert resp.headers["X-Page"] == "2"


# ═══════════════════════════════════════════════════════════════════════════════
# ANNOTATIONS
# ═══════════════════════════════════════════════════════════════════════════════


class TestAnnotationEndpoints:
    """Test annotation CRUD and saving."""

    def test_add_update_delete(self, client, session_id):
        base = f"/api/sessions/{session_id}/annotations"
        resp = client.post(base, json={"x": 40, "y": 60, "text": "Draft"})
        assert resp.status_code == 201
        annotation = resp.get_json()
        assert annotation["page"] == 1
        assert annotation["x"] == pytest.approx(40)

        resp = client.put(f"{base}/{annotation['id']}", json={"text": "Final", "color": "#ff0000"})
        assert resp.get_json()["text"] == "Final"
        assert resp.get_json()["color"] == "#ff0000"

        overlay = client.get(base).get_json()["overlay"]
        assert [item["id"] for item in overlay] == [annotation["id"]]

        assert client.delete(f"{base}/{annotation['id']}").status_code == 200
        assert client.get(base).get_json()["annotations"] == []

    def test_api_click_leaves_tool_unchanged(self, client, session_id):
        resp = client.post(f"/api/sessions/{session_id}/annotations", json={"x": 5, "y": 5})
        assert resp.status_code == 201
        assert client.get(f"/api/sessions/{session_id}").get_json()["active_tool"] is None

    def test_add_requires_coordinates(self, client, session_id):
        resp = client.post(f"/api/sessions/{session_id}/annotations", json={"x": 1})
        assert resp.status_code == 400

    def test_unknown_annotation(self, client, session_id):
        base = f"/api/sessions/{session_id}/annotations"
        assert client.put(f"{base}/missing", json={"text": "x"}).status_code == 404
        assert client.delete(f"{base}/missing").status_code == 404

    def test_save(self, client, session_id, storage):
        client.post(f"/api/sessions/{session_id}/annotations", json={"x": 10, "y": 10})
        resp = client.post(f"/api/sessions/{session_id}/save")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["annotation_count"] == 1

        saved = json.loads((storage / f"{data['document_id']}.json").read_text(encoding="utf-8"))
        assert saved["annotations"][0]["text"] == "Click to edit"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
