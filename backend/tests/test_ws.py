"""
Integration tests for the live editing WebSocket.

Tests /ws/portfolio/{doc_id}: initial snapshot and route frames, edits,
read-only access to someone else's portfolio, guest sessions and asset frames.
"""

from __future__ import annotations

import json
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from backend.main import app


@pytest.fixture
def client():
    """Return a synchronous TestClient for WS testing."""
    return TestClient(app)


@pytest.fixture
def ada_headers(ada, cookies_for):
    return {"cookie": "; ".join(f"{k}={v}" for k, v in cookies_for(ada).items())}


@pytest.fixture
def ada_doc(store, ada):
    doc_id = str(uuid4())
    store.records[(str(ada.id), doc_id)] = {
        "id": doc_id,
        "title": "Ada's Portfolio",
        "projects": [{"id": "p1", "title": "Compiler"}],
        "createdAt": 1,
        "updatedAt": 1,
    }
    return doc_id


def receive_until(ws, frame_type, limit=20):
    """Read frames until one of frame_type arrives; return all of them."""
    frames = []
    for _ in range(limit):
        frame = ws.receive_json()
        frames.append(frame)
        if frame["type"] == frame_type:
            return frames
    pytest.fail(f"{frame_type} never received: {frames}")


class TestConnect:
    def test_snapshot_then_route(self, client, ada_headers, ada_doc):
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["document"]["title"] == "Ada's Portfolio"
            assert snapshot["document"]["hero"]["headline"] == ""

            route = ws.receive_json()
            assert route == {"type": "route", "path": f"/portfolio/ada/edit/{ada_doc}"}

    def test_missing_document_reports_status(self, client, ada_headers):
        with client.websocket_connect(f"/ws/portfolio/{uuid4()}", headers=ada_headers) as ws:
            assert ws.receive_json() == {"type": "status", "status": "not_found"}

    def test_guest_without_document_is_closed(self, client):
        with client.websocket_connect("/ws/portfolio/g1") as ws:
            assert ws.receive_json() == {"type": "status", "status": "not_found"}
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == 4404


class TestEditing:
    def test_update_is_applied_and_written(self, client, ada, ada_headers, ada_doc, store):
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            receive_until(ws, "route")
            ws.send_text(json.dumps({"type": "set_field", "path": "hero.headline", "value": "Live"}))

            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["document"]["hero"]["headline"] == "Live"

            # Any later reply means the background write has run
            ws.send_text(json.dumps({"type": "bogus"}))
            receive_until(ws, "bogus.error")

        assert store.records[(str(ada.id), ada_doc)]["hero"]["headline"] == "Live"

    def test_entry_frame(self, client, ada_headers, ada_doc):
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            receive_until(ws, "route")
            ws.send_text(
                json.dumps({"type": "entry", "op": "update", "list_path": "projects", "entry_id": "p1", "fields": {"title": "Compiler II"}})
            )
            snapshot = ws.receive_json()
            assert snapshot["document"]["projects"][0]["title"] == "Compiler II"

    def test_bad_frames_keep_connection_open(self, client, ada_headers, ada_doc):
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            receive_until(ws, "route")

            ws.send_text("{not json")
            assert ws.receive_json() == {"type": "error", "error": "Invalid JSON"}

            ws.send_text(json.dumps({"type": "set_field", "path": "projects.p9.title", "value": "x"}))
            assert ws.receive_json()["type"] == "set_field.error"

            ws.send_text(json.dumps({"type": "entry", "op": "remove", "list_path": "projects"}))
            assert ws.receive_json()["type"] == "entry.error"

            ws.send_text(json.dumps({"type": "set_field", "path": "title", "value": "Still here"}))
            assert ws.receive_json()["document"]["title"] == "Still here"

    @pytest.mark.parametrize(
        "frame",
        [
            {"type": "update", "fields": "oops"},
            {"type": "update"},
            {"type": "set_field", "path": 42, "value": "x"},
            {"type": "theme.import", "source_id": ["x"]},
            {"type": "asset.library", "path": "hero.avatarUrl"},
        ],
    )
    def test_malformed_frame_reports_error(self, client, ada_headers, ada_doc, frame):
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            receive_until(ws, "route")

            ws.send_text(json.dumps(frame))
            assert ws.receive_json()["type"] == f"{frame['type']}.error"

            ws.send_text(json.dumps({"type": "update", "fields": {"title": "Still open"}}))
            assert ws.receive_json()["document"]["title"] == "Still open"

    def test_someone_elses_portfolio_is_read_only(self, client, grace, ada_headers, store):
        doc_id = str(uuid4())
        store.records[(str(grace.id), doc_id)] = {"id": doc_id, "title": "Grace's"}

        with client.websocket_connect(f"/ws/portfolio/{doc_id}?handle=grace", headers=ada_headers) as ws:
            assert ws.receive_json()["document"]["title"] == "Grace's"
            assert ws.receive_json() == {"type": "route", "path": f"/portfolio/grace/edit/{doc_id}"}

            ws.send_text(json.dumps({"type": "update", "fields": {"title": "Mine"}}))
            assert ws.receive_json()["type"] == "update.error"

        assert store.writes == []


class TestAssetsOverSocket:
    def test_library_pick(self, client, ada_headers, ada_doc):
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            receive_until(ws, "route")
            ws.send_text(json.dumps({"type": "asset.library", "path": "hero.avatarUrl", "url": "https://img.test/a.jpg"}))

            frames = receive_until(ws, "asset.done")
            assert frames[-1] == {"type": "asset.done", "path": "hero.avatarUrl", "reference": "https://img.test/a.jpg"}
            snapshots = [f for f in frames if f["type"] == "snapshot"]
            assert snapshots[0]["document"]["hero"]["avatarUrl"] == "https://img.test/a.jpg"

    def test_generate_without_credit(self, client, ada_headers, ada_doc, credits, images):
        credits.count = credits.limit
        with client.websocket_connect(f"/ws/portfolio/{ada_doc}", headers=ada_headers) as ws:
            receive_until(ws, "route")
            ws.send_text(json.dumps({"type": "asset.generate", "path": "hero.avatarUrl", "prompt": "a fox"}))
            frames = receive_until(ws, "asset.generate.error")
            assert "limit" in frames[-1]["error"]
        assert images.calls == []


class TestGuestSocket:
    def test_guest_edits_stay_local(self, client, guests, store):
        guests.store_for("guest-ws").save({"id": "g1", "title": "Draft", "hero": {}})
        headers = {"cookie": "guest_id=guest-ws"}

        with client.websocket_connect("/ws/portfolio/g1", headers=headers) as ws:
            assert ws.receive_json()["document"]["title"] == "Draft"
            ws.send_text(json.dumps({"type": "update", "fields": {"about": "Local only"}}))
            assert ws.receive_json()["document"]["about"] == "Local only"

        assert guests.existing("guest-ws").load("g1")["about"] == "Local only"
        assert store.writes == []
