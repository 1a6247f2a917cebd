"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Exercises the document endpoints and the collection websocket through the
FastAPI TestClient, with the Database dependency pointed at a SQLite store.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from commonplace.api.deps import get_database
from commonplace.store.local_cache import LocalCache
from commonplace.sync.database import Database


@pytest.fixture
def database(store) -> Database:
    return Database(store, LocalCache())


@pytest.fixture
def client(database):
    """TestClient with the Database dependency overridden."""
    from commonplace.api.main import app

    app.dependency_overrides[get_database] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Documents
# ===========================================================================
class TestDocumentRoutes:

    def test_put_then_get(self, client):
        resp = client.put("/api/docs/howtos/a", json={"title": "A"})
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

        resp = client.get("/api/docs/howtos/a")
        assert resp.status_code == 200
        body = resp.json()
        assert body["_id"] == "a"
        assert body["title"] == "A"
        assert "_modified" in body

    def test_put_merges(self, client):
        client.put("/api/docs/howtos/a", json={"title": "A"})
        client.put("/api/docs/howtos/a", json={"slug": "a"})
        body = client.get("/api/docs/howtos/a").json()
        assert body["title"] == "A"
        assert body["slug"] == "a"

    def test_missing_document_404(self, client):
        assert client.get("/api/docs/howtos/nope").status_code == 404

    def test_deleted_document_404(self, client):
        client.put("/api/docs/howtos/a", json={"title": "A"})
        assert client.delete("/api/docs/howtos/a").status_code == 200
        assert client.get("/api/docs/howtos/a").status_code == 404

    def test_collection_path_rejected_for_document(self, client):
        assert client.put("/api/docs/howtos", json={"title": "A"}).status_code == 400
        assert client.get("/api/docs/howtos").status_code == 400


# ===========================================================================
# Collections & queries
# ===========================================================================
class TestCollectionRoutes:

    def test_listing_newest_first_without_tombstones(self, client):
        client.put("/api/docs/howtos/a", json={"title": "A"})
        client.put("/api/docs/howtos/b", json={"title": "B"})
        client.put("/api/docs/howtos/c", json={"title": "C"})
        client.delete("/api/docs/howtos/b")

        resp = client.get("/api/collections/howtos")
        assert resp.status_code == 200
        assert [d["_id"] for d in resp.json()["documents"]] == ["c", "a"]

    def test_document_path_rejected_for_collection(self, client):
        assert client.get("/api/collections/howtos/a").status_code == 400

    def test_query_string_value(self, client):
        client.put("/api/docs/howtos/a", json={"moderation": "accepted"})
        client.put("/api/docs/howtos/b", json={"moderation": "draft"})
        resp = client.get(
            "/api/query/howtos", params={"field": "moderation", "value": "accepted"}
        )
        assert resp.status_code == 200
        assert [d["_id"] for d in resp.json()["documents"]] == ["a"]

    def test_query_json_value(self, client):
        client.put("/api/docs/howtos/a", json={"votes": 3})
        client.put("/api/docs/howtos/b", json={"votes": 10})
        resp = client.get(
            "/api/query/howtos", params={"field": "votes", "op": ">", "value": "5"}
        )
        assert [d["_id"] for d in resp.json()["documents"]] == ["b"]

    def test_query_unknown_operator_400(self, client):
        resp = client.get(
            "/api/query/howtos", params={"field": "votes", "op": "like", "value": "5"}
        )
        assert resp.status_code == 400


# ===========================================================================
# Websocket stream
# ===========================================================================
class TestCollectionStream:

    def test_first_message_is_cached_snapshot(self, client):
        client.put("/api/docs/howtos/a", json={"title": "A"})
        with client.websocket_connect("/api/ws/collections/howtos") as ws:
            first = ws.receive_json()
        assert [d["_id"] for d in first] == ["a"]
        assert first[0]["title"] == "A"

    def test_disconnect_releases_listener(self, client, feed):
        client.put("/api/docs/howtos/a", json={"title": "A"})
        with client.websocket_connect("/api/ws/collections/howtos") as ws:
            ws.receive_json()  # cached
            ws.receive_json()  # live
            listening = feed.listener_count("howtos")
            ws.close()
        assert listening == 1
        assert feed.listener_count("howtos") == 0

    def test_invalid_path_closes(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/ws/collections/howtos/a") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008
