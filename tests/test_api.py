"""Tests for the HTTP and WebSocket surface."""

import pytest
from fastapi.testclient import TestClient

from diagram_sync.config import SyncConfig
from diagram_sync.directives import DirectiveCodec
from diagram_sync.server import main
from diagram_sync.server.session import EditorSession


codec = DirectiveCodec()


@pytest.fixture
def session(monkeypatch, sample_text):
    session = EditorSession(config=SyncConfig(debounce_ms=10), text=sample_text)
    session.on_change(main.on_session_change)
    monkeypatch.setattr(main, "editor_session", session)
    return session


@pytest.fixture
def client(session):
    with TestClient(main.app) as client:
        yield client


def stable_id_of(client, text_id):
    nodes = client.get("/api/diagram").json()["graph"]["nodes"]
    return next(n["stable_id"] for n in nodes if n["text_id"] == text_id)


def receive_until(websocket, message_type, limit=5):
    for _ in range(limit):
        message = websocket.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type} message received")


class TestDiagram:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_initial_state_is_synced_on_startup(self, client, sample_text):
        state = client.get("/api/diagram").json()

        assert state["text"] == sample_text
        assert [n["text_id"] for n in state["graph"]["nodes"]] == ["A", "B", "C"]
        assert state["depth"] == 0
        assert state["breadcrumbs"] == [{"title": "Root", "depth": 0, "clickable": False}]

    def test_update_text_with_sync(self, client):
        response = client.put("/api/diagram/text", json={"text": "graph TD\nX --> Y\n", "sync": True})

        assert response.status_code == 200
        state = response.json()
        assert [n["text_id"] for n in state["graph"]["nodes"]] == ["X", "Y"]
        assert state["pending_sync"] is False

    def test_update_text_then_sync(self, client):
        client.put("/api/diagram/text", json={"text": "graph TD\nQ\n"})
        state = client.post("/api/diagram/sync").json()

        assert [n["text_id"] for n in state["graph"]["nodes"]] == ["Q"]

    def test_bad_text_keeps_graph(self, client):
        state = client.put("/api/diagram/text", json={"text": "graph TD\nA -->\n", "sync": True}).json()

        assert state["text"] == "graph TD\nA -->\n"
        assert len(state["graph"]["nodes"]) == 3

    def test_validate(self, client):
        client.put("/api/diagram/text", json={"text": "graph TD\nA --> B\nC\n", "sync": True})
        result = client.get("/api/diagram/validate").json()

        assert result["summary"]["warnings"] == 1
        assert result["summary"]["valid"] is True


class TestNodes:
    def test_move_node(self, client):
        stable_id = stable_id_of(client, "C")
        response = client.post(f"/api/nodes/{stable_id}/move", json={"x": 10, "y": 20})

        assert response.status_code == 200
        data = response.json()
        assert data["text"].endswith('%% @node: C {"x":10,"y":20}\n')
        assert (data["node"]["x"], data["node"]["y"]) == (10, 20)
        assert client.get("/api/diagram").json()["pending_sync"] is False

    def test_move_unknown_node(self, client):
        response = client.post("/api/nodes/n_unknown/move", json={"x": 1, "y": 2})
        assert response.status_code == 404

    def test_patch_metadata(self, client):
        response = client.patch("/api/nodes/C/metadata", json={"patch": {"kind": "note"}})

        assert response.status_code == 200
        assert codec.read(response.json()["text"], "C") == {"kind": "note"}

        state = client.post("/api/diagram/sync").json()
        c = next(n for n in state["graph"]["nodes"] if n["text_id"] == "C")
        assert c["kind"] == "note"

    def test_patch_unknown_node(self, client):
        response = client.patch("/api/nodes/Nope/metadata", json={"patch": {"kind": "note"}})
        assert response.status_code == 404


class TestNavigation:
    def test_open_and_return(self, client):
        state = client.post("/api/nodes/B/open").json()

        assert state["depth"] == 1
        assert state["text"] == "graph TD\nRoot[Processing]\n"
        assert [c["title"] for c in state["breadcrumbs"]] == ["Root", "Processing"]

        client.put("/api/diagram/text", json={"text": "graph TD\nRoot[Processing] --> Step\n"})
        navigation = client.get("/api/navigation").json()
        nested = codec.read(navigation["root_text"], "B")["diagram"]
        assert nested["mermaidman"] == "graph TD\nRoot[Processing] --> Step\n"

        state = client.post("/api/navigation/0").json()
        assert state["depth"] == 0
        body = codec.read(state["text"], "B")
        assert body["kind"] == "diagram"
        assert body["x"] == 300
        assert body["diagram"]["mermaidman"] == "graph TD\nRoot[Processing] --> Step\n"

    def test_create_nested(self, client):
        state = client.post("/api/nodes/A/nested").json()

        assert state["depth"] == 1
        assert state["breadcrumbs"][-1] == {"title": "Start", "depth": 1, "clickable": False}

    def test_open_unknown_node(self, client):
        assert client.post("/api/nodes/Nope/open").status_code == 404
        assert client.post("/api/nodes/Nope/nested").status_code == 404

    def test_navigate_at_root_is_rejected(self, client):
        assert client.post("/api/navigation/0").status_code == 400


class TestLifespan:
    def test_restarts_do_not_duplicate_change_callbacks(self, session):
        for _ in range(2):
            with TestClient(main.app):
                pass

        assert session._on_change_callbacks.count(main.on_session_change) == 1

    def test_module_session_is_wired_once(self):
        assert main.editor_session._on_change_callbacks.count(main.on_session_change) == 1

    def test_drill_down_and_back_keeps_parent_identities(self, client):
        parent = {n["text_id"]: n["stable_id"] for n in client.get("/api/diagram").json()["graph"]["nodes"]}

        client.post("/api/nodes/B/open")
        client.put("/api/diagram/text", json={"text": "graph TD\nA[Other] --> Q\n", "sync": True})
        nested = client.get("/api/diagram").json()["graph"]
        nested_a = next(n["stable_id"] for n in nested["nodes"] if n["text_id"] == "A")

        assert nested_a != parent["A"]
        assert not set(nested["orphaned_node_ids"]) & set(parent)

        client.post("/api/navigation/0")
        state = client.post("/api/diagram/sync").json()["graph"]

        assert {n["text_id"]: n["stable_id"] for n in state["nodes"]} == parent
        assert state["orphaned_node_ids"] == []


class TestWebSocket:
    def test_greeting_carries_revision(self, client, session):
        with client.websocket_connect("/ws") as websocket:
            assert websocket.receive_json() == {
                "type": "connected",
                "revision": session.snapshot.revision,
            }

    def test_ping(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("ping")
            assert receive_until(websocket, "pong") == {"type": "pong"}

    def test_sync_is_broadcast(self, client, session):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("ping")
            receive_until(websocket, "pong")

            client.post("/api/diagram/sync")
            message = receive_until(websocket, "diagram_updated")

        assert message["revision"] == session.snapshot.revision
