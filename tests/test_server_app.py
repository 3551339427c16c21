"""Tests for the Flask REST API over a live event loop thread."""

import pytest

from storymap.graph.GraphNode import NodeType
from storymap.server import EventLoopThread, create_app
from storymap.session.scheduler import AsyncioScheduler
from storymap.session.workspace import WorkspaceSession
from storymap.store.memory import MemoryKeyValueStore, MemorySpecStore
from tests.core.graph_test_helpers import WORKSPACE, seed_checkout


@pytest.fixture
def runner():
    loop_thread = EventLoopThread().start()
    yield loop_thread
    loop_thread.stop()


@pytest.fixture
def store():
    return MemorySpecStore()


@pytest.fixture
def handles(store):
    return seed_checkout(store)


@pytest.fixture
def session(runner, store, handles):
    session = WorkspaceSession(
        WORKSPACE,
        store,
        MemoryKeyValueStore(),
        AsyncioScheduler(runner.loop),
        config={"sync": {"quiet_period": 0.01}},
    )
    runner.run(session.load())
    return session


@pytest.fixture
def client(session, runner):
    app = create_app(session, runner)
    app.config["TESTING"] = True
    return app.test_client()


def drain(session, runner):
    runner.run(session.sync.scheduler.drain())


class TestReadRoutes:
    def test_health(self, client):
        data = client.get("/api/health").get_json()

        assert data["status"] == "ok"
        assert data["workspace"] == "shop"
        assert data["nodes"] == 4
        assert data["edges"] == 3

    def test_snapshot(self, client):
        data = client.get("/api/snapshot").get_json()

        assert [n["id"] for n in data["nodes"]][:2] == ["STORY-LOGIN", "STORY-CHECKOUT"]
        assert data["view"]["policy"] == "layered"
        assert data["selection"] is None


class TestGestures:
    def test_unknown_gesture(self, client):
        response = client.post("/api/gesture/teleport", json={})

        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_missing_parameter(self, client):
        response = client.post("/api/gesture/click_node", json={})

        assert response.status_code == 400
        assert response.get_json()["error"] == "node_id required"

    def test_malformed_parameter(self, client):
        response = client.post("/api/gesture/zoom", json={"level": "big"})

        assert response.status_code == 400
        assert "invalid level" in response.get_json()["error"]

    def test_delete_edge_writes_document(self, client, session, runner, store, handles):
        response = client.post("/api/gesture/delete_edge", json={"edge_id": "ENB-001->CAP-001"})
        drain(session, runner)

        data = response.get_json()
        assert response.status_code == 200
        assert data["mutations"][0]["operation"] == "remove_edge"
        assert len(data["snapshot"]["edges"]) == 2
        assert "Capability ID" not in store.fields(handles["ENB-001"])

    def test_rejected_gesture_returns_notice(self, client):
        response = client.post("/api/gesture/delete_edge", json={"edge_id": "X->Y"})

        data = response.get_json()
        assert response.status_code == 400
        assert data["code"] == "NotFound"
        assert data["snapshot"]["notices"][0]["code"] == "NotFound"

    def test_delete_node_cascade_flag(self, client, session, runner):
        response = client.post(
            "/api/gesture/delete_node", json={"node_id": "ENB-001", "cascade": "true"}
        )
        drain(session, runner)

        assert response.status_code == 200
        assert not session.graph.has_node("ENB-001")

    def test_drag_sequence(self, client, session):
        client.post("/api/gesture/pointer_down_node", json={"node_id": "CAP-001", "x": 350, "y": 270})
        client.post("/api/gesture/pointer_move", json={"x": 360, "y": 280})
        response = client.post("/api/gesture/pointer_up", json={"x": 360, "y": 280})

        assert response.get_json()["snapshot"]["selection"] == {"kind": "node", "id": "CAP-001"}
        assert session.graph.get_node("CAP-001").position.x == 350


class TestLayoutAndReload:
    def test_switch_to_masonry(self, client):
        response = client.post("/api/layout", json={"policy": "masonry"})

        data = response.get_json()
        assert data["success"] is True
        assert data["snapshot"]["view"]["policy"] == "masonry"
        assert all(n["type"] != "Storyboard" for n in data["snapshot"]["nodes"])

    def test_invalid_policy(self, client):
        response = client.post("/api/layout", json={"policy": "radial"})

        assert response.status_code == 400

    def test_reload_picks_up_new_document(self, client, store):
        store.add(WORKSPACE, NodeType.ENABLER, "Rates", identifier="ENB-002")

        data = client.post("/api/reload").get_json()

        assert data["success"] is True
        assert data["snapshot"]["orphans"]["Enabler"] == ["ENB-002"]

    def test_reload_failure(self, client, store):
        store.fail_operations.add("list_records")

        response = client.post("/api/reload")

        assert response.status_code == 500
        assert response.get_json()["success"] is False
