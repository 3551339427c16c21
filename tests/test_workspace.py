"""Tests for workspace session loading, reload and snapshots."""

import asyncio

from storymap.graph.errors import ErrorCode
from storymap.graph.GraphNode import NodeType, Position
from storymap.graph.layout import LayoutPolicy
from storymap.session.scheduler import ManualScheduler
from storymap.session.workspace import WorkspaceSession
from storymap.store.memory import MemoryKeyValueStore, MemorySpecStore
from tests.core.graph_test_helpers import WORKSPACE, SessionHarness, seed_checkout


def cached_view(**positions):
    return {
        "workspace": WORKSPACE,
        "policy": "layered",
        "positions": {k: list(v) for k, v in positions.items()},
        "zoom": 1.5,
        "scroll": [10, 20],
    }


class TestLoad:
    def test_graph_and_layout(self, harness):
        graph = harness.graph

        assert graph.node_count() == 4
        assert [e.id for e in graph.all_edges()] == [
            "STORY-LOGIN->STORY-CHECKOUT",
            "CAP-001->STORY-CHECKOUT",
            "ENB-001->CAP-001",
        ]
        assert graph.get_node("ENB-001").position == Position(340, 460)
        assert not graph.get_node("CAP-001").read_only

    def test_cached_positions_restored(self):
        h = SessionHarness()
        h.view_store.data["view-shop-layered"] = cached_view(**{"CAP-001": (700, 300), "GONE": (1, 1)})

        h.load()

        assert h.graph.get_node("CAP-001").position == Position(700, 300)
        assert h.graph.get_node("ENB-001").position == Position(340, 460)
        assert h.session.view_state.zoom == 1.5
        assert h.session.view_state.scroll_y == 20

    def test_reload_recomputes_positions(self):
        h = SessionHarness()
        h.view_store.data["view-shop-layered"] = cached_view(**{"CAP-001": (700, 300)})
        h.load()

        h.reload()

        assert h.graph.get_node("CAP-001").position == Position(340, 260)
        assert h.session.view_state.zoom == 1.0

    def test_reload_picks_up_document_changes(self, harness):
        harness.store.add(WORKSPACE, NodeType.ENABLER, "Rates", identifier="ENB-002")

        harness.reload()

        assert harness.graph.orphans()[NodeType.ENABLER] == ["ENB-002"]

    def test_reload_resets_gesture_state(self, harness):
        harness.controller.click_edge("ENB-001->CAP-001")

        harness.reload()

        assert harness.controller.selection is None

    def test_unreadable_view_state_is_a_warning(self):
        h = SessionHarness()
        h.view_store.fail = True

        h.load()

        [notice] = h.session.notices.drain()
        assert notice.code is ErrorCode.IO_ERROR
        assert h.graph.node_count() == 4

    def test_ambiguity_becomes_notice(self):
        def seed(store):
            store.add(WORKSPACE, NodeType.STORYBOARD, "Checkout", identifier="STORY-1")
            store.add(WORKSPACE, NodeType.STORYBOARD, "Checkout Express", identifier="STORY-2")
            store.add(
                WORKSPACE,
                NodeType.CAPABILITY,
                "Pay",
                identifier="CAP-001",
                fields={"Storyboard Reference": "Check"},
            )
            return {}

        h = SessionHarness(seed=seed)
        h.load()

        [notice] = h.session.notices.drain()
        assert notice.code is ErrorCode.AMBIGUOUS_MATCH
        assert notice.target_id == "CAP-001"

    def test_narrative_order(self):
        store = MemorySpecStore()
        seed_checkout(store)
        session = WorkspaceSession(
            WORKSPACE,
            store,
            MemoryKeyValueStore(),
            ManualScheduler(),
            narrative_order=["Checkout", "Login"],
        )

        graph = asyncio.run(session.load())

        assert graph.has_edge("STORY-CHECKOUT->STORY-LOGIN")
        assert graph.get_node("STORY-CHECKOUT").position == Position(60, 60)


class TestSnapshot:
    def test_layered_snapshot(self, harness):
        harness.controller.click_edge("ENB-001->CAP-001")

        snap = harness.session.snapshot().to_dict()

        assert [n["id"] for n in snap["nodes"]] == [
            "STORY-LOGIN",
            "STORY-CHECKOUT",
            "CAP-001",
            "ENB-001",
        ]
        assert len(snap["edges"]) == 3
        assert snap["selection"] == {"kind": "edge", "id": "ENB-001->CAP-001"}
        assert snap["view"]["gesture"] == "selecting"
        assert snap["canvas"] == {"width": 580, "height": 600}

    def test_snapshot_drains_notices(self, harness):
        harness.controller.delete_node("CAP-001")

        first = harness.session.snapshot()
        second = harness.session.snapshot()

        assert [n["code"] for n in first.notices] == ["HasEdges"]
        assert second.notices == []

    def test_unsynced_nodes_flagged(self, harness):
        harness.store.fail_operations.add("update_field")
        harness.controller.delete_edge("ENB-001->CAP-001")
        harness.scheduler.run_pending()

        snap = harness.session.snapshot()

        [enabler] = [n for n in snap.nodes if n["id"] == "ENB-001"]
        assert enabler["unsynced"] is True
        assert enabler["orphan"] is True
        assert snap.unsynced == ["ENB-001"]
        assert snap.orphans["Enabler"] == ["ENB-001"]

    def test_masonry_hides_storyboards(self, harness):
        harness.session.set_policy(LayoutPolicy.MASONRY)

        snap = harness.session.snapshot()

        assert [n["id"] for n in snap.nodes] == ["CAP-001", "ENB-001"]
        assert [e["id"] for e in snap.edges] == ["ENB-001->CAP-001"]
        assert snap.view["policy"] == "masonry"
        assert harness.graph.get_node("CAP-001").position == Position(100, 100)

    def test_policy_switch_saves_under_policy_key(self, harness):
        harness.session.set_policy(LayoutPolicy.MASONRY)
        harness.scheduler.settle(0.5)

        [(key, value)] = harness.view_store.saves
        assert key == "view-shop-masonry"
        assert "STORY-LOGIN" not in value["positions"]

    def test_pending_drag_preview(self, harness):
        harness.controller.begin_connect("CAP-001")
        harness.controller.pointer_move(500, 500)

        snap = harness.session.snapshot()

        assert snap.pending_drag["kind"] == "connect"
        assert snap.pending_drag["point"] == {"x": 500, "y": 500}
