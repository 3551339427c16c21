"""Tests for the Interaction Controller gesture state machine."""

from storymap.graph.errors import ErrorCode
from storymap.graph.GraphNode import NodeType, Position
from storymap.session.interaction import GestureState, Selection
from tests.core.graph_test_helpers import graph_fingerprint, make_node


class TestNodeDrag:
    def test_drag_moves_node_by_pointer_delta(self, harness):
        c = harness.controller

        assert c.pointer_down_node("CAP-001", 350, 270).ok
        assert c.state is GestureState.DRAGGING_NODE
        outcome = c.pointer_move(400, 300)
        c.pointer_up(400, 300)

        assert harness.graph.get_node("CAP-001").position == Position(390, 290)
        assert [m["operation"] for m in outcome.to_dict()["mutations"]] == ["move_node"]
        assert c.state is GestureState.IDLE
        assert c.selection == Selection("node", "CAP-001")

    def test_pointer_down_on_missing_node(self, harness):
        outcome = harness.controller.pointer_down_node("NOPE", 0, 0)

        assert not outcome.ok
        assert outcome.code is ErrorCode.NOT_FOUND
        assert harness.controller.state is GestureState.IDLE


class TestEndpointDrag:
    def test_rebind_to_other_storyboard_writes_child(self, harness):
        c = harness.controller
        c.click_edge("CAP-001->STORY-CHECKOUT")
        c.pointer_down_endpoint("CAP-001->STORY-CHECKOUT", "to", 400, 100)
        c.pointer_move(120, 100)
        assert harness.graph.has_edge("CAP-001->STORY-CHECKOUT")

        outcome = c.pointer_up(120, 100, target_node_id="STORY-LOGIN")
        harness.scheduler.run_pending()

        assert outcome.ok
        assert harness.graph.has_edge("CAP-001->STORY-LOGIN")
        assert c.selection == Selection("edge", "CAP-001->STORY-LOGIN")
        assert harness.fields("CAP-001")["Storyboard Reference"] == "Login"

    def test_drop_on_empty_space_cancels(self, harness):
        c = harness.controller
        c.click_edge("ENB-001->CAP-001")
        c.pointer_down_endpoint("ENB-001->CAP-001", "to", 0, 0)

        outcome = c.pointer_up(5, 5)

        assert outcome.message == "cancelled"
        assert harness.graph.has_edge("ENB-001->CAP-001")
        assert harness.scheduler.pending_tasks == 0

    def test_endpoint_requires_selected_edge(self, harness):
        outcome = harness.controller.pointer_down_endpoint("ENB-001->CAP-001", "to", 0, 0)

        assert not outcome.ok
        assert harness.controller.state is GestureState.IDLE

    def test_rebind_onto_own_from_node_is_rejected(self, harness):
        c = harness.controller
        before = graph_fingerprint(harness.graph)
        c.click_edge("STORY-LOGIN->STORY-CHECKOUT")
        c.pointer_down_endpoint("STORY-LOGIN->STORY-CHECKOUT", "to", 400, 100)

        outcome = c.pointer_up(100, 100, target_node_id="STORY-LOGIN")

        assert outcome.code is ErrorCode.SELF_LOOP
        assert graph_fingerprint(harness.graph) == before
        [notice] = harness.session.notices.drain()
        assert notice.code is ErrorCode.SELF_LOOP

    def test_rebind_from_endpoint_promotes_orphan(self, harness):
        c = harness.controller
        c.create_node("enabler", "Rate Cache", 900, 900)
        harness.scheduler.run_pending()
        c.click_edge("ENB-001->CAP-001")
        c.pointer_down_endpoint("ENB-001->CAP-001", "from", 0, 0)

        outcome = c.pointer_up(0, 0, target_node_id="ENB-RATE-CACHE")
        harness.scheduler.run_pending()

        assert outcome.ok
        assert harness.graph.is_orphan("ENB-001")
        # ENB-001 keeps its card at (340, 460)
        assert harness.graph.get_node("ENB-RATE-CACHE").position == Position(620, 460)
        assert "Capability ID" not in harness.fields("ENB-001")


class TestNewEdge:
    def test_connect_orients_child_to_parent(self, harness):
        c = harness.controller
        c.create_node("test_scenario", "Tax Totals", 0, 0)
        harness.scheduler.run_pending()

        assert c.begin_connect("ENB-001").ok
        assert c.state is GestureState.DRAWING_NEW_EDGE
        outcome = c.click_node("TS-TAX-TOTALS")

        assert outcome.ok
        assert harness.graph.has_edge("TS-TAX-TOTALS->ENB-001")
        assert c.selection == Selection("edge", "TS-TAX-TOTALS->ENB-001")

    def test_invalid_pair_rejected(self, harness):
        c = harness.controller
        c.begin_connect("STORY-LOGIN")

        outcome = c.click_node("ENB-001")

        assert outcome.code is ErrorCode.INVALID_EDGE_KIND
        assert c.state is GestureState.SELECTING

    def test_clicking_origin_cancels(self, harness):
        c = harness.controller
        c.begin_connect("CAP-001")

        assert c.click_node("CAP-001").message == "cancelled"
        assert harness.graph.edge_count() == 3

    def test_duplicate_rejected(self, harness):
        c = harness.controller
        c.begin_connect("CAP-001")

        outcome = c.click_node("STORY-CHECKOUT")

        assert outcome.code is ErrorCode.DUPLICATE_EDGE

    def test_read_only_child_rejected(self, harness):
        harness.graph.add_node(make_node("ENB-RO", NodeType.ENABLER, writable=False))
        c = harness.controller
        c.begin_connect("ENB-RO")

        outcome = c.click_node("CAP-001")

        assert outcome.code is ErrorCode.READ_ONLY
        assert not harness.graph.has_edge("ENB-RO->CAP-001")


class TestSelection:
    def test_click_edge_toggles(self, harness):
        c = harness.controller

        c.click_edge("ENB-001->CAP-001")
        assert c.selection == Selection("edge", "ENB-001->CAP-001")
        c.click_edge("ENB-001->CAP-001")
        assert c.selection is None
        assert c.state is GestureState.IDLE

    def test_node_and_edge_selection_exclusive(self, harness):
        c = harness.controller
        c.click_edge("ENB-001->CAP-001")

        c.click_node("CAP-001")

        assert c.selection == Selection("node", "CAP-001")

    def test_background_click_clears(self, harness):
        c = harness.controller
        c.begin_connect("CAP-001")

        c.click_background()

        assert c.selection is None
        assert c.pending is None
        assert c.state is GestureState.IDLE


class TestDeletes:
    def test_delete_selected_edge(self, harness):
        c = harness.controller
        c.click_edge("ENB-001->CAP-001")

        outcome = c.delete_selected_edge()

        assert outcome.ok
        assert c.selection is None
        assert harness.graph.is_orphan("ENB-001")

    def test_delete_selected_edge_without_selection(self, harness):
        assert not harness.controller.delete_selected_edge().ok

    def test_delete_node_with_edges_needs_cascade(self, harness):
        outcome = harness.controller.delete_node("CAP-001")

        assert outcome.code is ErrorCode.HAS_EDGES
        assert harness.graph.has_node("CAP-001")

    def test_delete_read_only_node_rejected(self, harness):
        harness.graph.add_node(make_node("CAP-RO", NodeType.CAPABILITY, writable=False))

        outcome = harness.controller.delete_node("CAP-RO")

        assert outcome.code is ErrorCode.READ_ONLY
        assert harness.graph.has_node("CAP-RO")


class TestCreateAndViewport:
    def test_create_node_unique_identifier(self, harness):
        c = harness.controller

        first = c.create_node("capability", "Returns", 0, 0)
        second = c.create_node("Capability", "Returns", 0, 0)

        assert first.message == "CAP-RETURNS"
        assert second.message == "CAP-RETURNS-2"
        assert harness.graph.orphans()[NodeType.CAPABILITY] == ["CAP-RETURNS", "CAP-RETURNS-2"]

    def test_create_node_invalid_input(self, harness):
        c = harness.controller

        assert not c.create_node("epic", "X", 0, 0).ok
        assert not c.create_node("enabler", "   ", 0, 0).ok
        assert len(harness.session.notices) == 2

    def test_zoom_is_clamped(self, harness):
        outcome = harness.controller.zoom(10)

        assert outcome.message == "4"
        assert harness.session.view_state.zoom == 4.0

    def test_scroll_updates_view_state(self, harness):
        harness.controller.scroll(120, 40)
        harness.scheduler.settle(0.5)

        [(_, value)] = harness.view_store.saves
        assert value["scroll"] == [120, 40]
