"""Tests for the Persistence Synchronizer."""

from storymap.graph.errors import ErrorCode
from storymap.graph.GraphNode import NodeType
from storymap.session.sync import format_reference, reference_update
from tests.core.graph_test_helpers import make_node


class TestDebouncedViewState:
    def test_twenty_moves_one_write_with_final_position(self, harness):
        controller = harness.controller
        controller.pointer_down_node("CAP-001", 350, 270)
        for i in range(1, 21):
            controller.pointer_move(350 + i * 5, 270 + i * 3)
            harness.scheduler.advance(0.05)
        controller.pointer_up(450, 330)

        assert harness.view_store.saves == []
        harness.scheduler.settle(0.5)

        [(key, value)] = harness.view_store.saves
        assert key == "view-shop-layered"
        assert value["positions"]["CAP-001"] == [440, 320]
        assert harness.store.calls_to("update_field") == []

    def test_quiet_period_restarts(self, harness):
        harness.controller.pointer_down_node("ENB-001", 0, 0)
        harness.controller.pointer_move(10, 10)
        harness.scheduler.settle(0.4)
        harness.controller.pointer_move(20, 20)
        harness.scheduler.settle(0.4)

        assert harness.view_store.saves == []

        harness.scheduler.settle(0.1)
        assert len(harness.view_store.saves) == 1

    def test_view_state_save_failure_posts_warning(self, harness):
        harness.view_store.fail = True
        harness.controller.zoom(2.0)

        harness.scheduler.settle(0.5)

        [notice] = harness.session.notices.drain()
        assert notice.code is ErrorCode.IO_ERROR
        assert notice.level == "warning"


class TestReferenceWrites:
    def test_remove_edge_clears_child_field(self, harness):
        harness.controller.delete_edge("ENB-001->CAP-001")

        [result] = harness.scheduler.run_pending()

        assert result["success"]
        assert "Capability ID" not in harness.fields("ENB-001")
        assert harness.fields("CAP-001")["Storyboard Reference"] == "Checkout"

    def test_flow_edges_are_not_written(self, harness):
        harness.controller.delete_edge("STORY-LOGIN->STORY-CHECKOUT")

        assert harness.scheduler.run_pending() == []
        assert harness.store.calls_to("update_field") == []

    def test_add_edge_writes_field_the_reference_came_from(self, harness):
        harness.controller.delete_edge("ENB-001->CAP-001")
        harness.scheduler.run_pending()

        harness.controller.begin_connect("CAP-001")
        outcome = harness.controller.click_node("ENB-001")
        harness.scheduler.run_pending()

        assert outcome.ok
        assert harness.graph.has_edge("ENB-001->CAP-001")
        assert harness.fields("ENB-001")["Capability ID"] == "CAP-001"

    def test_connect_to_other_storyboard_moves_reference(self, harness):
        harness.controller.begin_connect("CAP-001")
        outcome = harness.controller.click_node("STORY-LOGIN")
        harness.scheduler.run_pending()

        assert outcome.ok
        assert harness.fields("CAP-001")["Storyboard Reference"] == "Login"
        assert harness.graph.unsynced_ids() == []
        assert [p.id for p in harness.graph.iter_parents("CAP-001")] == ["STORY-LOGIN"]

        graph = harness.reload()
        assert graph.has_edge("CAP-001->STORY-LOGIN")
        assert not graph.has_edge("CAP-001->STORY-CHECKOUT")

    def test_rebind_from_onto_parented_node_moves_reference(self, harness):
        c = harness.controller
        cap_id = c.create_node("capability", "Wishlist", 900, 260).message
        enb_id = c.create_node("enabler", "Rate Cache", 900, 460).message
        harness.scheduler.run_pending()
        c.begin_connect(enb_id)
        c.click_node(cap_id)
        harness.scheduler.run_pending()

        c.click_edge("ENB-001->CAP-001")
        c.pointer_down_endpoint("ENB-001->CAP-001", "from", 0, 0)
        outcome = c.pointer_up(0, 0, target_node_id=enb_id)
        harness.scheduler.run_pending()

        assert outcome.ok
        source = harness.graph.get_node(enb_id).source
        assert harness.store.fields(source)["Capability ID"] == "CAP-001"
        assert not harness.graph.has_edge(f"{enb_id}->{cap_id}")

        graph = harness.reload()
        assert [p.id for p in graph.iter_parents(enb_id)] == ["CAP-001"]
        assert graph.is_orphan("ENB-001")

    def test_failure_marks_unsynced_and_keeps_mutation(self, harness):
        harness.store.fail_operations.add("update_field")

        harness.controller.delete_edge("ENB-001->CAP-001")
        [result] = harness.scheduler.run_pending()

        assert not result["success"]
        assert not harness.graph.has_edge("ENB-001->CAP-001")
        assert harness.graph.is_unsynced("ENB-001")
        [notice] = harness.session.notices.drain()
        assert notice.code is ErrorCode.IO_ERROR
        assert notice.target_id == "ENB-001"

    def test_later_success_clears_unsynced(self, harness):
        harness.store.fail_operations.add("update_field")
        harness.controller.delete_edge("ENB-001->CAP-001")
        harness.scheduler.run_pending()

        harness.store.fail_operations.clear()
        harness.controller.begin_connect("ENB-001")
        harness.controller.click_node("CAP-001")
        harness.scheduler.run_pending()

        assert harness.graph.unsynced_ids() == []

    def test_failed_write_after_reload_is_ignored(self, harness):
        harness.controller.delete_edge("ENB-001->CAP-001")
        harness.store.fail_operations.add("update_field")
        harness.reload()

        [result] = harness.scheduler.run_pending()

        assert result["stale"]
        assert harness.graph.unsynced_ids() == []
        assert harness.graph.has_edge("ENB-001->CAP-001")
        assert harness.session.notices.drain() == []

    def test_reload_cancels_pending_view_state(self, harness):
        harness.controller.zoom(3.0)
        harness.reload()

        harness.scheduler.settle(1.0)

        assert harness.view_store.saves == []


class TestRecordWrites:
    def test_delete_node_deletes_document(self, harness):
        harness.controller.delete_node("ENB-001", cascade=True)
        harness.scheduler.run_pending()

        assert not harness.store.has(harness.handles["ENB-001"])
        [(_, _, cascade)] = harness.store.calls_to("delete_record")
        assert cascade is True

    def test_delete_failure_marks_unsynced(self, harness):
        harness.store.fail_operations.add("delete_record")

        harness.controller.delete_node("ENB-001", cascade=True)
        harness.scheduler.run_pending()

        assert harness.graph.is_unsynced("ENB-001")

    def test_create_node_gets_source_after_write(self, harness):
        outcome = harness.controller.create_node("enabler", "Rate Cache", 500, 460)
        node = harness.graph.get_node(outcome.message)

        assert node.read_only
        harness.scheduler.run_pending()

        assert not node.read_only
        assert node.source.filename == "ENB-RATE-CACHE.md"
        assert harness.store.fields(node.source)["ID"] == "ENB-RATE-CACHE"

    def test_create_failure_marks_unsynced(self, harness):
        harness.store.fail_operations.add("create_record")

        outcome = harness.controller.create_node("capability", "Returns", 0, 0)
        harness.scheduler.run_pending()

        assert harness.graph.is_unsynced(outcome.message)
        assert harness.graph.get_node(outcome.message).read_only


class TestReferenceFormat:
    def test_format_per_field(self):
        parent = make_node("CAP-001", NodeType.CAPABILITY, "Cart Pricing")

        assert format_reference("Capability ID", parent) == "CAP-001"
        assert format_reference("Capability", parent) == "Cart Pricing (CAP-001)"
        assert format_reference("storyboard reference", parent) == "Cart Pricing"

    def test_primary_field_when_none_recorded(self, graph):
        graph.add_node(make_node("T2", NodeType.TEST_SCENARIO))
        graph.add_edge("T2", "E1")

        assert reference_update(graph, graph.get_node("T2")) == ("Enabler ID", "E1")

    def test_first_remaining_parent(self, graph):
        graph.add_edge("C1", "S1")
        graph.remove_edge("C1->S2")

        assert reference_update(graph, graph.get_node("C1")) == ("Storyboard Reference", "Login")
        graph.remove_edge("C1->S1")
        assert reference_update(graph, graph.get_node("C1")) == ("Storyboard Reference", "")
