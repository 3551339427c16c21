"""Interaction Controller - gesture state machine over the graph.

States::

    IDLE -> SELECTING -> {DRAGGING_NODE | DRAGGING_ENDPOINT | DRAWING_NEW_EDGE} -> IDLE

Callbacks take only ids and coordinates and always return an
``Outcome``. Graph errors are caught here and turned into a failed
outcome plus a notice; they never propagate to the view.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from storymap.graph.errors import ErrorCode, GraphError, NotFound, ReadOnly
from storymap.graph.GraphNode import GraphNode, NodeType, Position
from storymap.graph.mutations import REBIND_EDGE, MutationEntry
from storymap.graph.relations import orient

if TYPE_CHECKING:
    from storymap.graph.builder import SpecGraph
    from storymap.session.workspace import WorkspaceSession

logger = logging.getLogger(__name__)


class GestureState(Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    DRAGGING_NODE = "dragging_node"
    DRAGGING_ENDPOINT = "dragging_endpoint"
    DRAWING_NEW_EDGE = "drawing_new_edge"


@dataclass(frozen=True)
class Selection:
    kind: str  # "node" or "edge"
    id: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "id": self.id}


@dataclass
class PendingDrag:
    """Preview state of an uncommitted gesture.

    Attributes:
        kind: "node", "endpoint" or "connect".
        id: Dragged node id, or the edge id for endpoint drags.
        endpoint: "from" or "to" for endpoint drags.
        anchor: Node id the floating end started from.
        point: Current floating pointer position.
        offset: Pointer offset from the node corner for node drags.
    """

    kind: str
    id: str
    endpoint: str | None = None
    anchor: str | None = None
    point: tuple[float, float] = (0.0, 0.0)
    offset: tuple[float, float] = (0.0, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "endpoint": self.endpoint,
            "anchor": self.anchor,
            "point": {"x": self.point[0], "y": self.point[1]},
        }


@dataclass(frozen=True)
class Outcome:
    """Result of one controller callback."""

    ok: bool
    code: ErrorCode | None = None
    message: str = ""
    entries: tuple[MutationEntry, ...] = field(default=(), repr=False)

    @classmethod
    def success(cls, message: str = "", *entries: MutationEntry | None) -> Outcome:
        return cls(True, None, message, tuple(e for e in entries if e is not None))

    @classmethod
    def failure(cls, code: ErrorCode, message: str) -> Outcome:
        return cls(False, code, message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.ok,
            "code": self.code.value if self.code else None,
            "message": self.message,
            "mutations": [e.to_dict() for e in self.entries],
        }


class InteractionController:
    """Translates pointer gestures into graph mutations."""

    def __init__(self, session: WorkspaceSession) -> None:
        self.session = session
        self.state = GestureState.IDLE
        self.selection: Selection | None = None
        self.pending: PendingDrag | None = None

    @property
    def graph(self) -> SpecGraph:
        return self.session.graph

    def reset(self) -> None:
        self.state = GestureState.IDLE
        self.selection = None
        self.pending = None

    # ─────────────────────────────────────────────────────────────────────────
    # Pointer gestures
    # ─────────────────────────────────────────────────────────────────────────

    def pointer_down_node(self, node_id: str, x: float, y: float) -> Outcome:
        """Select a node and start dragging it."""
        if self.state is GestureState.DRAWING_NEW_EDGE:
            return self.click_node(node_id)
        node = self.graph.find_by_id(node_id)
        if node is None:
            return self._reject(NotFound(f"Node '{node_id}' not found", target_id=node_id))

        self.selection = Selection("node", node_id)
        self.state = GestureState.DRAGGING_NODE
        self.pending = PendingDrag(
            "node",
            node_id,
            point=(x, y),
            offset=(x - node.position.x, y - node.position.y),
        )
        return Outcome.success()

    def pointer_down_endpoint(self, edge_id: str, endpoint: str, x: float, y: float) -> Outcome:
        """Grab an endpoint handle of the selected edge."""
        if self.selection != Selection("edge", edge_id):
            return Outcome.failure(ErrorCode.NOT_FOUND, f"Edge '{edge_id}' is not selected")
        if endpoint not in ("from", "to"):
            return Outcome.failure(ErrorCode.NOT_FOUND, f"Unknown endpoint {endpoint!r}")
        edge = self.graph.find_edge(edge_id)
        if edge is None:
            return self._reject(NotFound(f"Edge '{edge_id}' not found", target_id=edge_id))

        self.state = GestureState.DRAGGING_ENDPOINT
        self.pending = PendingDrag(
            "endpoint", edge_id, endpoint=endpoint, anchor=edge.endpoint(endpoint), point=(x, y)
        )
        return Outcome.success()

    def pointer_move(self, x: float, y: float) -> Outcome:
        """Move the dragged node, or the floating end of a preview line."""
        pending = self.pending
        if pending is None:
            return Outcome.success()
        pending.point = (x, y)
        if self.state is not GestureState.DRAGGING_NODE:
            return Outcome.success()

        position = Position(x - pending.offset[0], y - pending.offset[1])
        try:
            entry = self.graph.move_node(pending.id, position)
        except GraphError as e:
            self._end_gesture()
            return self._reject(e)
        self.session.sync.on_mutation(entry)
        return Outcome.success("", entry)

    def pointer_up(self, x: float, y: float, target_node_id: str | None = None) -> Outcome:
        """Finish the active gesture.

        For endpoint drags ``target_node_id`` is the node under the
        pointer, or None over empty space.
        """
        state, pending = self.state, self.pending

        if state is GestureState.DRAGGING_NODE:
            # the dropped node stays selected
            self.pending = None
            self.state = GestureState.IDLE
            self.session.sync.schedule_view_state()
            return Outcome.success()

        if state is GestureState.DRAGGING_ENDPOINT and pending is not None:
            self._end_gesture(keep_selection=True)
            if target_node_id is None or target_node_id == pending.anchor:
                return Outcome.success("cancelled")
            assert pending.endpoint is not None
            return self._rebind(pending.id, pending.endpoint, target_node_id)

        if pending is not None:
            pending.point = (x, y)
        return Outcome.success()

    # ─────────────────────────────────────────────────────────────────────────
    # Clicks and selection
    # ─────────────────────────────────────────────────────────────────────────

    def begin_connect(self, node_id: str) -> Outcome:
        """Enter new-edge drawing from a node's connect affordance."""
        node = self.graph.find_by_id(node_id)
        if node is None:
            return self._reject(NotFound(f"Node '{node_id}' not found", target_id=node_id))
        self.selection = Selection("node", node_id)
        self.state = GestureState.DRAWING_NEW_EDGE
        self.pending = PendingDrag(
            "connect",
            node_id,
            anchor=node_id,
            point=(node.center_x, node.position.y + node.size.height / 2),
        )
        return Outcome.success()

    def click_node(self, node_id: str) -> Outcome:
        """Select a node, or complete/cancel a new edge while drawing."""
        if self.state is GestureState.DRAWING_NEW_EDGE and self.pending is not None:
            origin = self.pending.id
            self._end_gesture(keep_selection=True)
            if node_id == origin:
                return Outcome.success("cancelled")
            return self._connect(origin, node_id)

        if self.graph.find_by_id(node_id) is None:
            return self._reject(NotFound(f"Node '{node_id}' not found", target_id=node_id))
        self.selection = Selection("node", node_id)
        self.state = GestureState.SELECTING
        return Outcome.success()

    def click_edge(self, edge_id: str) -> Outcome:
        """Toggle edge selection."""
        if self.graph.find_edge(edge_id) is None:
            return self._reject(NotFound(f"Edge '{edge_id}' not found", target_id=edge_id))
        self._end_gesture(keep_selection=True)
        if self.selection == Selection("edge", edge_id):
            self.selection = None
            self.state = GestureState.IDLE
        else:
            self.selection = Selection("edge", edge_id)
            self.state = GestureState.SELECTING
        return Outcome.success()

    def click_background(self) -> Outcome:
        """Clear selection and abandon any gesture."""
        self._end_gesture()
        return Outcome.success()

    # ─────────────────────────────────────────────────────────────────────────
    # Structural edits
    # ─────────────────────────────────────────────────────────────────────────

    def delete_edge(self, edge_id: str) -> Outcome:
        edge = self.graph.find_edge(edge_id)
        if edge is None:
            return self._reject(NotFound(f"Edge '{edge_id}' not found", target_id=edge_id))
        try:
            if edge.kind.is_hierarchical:
                self._require_writable(edge.from_id)
            entry = self.graph.remove_edge(edge_id)
        except GraphError as e:
            return self._reject(e)
        if self.selection == Selection("edge", edge_id):
            self._end_gesture()
        self.session.sync.on_mutation(entry)
        return Outcome.success("", entry)

    def delete_selected_edge(self) -> Outcome:
        if self.selection is None or self.selection.kind != "edge":
            return Outcome.failure(ErrorCode.NOT_FOUND, "No edge selected")
        return self.delete_edge(self.selection.id)

    def delete_node(self, node_id: str, cascade: bool = False) -> Outcome:
        try:
            self._require_writable(node_id)
            entry = self.graph.remove_node(node_id, cascade=cascade)
        except GraphError as e:
            return self._reject(e)
        selection = self.selection
        if selection is not None and (
            selection.id == node_id
            or (selection.kind == "edge" and self.graph.find_edge(selection.id) is None)
        ):
            self._end_gesture()
        self.session.sync.on_mutation(entry)
        return Outcome.success("", entry)

    def create_node(
        self, node_type: str, name: str, x: float, y: float, status: str = "draft"
    ) -> Outcome:
        """Create a node; its document is created in the background."""
        try:
            parsed = NodeType.parse(node_type)
        except ValueError as e:
            return self._invalid(str(e))
        name = name.strip()
        if not name:
            return self._invalid("A name is required")

        identifier = self._new_identifier(parsed, name)
        node = GraphNode(
            id=identifier,
            type=parsed,
            name=name,
            status=status,
            identifier=identifier,
            position=Position(x, y),
            size=self.session.engine.size_for(self.session.policy, parsed),
        )
        try:
            entry = self.graph.add_node(node)
        except GraphError as e:
            return self._reject(e)
        self.selection = Selection("node", node.id)
        self.state = GestureState.SELECTING
        self.session.sync.on_mutation(entry)
        return Outcome.success(node.id, entry)

    # ─────────────────────────────────────────────────────────────────────────
    # Viewport
    # ─────────────────────────────────────────────────────────────────────────

    def scroll(self, x: float, y: float) -> Outcome:
        state = self.session.view_state
        state.scroll_x, state.scroll_y = x, y
        self.session.sync.schedule_view_state()
        return Outcome.success()

    def zoom(self, level: float) -> Outcome:
        applied = self.session.view_state.set_zoom(level)
        self.session.sync.schedule_view_state()
        return Outcome.success(f"{applied:g}")

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _connect(self, a_id: str, b_id: str) -> Outcome:
        graph = self.graph
        try:
            a, b = graph.get_node(a_id), graph.get_node(b_id)
            child_id, parent_id = orient(a.id, a.type, b.id, b.type)
            if graph.get_node(child_id).type is NodeType.STORYBOARD:
                entry = graph.add_edge(child_id, parent_id)
            else:
                self._require_writable(child_id)
                entry = graph.set_parent(child_id, parent_id)
        except GraphError as e:
            return self._reject(e)

        self.selection = Selection("edge", entry.target_id)
        self.state = GestureState.SELECTING
        entries = [entry]
        self.session.sync.on_mutation(entry)
        if entry.operation == REBIND_EDGE or entry.before_state.get("orphan"):
            entries.extend(self.session.reposition_subtree(child_id))
        return Outcome.success("", *entries)

    def _rebind(self, edge_id: str, endpoint: str, node_id: str) -> Outcome:
        graph = self.graph
        try:
            edge = graph.get_edge(edge_id)
            if edge.kind.is_hierarchical:
                self._require_writable(edge.from_id)
                if endpoint == "from":
                    self._require_writable(node_id)
            promoted = (
                endpoint == "from" and graph.has_node(node_id) and graph.is_orphan(node_id)
            )
            entry = graph.rebind_edge_endpoint(edge_id, endpoint, node_id, replace_parents=True)
        except GraphError as e:
            return self._reject(e)
        if entry is None:
            return Outcome.success("unchanged")

        self.selection = Selection("edge", entry.target_id)
        self.state = GestureState.SELECTING
        entries = [entry]
        self.session.sync.on_mutation(entry)
        if promoted or (endpoint == "from" and entry.before_state["replaced"]):
            entries.extend(self.session.reposition_subtree(node_id))
        return Outcome.success("", *entries)

    def _require_writable(self, node_id: str) -> None:
        node = self.graph.get_node(node_id)
        if node.read_only:
            raise ReadOnly(f"{node.type.label} '{node.name}' is read-only", target_id=node_id)

    def _new_identifier(self, node_type: NodeType, name: str) -> str:
        prefix = self.session.prefixes[node_type]
        base = f"{prefix}-{re.sub(r'[^A-Za-z0-9]+', '-', name).strip('-').upper() or 'NEW'}"
        candidate, suffix = base, 2
        while self.graph.has_node(candidate):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _end_gesture(self, keep_selection: bool = False) -> None:
        self.pending = None
        if keep_selection and self.selection is not None:
            self.state = GestureState.SELECTING
        else:
            self.selection = None
            self.state = GestureState.IDLE

    def _invalid(self, message: str) -> Outcome:
        self.session.notices.error(message)
        return Outcome(False, None, message)

    def _reject(self, error: GraphError) -> Outcome:
        self.session.notices.error(error.message, code=error.code, target_id=error.target_id)
        logger.info("Rejected: %s (%s)", error.message, error.code.value)
        return Outcome.failure(error.code, error.message)
