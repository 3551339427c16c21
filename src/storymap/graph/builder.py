"""Graph Builder - Constructs SpecGraph from loaded records.

This module provides the graph container with its validated mutation API
and the builder that turns typed records into a resolved graph.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from storymap.graph.errors import (
    AmbiguousMatch,
    DanglingReference,
    DuplicateEdge,
    DuplicateId,
    HasEdges,
    InvalidEdgeKind,
    NotFound,
    SelfLoop,
)
from storymap.graph.GraphNode import GraphNode, NodeType, Position
from storymap.graph.mutations import (
    ADD_EDGE,
    ADD_NODE,
    MOVE_NODE,
    REBIND_EDGE,
    REMOVE_EDGE,
    REMOVE_NODE,
    MutationEntry,
)
from storymap.graph.records import SpecRecord
from storymap.graph.relations import CONFIDENCE_HIGH, Edge, EdgeKind, edge_id

if TYPE_CHECKING:
    from storymap.graph.resolver import LowConfidenceAssignment, RelationshipResolver

logger = logging.getLogger(__name__)

ENDPOINTS = ("from", "to")


@dataclass
class SpecGraph:
    """Container for the specification graph of one workspace.

    Nodes and edges are kept in insertion order. Every mutation validates
    fully before touching state, so a failed call leaves the graph
    unchanged.

    Attributes:
        workspace: The workspace the graph was loaded from.
    """

    workspace: str = ""

    # Internal storage (prefixed) - excluded from constructor
    _nodes: dict[str, GraphNode] = field(default_factory=dict, init=False, repr=False)
    _edges: dict[str, Edge] = field(default_factory=dict, init=False, repr=False)
    _outgoing: dict[str, list[str]] = field(default_factory=dict, init=False, repr=False)
    _incoming: dict[str, list[str]] = field(default_factory=dict, init=False, repr=False)
    _sequence: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _next_sequence: int = field(default=0, init=False, repr=False)

    # Detection: populated at build time
    _ambiguities: list[AmbiguousMatch] = field(default_factory=list, init=False)
    _low_confidence: list[LowConfidenceAssignment] = field(default_factory=list, init=False)

    # Sync state
    _unsynced: set[str] = field(default_factory=set, init=False)

    # ─────────────────────────────────────────────────────────────────────────
    # Read access
    # ─────────────────────────────────────────────────────────────────────────

    def find_by_id(self, node_id: str) -> GraphNode | None:
        return self._nodes.get(node_id)

    def get_node(self, node_id: str) -> GraphNode:
        """Return a node or raise NotFound."""
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFound(f"Node '{node_id}' not found", target_id=node_id)
        return node

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def all_nodes(self) -> Iterator[GraphNode]:
        """Iterate all nodes in declared order."""
        yield from self._nodes.values()

    def nodes_by_type(self, node_type: NodeType) -> Iterator[GraphNode]:
        """Iterate nodes of one type in declared order."""
        for node in self._nodes.values():
            if node.type is node_type:
                yield node

    def node_count(self) -> int:
        return len(self._nodes)

    def node_index(self, node_id: str) -> int:
        """Declared order of a node; later additions sort last."""
        return self._sequence[node_id]

    def find_edge(self, edge_id_: str) -> Edge | None:
        return self._edges.get(edge_id_)

    def get_edge(self, edge_id_: str) -> Edge:
        """Return an edge or raise NotFound."""
        edge = self._edges.get(edge_id_)
        if edge is None:
            raise NotFound(f"Edge '{edge_id_}' not found", target_id=edge_id_)
        return edge

    def has_edge(self, edge_id_: str) -> bool:
        return edge_id_ in self._edges

    def edge_between(self, from_id: str, to_id: str) -> Edge | None:
        return self._edges.get(edge_id(from_id, to_id))

    def all_edges(self) -> Iterator[Edge]:
        yield from self._edges.values()

    def edge_count(self) -> int:
        return len(self._edges)

    def iter_outgoing_edges(self, node_id: str) -> Iterator[Edge]:
        for eid in self._outgoing.get(node_id, []):
            yield self._edges[eid]

    def iter_incoming_edges(self, node_id: str) -> Iterator[Edge]:
        for eid in self._incoming.get(node_id, []):
            yield self._edges[eid]

    def iter_incident_edges(self, node_id: str) -> Iterator[Edge]:
        """Iterate edges touching a node, in edge insertion order."""
        incident = set(self._outgoing.get(node_id, [])) | set(self._incoming.get(node_id, []))
        for eid, edge in self._edges.items():
            if eid in incident:
                yield edge

    def iter_parents(self, node_id: str) -> Iterator[GraphNode]:
        """Iterate hierarchical parents of a node, first-added first."""
        for edge in self.iter_outgoing_edges(node_id):
            if edge.kind.is_hierarchical:
                yield self._nodes[edge.to_id]

    def iter_children(self, node_id: str) -> Iterator[GraphNode]:
        """Iterate hierarchical children of a node in declared order."""
        children = [
            self._nodes[edge.from_id]
            for edge in self.iter_incoming_edges(node_id)
            if edge.kind.is_hierarchical
        ]
        yield from sorted(children, key=lambda n: self._sequence[n.id])

    def primary_parent(self, node_id: str) -> GraphNode | None:
        """The first hierarchical parent, used for layout and write-back."""
        return next(self.iter_parents(node_id), None)

    def is_orphan(self, node_id: str) -> bool:
        """True if a child-layer node has no hierarchical parent."""
        node = self.get_node(node_id)
        if node.type is NodeType.STORYBOARD:
            return False
        return self.primary_parent(node_id) is None

    def orphans(self) -> dict[NodeType, list[str]]:
        """Orphan node ids per child layer, in declared order."""
        result: dict[NodeType, list[str]] = {
            NodeType.CAPABILITY: [],
            NodeType.ENABLER: [],
            NodeType.TEST_SCENARIO: [],
        }
        for node in self._nodes.values():
            if node.type is not NodeType.STORYBOARD and self.primary_parent(node.id) is None:
                result[node.type].append(node.id)
        return result

    def ambiguous_matches(self) -> list[AmbiguousMatch]:
        return list(self._ambiguities)

    def low_confidence_assignments(self) -> list[LowConfidenceAssignment]:
        return list(self._low_confidence)

    # ─────────────────────────────────────────────────────────────────────────
    # Unsynced markers
    # ─────────────────────────────────────────────────────────────────────────

    def mark_unsynced(self, *ids: str) -> None:
        self._unsynced.update(ids)

    def clear_unsynced(self, *ids: str) -> None:
        self._unsynced.difference_update(ids)

    def is_unsynced(self, item_id: str) -> bool:
        return item_id in self._unsynced

    def unsynced_ids(self) -> list[str]:
        return sorted(self._unsynced)

    # ─────────────────────────────────────────────────────────────────────────
    # Mutation API
    # ─────────────────────────────────────────────────────────────────────────

    def add_node(self, node: GraphNode) -> MutationEntry:
        """Add a node.

        Raises:
            DuplicateId: If a node with the same id exists.
        """
        if node.id in self._nodes:
            raise DuplicateId(f"Node '{node.id}' already exists", target_id=node.id)

        self._insert_node(node)
        return MutationEntry(
            operation=ADD_NODE,
            target_id=node.id,
            before_state={},
            after_state={"node": node.to_dict()},
        )

    def move_node(self, node_id: str, position: Position) -> MutationEntry:
        """Replace a node's position.

        Raises:
            NotFound: If the node does not exist.
        """
        node = self.get_node(node_id)
        before = node.position
        node.position = position
        return MutationEntry(
            operation=MOVE_NODE,
            target_id=node_id,
            before_state={"position": before.to_dict()},
            after_state={"position": position.to_dict()},
        )

    def remove_node(self, node_id: str, cascade: bool = False) -> MutationEntry:
        """Remove a node, and with ``cascade`` every edge incident to it.

        Raises:
            NotFound: If the node does not exist.
            HasEdges: If edges touch the node and cascade is False.
        """
        node = self.get_node(node_id)
        incident = list(self.iter_incident_edges(node_id))
        if incident and not cascade:
            raise HasEdges(
                f"Node '{node_id}' has {len(incident)} edge(s); delete them or use cascade",
                target_id=node_id,
            )

        for edge in incident:
            self._detach_edge(edge.id)
        del self._nodes[node_id]
        self._outgoing.pop(node_id, None)
        self._incoming.pop(node_id, None)
        self._sequence.pop(node_id, None)

        return MutationEntry(
            operation=REMOVE_NODE,
            target_id=node_id,
            before_state={
                "node": node.to_dict(),
                "edges": [edge.to_dict() for edge in incident],
            },
            after_state={"cascade": cascade},
        )

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        *,
        inferred: bool = False,
        confidence: str = CONFIDENCE_HIGH,
    ) -> MutationEntry:
        """Add an edge; its kind is derived from the endpoint types.

        Raises:
            DanglingReference: If either endpoint does not exist.
            SelfLoop: If from_id equals to_id.
            InvalidEdgeKind: If no kind connects the endpoint types.
            DuplicateEdge: If an edge with the same pair exists.
        """
        edge = self._validated_edge(from_id, to_id, inferred=inferred, confidence=confidence)
        self._attach_edge(edge)
        return MutationEntry(
            operation=ADD_EDGE,
            target_id=edge.id,
            before_state={"orphan": self._was_orphan_before(edge)},
            after_state={"edge": edge.to_dict()},
        )

    def remove_edge(self, edge_id_: str) -> MutationEntry:
        """Remove an edge.

        Raises:
            NotFound: If the edge does not exist.
        """
        edge = self.get_edge(edge_id_)
        self._detach_edge(edge.id)
        return MutationEntry(
            operation=REMOVE_EDGE,
            target_id=edge.id,
            before_state={"edge": edge.to_dict()},
            after_state={},
        )

    def set_parent(self, child_id: str, parent_id: str) -> MutationEntry:
        """Make ``parent_id`` the only hierarchical parent of ``child_id``.

        A child without a parent gains a new edge and an ``add_edge`` entry is
        returned. Otherwise its first parent edge is rebound to the new parent
        and any further parent edges are dropped in the same step.

        Raises:
            As for add_edge.
        """
        current = next(self._parent_edges(child_id), None)
        if current is None or current.to_id == parent_id:
            return self.add_edge(child_id, parent_id)
        entry = self.rebind_edge_endpoint(current.id, "to", parent_id, replace_parents=True)
        assert entry is not None
        return entry

    def rebind_edge_endpoint(
        self,
        edge_id_: str,
        endpoint: str,
        new_node_id: str,
        *,
        replace_parents: bool = False,
    ) -> MutationEntry | None:
        """Move one endpoint of an edge to another node.

        The rebound edge keeps its position in edge order. Rebinding to
        the current endpoint is a no-op and returns None. With
        ``replace_parents`` the child's other hierarchical parent edges are
        removed, so the rebound edge becomes its only parent; they are listed
        under ``before_state["replaced"]``.

        Raises:
            NotFound: If the edge does not exist.
            ValueError: If endpoint is not "from" or "to".
            DanglingReference, SelfLoop, InvalidEdgeKind, DuplicateEdge:
                As for add_edge, against the rebound pair.
        """
        if endpoint not in ENDPOINTS:
            raise ValueError(f"endpoint must be 'from' or 'to', got {endpoint!r}")
        old = self.get_edge(edge_id_)
        if old.endpoint(endpoint) == new_node_id:
            return None

        if endpoint == "from":
            from_id, to_id = new_node_id, old.to_id
        else:
            from_id, to_id = old.from_id, new_node_id
        new = self._validated_edge(from_id, to_id, ignore_edge_id=old.id)

        replaced: list[Edge] = []
        if replace_parents and new.kind.is_hierarchical:
            replaced = [e for e in self._parent_edges(new.from_id) if e.id != old.id]
        self._replace_edge(old, new)
        for edge in replaced:
            self._detach_edge(edge.id)

        return MutationEntry(
            operation=REBIND_EDGE,
            target_id=new.id,
            before_state={
                "edge": old.to_dict(),
                "replaced": [edge.to_dict() for edge in replaced],
            },
            after_state={"edge": new.to_dict(), "endpoint": endpoint, "node_id": new_node_id},
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _insert_node(self, node: GraphNode) -> None:
        self._nodes[node.id] = node
        self._outgoing[node.id] = []
        self._incoming[node.id] = []
        self._sequence[node.id] = self._next_sequence
        self._next_sequence += 1

    def _validated_edge(
        self,
        from_id: str,
        to_id: str,
        *,
        inferred: bool = False,
        confidence: str = CONFIDENCE_HIGH,
        ignore_edge_id: str | None = None,
    ) -> Edge:
        for node_id in (from_id, to_id):
            if node_id not in self._nodes:
                raise DanglingReference(f"Node '{node_id}' does not exist", target_id=node_id)
        if from_id == to_id:
            raise SelfLoop(f"Edge from '{from_id}' to itself", target_id=from_id)

        from_node, to_node = self._nodes[from_id], self._nodes[to_id]
        kind = EdgeKind.for_types(from_node.type, to_node.type)
        if kind is None:
            raise InvalidEdgeKind(
                f"No relationship connects {from_node.type.label} '{from_id}' "
                f"to {to_node.type.label} '{to_id}'",
                target_id=edge_id(from_id, to_id),
            )

        new_id = edge_id(from_id, to_id)
        if new_id in self._edges and new_id != ignore_edge_id:
            raise DuplicateEdge(f"Edge '{new_id}' already exists", target_id=new_id)
        return Edge(from_id=from_id, to_id=to_id, kind=kind, inferred=inferred, confidence=confidence)

    def _attach_edge(self, edge: Edge) -> None:
        self._edges[edge.id] = edge
        self._outgoing[edge.from_id].append(edge.id)
        self._incoming[edge.to_id].append(edge.id)

    def _replace_edge(self, old: Edge, new: Edge) -> None:
        """Swap ``old`` for ``new`` keeping its slot in every ordering."""
        self._edges = {
            (new.id if eid == old.id else eid): (new if eid == old.id else edge)
            for eid, edge in self._edges.items()
        }
        for index, old_key, new_key in (
            (self._outgoing, old.from_id, new.from_id),
            (self._incoming, old.to_id, new.to_id),
        ):
            if old_key == new_key:
                ids = index[old_key]
                ids[ids.index(old.id)] = new.id
            else:
                index[old_key].remove(old.id)
                index[new_key].append(new.id)

    def _detach_edge(self, edge_id_: str) -> Edge:
        edge = self._edges.pop(edge_id_)
        self._outgoing[edge.from_id].remove(edge_id_)
        self._incoming[edge.to_id].remove(edge_id_)
        return edge

    def _parent_edges(self, child_id: str) -> Iterator[Edge]:
        return (e for e in self.iter_outgoing_edges(child_id) if e.kind.is_hierarchical)

    def _was_orphan_before(self, edge: Edge) -> bool:
        """True if ``edge`` is now the child's only hierarchical parent edge."""
        if not edge.kind.is_hierarchical:
            return False
        return list(self._parent_edges(edge.from_id)) == [edge]

    def to_dict(self) -> dict[str, Any]:
        """Structural dump used for comparisons and the CLI."""
        return {
            "workspace": self.workspace,
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges.values()],
            "orphans": {t.label: ids for t, ids in self.orphans().items()},
            "unsynced": self.unsynced_ids(),
        }


class GraphBuilder:
    """Builder for constructing a SpecGraph from typed records.

    Usage:
        builder = GraphBuilder(workspace)
        builder.add_records(loaded.all_records())
        graph = builder.build(resolver)

    GraphBuilder is the only class that writes graph internals directly;
    load-time nodes and edges are not user mutations and return no entries.
    """

    def __init__(self, workspace: str = "") -> None:
        self.workspace = workspace
        self._nodes: dict[str, GraphNode] = {}

    def add_record(self, record: SpecRecord) -> GraphNode:
        """Create the node for one record.

        The node id is the upper-cased identifier; when two records share
        an identifier the later one is keyed ``identifier:filename``.
        """
        node_id = self._unique_id(record)
        node = GraphNode(
            id=node_id,
            type=record.record_type,
            name=record.name,
            status=record.status,
            identifier=record.identifier,
            source=record.source,
            record=record,
        )
        self._nodes[node_id] = node
        return node

    def add_records(self, records: Iterable[SpecRecord]) -> None:
        for record in records:
            self.add_record(record)

    def _unique_id(self, record: SpecRecord) -> str:
        base = record.identifier.strip().upper() or _slug(record.name).upper()
        if base not in self._nodes:
            return base
        candidate = f"{base}:{record.filename or record.name}"
        suffix = 2
        while candidate in self._nodes:
            candidate = f"{base}:{record.filename or record.name}:{suffix}"
            suffix += 1
        logger.warning("Duplicate identifier %s; keyed %s as %s", base, record.filename, candidate)
        return candidate

    def build(self, resolver: RelationshipResolver | None = None) -> SpecGraph:
        """Build the final SpecGraph.

        Inserts all nodes in declared order, then attaches the edges the
        resolver inferred and records its detection data.
        """
        graph = SpecGraph(workspace=self.workspace)
        for node in self._nodes.values():
            graph._insert_node(node)

        if resolver is not None:
            result = resolver.resolve(graph)
            for edge in result.edges:
                validated = graph._validated_edge(
                    edge.from_id,
                    edge.to_id,
                    inferred=edge.inferred,
                    confidence=edge.confidence,
                )
                graph._attach_edge(validated)
            graph._ambiguities = list(result.ambiguities)
            graph._low_confidence = list(result.low_confidence)

        logger.info(
            "Built graph for %s: %d nodes, %d edges",
            self.workspace or "<workspace>",
            graph.node_count(),
            graph.edge_count(),
        )
        return graph


def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "-", text).strip("-") or "node"
