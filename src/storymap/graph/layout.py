"""Layout Engine - deterministic 2-D placement of a resolved graph.

Two policies are supported:

- LAYERED: top-to-bottom flow, one layer per node type, each child group
  centred under its parent and pushed right of earlier groups.
- MASONRY: detail view without storyboards; each capability (then each
  orphan enabler, then each orphan test scenario) is stacked with its
  descendants into the currently shortest column.

Only the first hierarchical parent of a node is used for placement, so
each node is placed exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from storymap.graph.GraphNode import GraphNode, NodeType, Position, Size

if TYPE_CHECKING:
    from storymap.graph.builder import SpecGraph

logger = logging.getLogger(__name__)


class LayoutPolicy(Enum):
    LAYERED = "layered"
    MASONRY = "masonry"

    @property
    def node_types(self) -> tuple[NodeType, ...]:
        """Node types shown under this policy."""
        if self is LayoutPolicy.MASONRY:
            return (NodeType.CAPABILITY, NodeType.ENABLER, NodeType.TEST_SCENARIO)
        return tuple(NodeType)


@dataclass(frozen=True)
class LayeredConfig:
    card_width: float = 180
    card_height: float = 80
    horizontal_gap: float = 100
    layer_gap: float = 120
    padding: float = 60

    @property
    def card(self) -> Size:
        return Size(self.card_width, self.card_height)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LayeredConfig:
        known = {k: float(v) for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def _default_masonry_sizes() -> dict[NodeType, Size]:
    return {
        NodeType.STORYBOARD: Size(160, 60),
        NodeType.CAPABILITY: Size(160, 60),
        NodeType.ENABLER: Size(140, 50),
        NodeType.TEST_SCENARIO: Size(120, 40),
    }


@dataclass(frozen=True)
class MasonryConfig:
    columns: int = 4
    column_width: float = 220
    origin_x: float = 100
    origin_y: float = 100
    element_spacing: float = 20
    group_spacing: float = 40
    sizes: dict[NodeType, Size] = field(default_factory=_default_masonry_sizes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MasonryConfig:
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key == "columns":
                kwargs[key] = int(value)
            elif key == "sizes":
                sizes = _default_masonry_sizes()
                for type_name, dims in value.items():
                    sizes[NodeType.parse(type_name)] = Size(float(dims[0]), float(dims[1]))
                kwargs[key] = sizes
            elif key in cls.__dataclass_fields__:
                kwargs[key] = float(value)
        return cls(**kwargs)


@dataclass
class LayoutResult:
    """Positions computed by one layout run.

    ``positions`` preserves placement order.
    """

    policy: LayoutPolicy
    positions: dict[str, Position] = field(default_factory=dict)
    sizes: dict[str, Size] = field(default_factory=dict)
    canvas: Size = field(default_factory=Size)

    @property
    def order(self) -> list[str]:
        return list(self.positions)

    def apply(self, graph: SpecGraph) -> None:
        """Write positions and sizes onto the graph's nodes.

        Layout is not a user mutation and returns no entries.
        """
        for node_id, position in self.positions.items():
            node = graph.find_by_id(node_id)
            if node is not None:
                node.position = position
                node.size = self.sizes[node_id]


class LayoutEngine:
    """Computes layered and masonry layouts."""

    def __init__(
        self,
        layered: LayeredConfig | None = None,
        masonry: MasonryConfig | None = None,
    ) -> None:
        self.layered_config = layered or LayeredConfig()
        self.masonry_config = masonry or MasonryConfig()

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> LayoutEngine:
        section = config.get("layout", {})
        return cls(
            layered=LayeredConfig.from_dict(section.get("layered", {})),
            masonry=MasonryConfig.from_dict(section.get("masonry", {})),
        )

    def size_for(self, policy: LayoutPolicy, node_type: NodeType) -> Size:
        if policy is LayoutPolicy.MASONRY:
            return self.masonry_config.sizes[node_type]
        return self.layered_config.card

    def layout(self, graph: SpecGraph, policy: LayoutPolicy) -> LayoutResult:
        if policy is LayoutPolicy.MASONRY:
            return self.masonry(graph)
        return self.layered(graph)

    # ─────────────────────────────────────────────────────────────────────────
    # Layered flow
    # ─────────────────────────────────────────────────────────────────────────

    def layered(self, graph: SpecGraph) -> LayoutResult:
        cfg = self.layered_config
        result = LayoutResult(LayoutPolicy.LAYERED)
        card = cfg.card

        y = cfg.padding
        x = cfg.padding
        for storyboard in graph.nodes_by_type(NodeType.STORYBOARD):
            self._place(result, storyboard.id, Position(x, y), card)
            x += card.width + cfg.horizontal_gap

        for child_type in (NodeType.CAPABILITY, NodeType.ENABLER, NodeType.TEST_SCENARIO):
            parent_type = child_type.parent_type
            assert parent_type is not None
            y += self._tallest(result, graph, parent_type, card) + cfg.layer_gap

            groups: dict[str, list[GraphNode]] = {}
            orphans: list[GraphNode] = []
            for node in graph.nodes_by_type(child_type):
                parent = graph.primary_parent(node.id)
                if parent is None or parent.id not in result.positions:
                    orphans.append(node)
                else:
                    groups.setdefault(parent.id, []).append(node)

            parents = sorted(
                (p for p in graph.nodes_by_type(parent_type) if p.id in result.positions),
                key=lambda p: (result.positions[p.id].x, graph.node_index(p.id)),
            )
            cursor = cfg.padding
            for parent in parents:
                children = groups.get(parent.id)
                if not children:
                    continue
                parent_x = result.positions[parent.id].x
                row = self._centred_row(parent_x, len(children), cursor)
                for child, child_x in zip(children, row):
                    self._place(result, child.id, Position(child_x, y), card)
                    cursor = max(cursor, child_x + card.width + cfg.horizontal_gap)

            for orphan in orphans:
                self._place(result, orphan.id, Position(cursor, y), card)
                cursor += card.width + cfg.horizontal_gap

        result.canvas = self._canvas(result, cfg.padding, cfg.padding)
        logger.debug("Layered layout placed %d node(s)", len(result.positions))
        return result

    def _centred_row(self, parent_x: float, count: int, cursor: float) -> list[float]:
        """X positions of ``count`` cards centred under a parent card."""
        cfg = self.layered_config
        step = cfg.card_width + cfg.horizontal_gap / 2
        group_width = count * cfg.card_width + (count - 1) * cfg.horizontal_gap / 2
        start = max(parent_x + cfg.card_width / 2 - group_width / 2, cursor)
        return [start + i * step for i in range(count)]

    def _tallest(
        self, result: LayoutResult, graph: SpecGraph, node_type: NodeType, default: Size
    ) -> float:
        heights = [
            result.sizes[n.id].height for n in graph.nodes_by_type(node_type) if n.id in result.sizes
        ]
        return max(heights, default=default.height)

    # ─────────────────────────────────────────────────────────────────────────
    # Masonry
    # ─────────────────────────────────────────────────────────────────────────

    def masonry(self, graph: SpecGraph) -> LayoutResult:
        cfg = self.masonry_config
        result = LayoutResult(LayoutPolicy.MASONRY)
        heights = [cfg.origin_y] * cfg.columns

        roots = list(graph.nodes_by_type(NodeType.CAPABILITY))
        for node_type in (NodeType.ENABLER, NodeType.TEST_SCENARIO):
            roots.extend(
                n for n in graph.nodes_by_type(node_type) if graph.primary_parent(n.id) is None
            )

        for root in roots:
            if root.id in result.positions:
                continue
            column = min(range(cfg.columns), key=lambda i: (heights[i], i))
            x = cfg.origin_x + column * cfg.column_width
            self._stack(graph, result, root, x, heights[column])
            heights[column] += self._stack_height(graph, root) + cfg.group_spacing

        result.canvas = self._canvas(result, cfg.origin_x, cfg.origin_y)
        logger.debug("Masonry layout placed %d node(s)", len(result.positions))
        return result

    def _placed_children(self, graph: SpecGraph, node: GraphNode) -> list[GraphNode]:
        """Children whose first parent is ``node``."""
        return [
            child for child in graph.iter_children(node.id) if graph.primary_parent(child.id) is node
        ]

    def _stack_height(self, graph: SpecGraph, node: GraphNode) -> float:
        cfg = self.masonry_config
        own = cfg.sizes[node.type].height + cfg.element_spacing
        return own + sum(self._stack_height(graph, c) for c in self._placed_children(graph, node))

    def _stack(
        self, graph: SpecGraph, result: LayoutResult, node: GraphNode, x: float, y: float
    ) -> float:
        """Place ``node`` and its descendants depth-first; return the next free y."""
        cfg = self.masonry_config
        size = cfg.sizes[node.type]
        self._place(result, node.id, Position(x, y), size)
        cursor = y + size.height + cfg.element_spacing
        for child in self._placed_children(graph, node):
            cursor = self._stack(graph, result, child, x, cursor)
        return cursor

    # ─────────────────────────────────────────────────────────────────────────
    # Incremental reposition
    # ─────────────────────────────────────────────────────────────────────────

    def reposition_subtree(
        self, graph: SpecGraph, node_id: str, policy: LayoutPolicy
    ) -> dict[str, Position]:
        """Positions for a newly parented node and its descendants.

        Nothing outside the subtree moves. When the natural slot would
        overlap another card, the layered subtree slides right past it and
        the masonry stack drops below everything in its column.
        """
        node = graph.get_node(node_id)
        parent = graph.primary_parent(node_id)
        if parent is None:
            return {}
        subtree = self._subtree_ids(graph, node)
        blockers = [
            n for n in graph.all_nodes() if n.type in policy.node_types and n.id not in subtree
        ]

        if policy is LayoutPolicy.MASONRY:
            if parent.type not in policy.node_types:
                return {}
            cfg = self.masonry_config
            bottoms = [
                n.position.y + n.size.height
                for n in [parent, *self._descendants(graph, parent)]
                if n.id not in subtree
            ]
            scratch = LayoutResult(policy)
            self._stack(graph, scratch, node, parent.position.x, max(bottoms) + cfg.element_spacing)
            if self._collides(scratch.positions, scratch.sizes, blockers):
                left = parent.position.x
                right = left + max(size.width for size in scratch.sizes.values())
                column = [
                    b for b in blockers if b.position.x < right and left < b.position.x + b.size.width
                ]
                y = max(b.position.y + b.size.height for b in column) + cfg.element_spacing
                scratch = LayoutResult(policy)
                self._stack(graph, scratch, node, left, y)
            return scratch.positions

        cfg_l = self.layered_config
        siblings = [
            sibling
            for sibling in graph.iter_children(parent.id)
            if sibling.id not in subtree and sibling.type is node.type
        ]
        if siblings:
            x = max(s.position.x for s in siblings) + cfg_l.card_width + cfg_l.horizontal_gap / 2
        else:
            x = parent.position.x
        y = parent.position.y + parent.size.height + cfg_l.layer_gap
        positions = {node.id: Position(x, y)}
        self._centre_descendants(graph, node, Position(x, y), positions)

        sizes = dict.fromkeys(positions, cfg_l.card)
        while self._collides(positions, sizes, blockers):
            shift = max(
                b.position.x + b.size.width + cfg_l.horizontal_gap - p.x
                for moved_id, p in positions.items()
                for b in blockers
                if _overlaps(p, sizes[moved_id], b.position, b.size)
            )
            positions = {moved_id: Position(p.x + shift, p.y) for moved_id, p in positions.items()}
        return positions

    @staticmethod
    def _collides(
        positions: dict[str, Position], sizes: dict[str, Size], blockers: list[GraphNode]
    ) -> bool:
        return any(
            _overlaps(p, sizes[moved_id], b.position, b.size)
            for moved_id, p in positions.items()
            for b in blockers
        )

    def _centre_descendants(
        self,
        graph: SpecGraph,
        node: GraphNode,
        at: Position,
        positions: dict[str, Position],
    ) -> None:
        cfg = self.layered_config
        children = self._placed_children(graph, node)
        if not children:
            return
        y = at.y + cfg.card_height + cfg.layer_gap
        for child, x in zip(children, self._centred_row(at.x, len(children), float("-inf"))):
            positions[child.id] = Position(x, y)
            self._centre_descendants(graph, child, positions[child.id], positions)

    def _descendants(self, graph: SpecGraph, node: GraphNode) -> list[GraphNode]:
        found: list[GraphNode] = []
        for child in self._placed_children(graph, node):
            found.append(child)
            found.extend(self._descendants(graph, child))
        return found

    def _subtree_ids(self, graph: SpecGraph, node: GraphNode) -> set[str]:
        return {node.id, *(d.id for d in self._descendants(graph, node))}

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _place(result: LayoutResult, node_id: str, position: Position, size: Size) -> None:
        result.positions[node_id] = position
        result.sizes[node_id] = size

    @staticmethod
    def _canvas(result: LayoutResult, margin_x: float, margin_y: float) -> Size:
        if not result.positions:
            return Size(2 * margin_x, 2 * margin_y)
        right = max(p.x + result.sizes[i].width for i, p in result.positions.items())
        bottom = max(p.y + result.sizes[i].height for i, p in result.positions.items())
        return Size(right + margin_x, bottom + margin_y)


def _overlaps(a: Position, a_size: Size, b: Position, b_size: Size) -> bool:
    return (
        a.x < b.x + b_size.width
        and b.x < a.x + a_size.width
        and a.y < b.y + b_size.height
        and b.y < a.y + a_size.height
    )
