"""ViewState - per-workspace cached positions, zoom and scroll.

The value is owned by the workspace session and persisted through a
``KeyValueStore``; nothing about the view lives in global state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from storymap.graph.GraphNode import Position
from storymap.graph.layout import LayoutPolicy

if TYPE_CHECKING:
    from storymap.graph.builder import SpecGraph

MIN_ZOOM = 0.1
MAX_ZOOM = 4.0


@dataclass
class ViewState:
    """Cached view of one workspace under one layout policy."""

    workspace: str
    policy: LayoutPolicy = LayoutPolicy.LAYERED
    positions: dict[str, Position] = field(default_factory=dict)
    zoom: float = 1.0
    scroll_x: float = 0.0
    scroll_y: float = 0.0

    @property
    def key(self) -> str:
        """Key-value store key for this workspace and policy."""
        slug = re.sub(r"[^A-Za-z0-9]+", "-", self.workspace).strip("-") or "workspace"
        return f"view-{slug}-{self.policy.value}"

    def set_zoom(self, level: float) -> float:
        self.zoom = min(max(level, MIN_ZOOM), MAX_ZOOM)
        return self.zoom

    def capture(self, graph: SpecGraph) -> None:
        """Copy the current node positions of the shown node types."""
        shown = self.policy.node_types
        self.positions = {n.id: n.position for n in graph.all_nodes() if n.type in shown}

    def restore_into(self, graph: SpecGraph) -> int:
        """Apply cached positions to nodes that still exist; returns the count."""
        restored = 0
        for node_id, position in self.positions.items():
            node = graph.find_by_id(node_id)
            if node is not None and node.type in self.policy.node_types:
                node.position = position
                restored += 1
        return restored

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace": self.workspace,
            "policy": self.policy.value,
            "positions": {k: [p.x, p.y] for k, p in self.positions.items()},
            "zoom": self.zoom,
            "scroll": [self.scroll_x, self.scroll_y],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], workspace: str | None = None) -> ViewState:
        scroll = data.get("scroll") or [0.0, 0.0]
        return cls(
            workspace=workspace if workspace is not None else data.get("workspace", ""),
            policy=LayoutPolicy(data.get("policy", LayoutPolicy.LAYERED.value)),
            positions={
                k: Position(float(v[0]), float(v[1]))
                for k, v in (data.get("positions") or {}).items()
            },
            zoom=float(data.get("zoom", 1.0)),
            scroll_x=float(scroll[0]),
            scroll_y=float(scroll[1]),
        )
