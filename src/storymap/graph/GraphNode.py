"""GraphNode - Positioned node representation for the specification graph.

This module provides the core data structures of the graph:
- NodeType: Enum of the four specification layers
- Position / Size: Layout geometry values
- SourceRef: Handle of the markdown document backing a node
- GraphNode: A positioned graph entity wrapping one specification record
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from storymap.graph.records import SpecRecord


class NodeType(Enum):
    """Types of nodes in the specification graph, ordered top to bottom."""

    STORYBOARD = "storyboard"
    CAPABILITY = "capability"
    ENABLER = "enabler"
    TEST_SCENARIO = "test_scenario"

    @property
    def label(self) -> str:
        """Display label used in notices and snapshots."""
        return _LABELS[self]

    @property
    def layer(self) -> int:
        """Zero-based hierarchical layer index."""
        return _LAYER_ORDER.index(self)

    @property
    def parent_type(self) -> NodeType | None:
        """Type a node of this type points to, or None for storyboards."""
        if self is NodeType.STORYBOARD:
            return None
        return _LAYER_ORDER[self.layer - 1]

    @property
    def child_type(self) -> NodeType | None:
        """Type whose nodes point to this type, or None for test scenarios."""
        if self is NodeType.TEST_SCENARIO:
            return None
        return _LAYER_ORDER[self.layer + 1]

    @classmethod
    def parse(cls, value: str | NodeType) -> NodeType:
        """Parse a type from its value, name or label (case-insensitive).

        Raises:
            ValueError: If the value names no known type.
        """
        if isinstance(value, NodeType):
            return value
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if key in (member.value, member.label.lower()):
                return member
        raise ValueError(f"Unknown node type: {value!r}")


_LAYER_ORDER = [
    NodeType.STORYBOARD,
    NodeType.CAPABILITY,
    NodeType.ENABLER,
    NodeType.TEST_SCENARIO,
]

_LABELS = {
    NodeType.STORYBOARD: "Storyboard",
    NodeType.CAPABILITY: "Capability",
    NodeType.ENABLER: "Enabler",
    NodeType.TEST_SCENARIO: "TestScenario",
}


@dataclass(frozen=True)
class Position:
    """Top-left corner of a node card in canvas coordinates."""

    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Size:
    """Card dimensions."""

    width: float = 0.0
    height: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class SourceRef:
    """Portable reference to the markdown file backing a record.

    Attributes:
        path: Directory containing the file.
        filename: File name within ``path``.
    """

    path: str
    filename: str

    def absolute(self) -> Path:
        """Resolve to the file path."""
        return Path(self.path) / self.filename

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "filename": self.filename}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> SourceRef:
        return cls(path=data["path"], filename=data["filename"])

    def __str__(self) -> str:
        """Return string representation for display."""
        return str(self.absolute())


@dataclass
class GraphNode:
    """A node in the specification graph.

    Attributes:
        id: Unique identifier for this node within a load session.
        type: The layer the node belongs to.
        name: Human-readable display name.
        status: Display-only status text.
        identifier: Identifier declared by the backing record.
        position: Top-left corner of the card.
        size: Card dimensions for the active layout policy.
        source: Backing document; None means the node is read-only.
        record: The typed record the node was built from.
    """

    id: str
    type: NodeType
    name: str = ""
    status: str = "draft"
    identifier: str = ""
    position: Position = field(default_factory=Position)
    size: Size = field(default_factory=Size)
    source: SourceRef | None = None
    record: SpecRecord | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.identifier:
            self.identifier = self.id

    @property
    def read_only(self) -> bool:
        """True if no document backs this node."""
        return self.source is None

    @property
    def center_x(self) -> float:
        return self.position.x + self.size.width / 2

    def to_dict(self) -> dict[str, Any]:
        """Serialize for snapshots and mutation log states."""
        return {
            "id": self.id,
            "type": self.type.label,
            "name": self.name,
            "status": self.status,
            "identifier": self.identifier,
            "position": self.position.to_dict(),
            "size": self.size.to_dict(),
            "source": self.source.to_dict() if self.source else None,
            "read_only": self.read_only,
        }
