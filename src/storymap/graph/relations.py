"""Relations - Edge types and relationship semantics.

This module defines the typed edges between graph nodes:
- EdgeKind: Enum of relationship types, derived from endpoint types
- Edge: A typed edge pointing from a child node to its parent
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from storymap.graph.GraphNode import NodeType

CONFIDENCE_HIGH = "high"
CONFIDENCE_LOW = "low"


class EdgeKind(Enum):
    """Types of edges in the specification graph.

    - STORYBOARD_FLOW: Narrative order between storyboards (earlier -> later)
    - STORYBOARD_TO_CAPABILITY: Capability -> Storyboard it belongs to
    - CAPABILITY_TO_ENABLER: Enabler -> Capability it supports
    - ENABLER_TO_TEST_SCENARIO: TestScenario -> Enabler it verifies
    """

    STORYBOARD_FLOW = "StoryboardFlow"
    STORYBOARD_TO_CAPABILITY = "StoryboardToCapability"
    CAPABILITY_TO_ENABLER = "CapabilityToEnabler"
    ENABLER_TO_TEST_SCENARIO = "EnablerToTestScenario"

    @classmethod
    def for_types(cls, from_type: NodeType, to_type: NodeType) -> EdgeKind | None:
        """Derive the edge kind from endpoint types.

        Returns:
            The kind, or None if the pair is structurally invalid.
        """
        return _KIND_BY_TYPES.get((from_type, to_type))

    @classmethod
    def hierarchical_for(cls, child_type: NodeType) -> EdgeKind | None:
        """Kind of the parent edge a node of ``child_type`` can own."""
        parent_type = child_type.parent_type
        if parent_type is None:
            return None
        return _KIND_BY_TYPES[(child_type, parent_type)]

    @property
    def is_hierarchical(self) -> bool:
        """True for the child -> parent kinds backed by a reference field."""
        return self is not EdgeKind.STORYBOARD_FLOW


_KIND_BY_TYPES = {
    (NodeType.STORYBOARD, NodeType.STORYBOARD): EdgeKind.STORYBOARD_FLOW,
    (NodeType.CAPABILITY, NodeType.STORYBOARD): EdgeKind.STORYBOARD_TO_CAPABILITY,
    (NodeType.ENABLER, NodeType.CAPABILITY): EdgeKind.CAPABILITY_TO_ENABLER,
    (NodeType.TEST_SCENARIO, NodeType.ENABLER): EdgeKind.ENABLER_TO_TEST_SCENARIO,
}


def edge_id(from_id: str, to_id: str) -> str:
    """Derive the stable edge id for a (from, to) pair."""
    return f"{from_id}->{to_id}"


def orient(a_id: str, a_type: NodeType, b_id: str, b_type: NodeType) -> tuple[str, str]:
    """Order a pair of node ids as (child, parent) when the types allow it.

    Pairs with no valid kind in either direction are returned unchanged so
    the caller reports the invalid kind against the original order.
    """
    if EdgeKind.for_types(a_type, b_type) is not None:
        return a_id, b_id
    if EdgeKind.for_types(b_type, a_type) is not None:
        return b_id, a_id
    return a_id, b_id


@dataclass(frozen=True)
class Edge:
    """A directed, typed edge between two graph nodes.

    Attributes:
        from_id: The child node id (or earlier storyboard).
        to_id: The parent node id (or later storyboard).
        kind: The relationship type.
        inferred: True when the resolver produced the edge.
        confidence: "high", or "low" for heuristic assignments.
    """

    from_id: str
    to_id: str
    kind: EdgeKind
    inferred: bool = False
    confidence: str = CONFIDENCE_HIGH

    @property
    def id(self) -> str:
        return edge_id(self.from_id, self.to_id)

    def endpoint(self, which: str) -> str:
        """Return the node id at the "from" or "to" endpoint."""
        if which == "from":
            return self.from_id
        if which == "to":
            return self.to_id
        raise ValueError(f"Unknown endpoint: {which!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "kind": self.kind.value,
            "inferred": self.inferred,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        return cls(
            from_id=data["from"],
            to_id=data["to"],
            kind=EdgeKind(data["kind"]),
            inferred=data.get("inferred", False),
            confidence=data.get("confidence", CONFIDENCE_HIGH),
        )

    def __str__(self) -> str:
        return f"{self.from_id} --[{self.kind.value}]--> {self.to_id}"
