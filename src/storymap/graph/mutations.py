"""Mutation types for SpecGraph operations.

Every committed graph mutation returns a ``MutationEntry``; the
persistence synchronizer dispatches on ``entry.operation``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

ADD_NODE = "add_node"
MOVE_NODE = "move_node"
REMOVE_NODE = "remove_node"
ADD_EDGE = "add_edge"
REMOVE_EDGE = "remove_edge"
REBIND_EDGE = "rebind_edge"


@dataclass
class MutationEntry:
    """Single mutation operation record.

    Attributes:
        id: Unique mutation ID (UUID4).
        timestamp: When the mutation occurred.
        operation: Operation type (e.g., "move_node", "add_edge").
        target_id: Primary target of the mutation (node or edge id).
        before_state: State before the mutation.
        after_state: State after the mutation.
    """

    operation: str
    target_id: str
    before_state: dict[str, Any]
    after_state: dict[str, Any]
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "operation": self.operation,
            "target_id": self.target_id,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        """Human-readable representation."""
        return f"[{self.id[:8]}] {self.operation}({self.target_id})"

