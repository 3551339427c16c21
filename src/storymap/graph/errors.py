"""Error taxonomy for graph mutations and store access.

Graph mutations raise ``GraphError`` subclasses; each carries an
``ErrorCode`` so boundaries can turn it into a typed result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Stable codes reported to callers."""

    DANGLING_REFERENCE = "DanglingReference"
    DUPLICATE_EDGE = "DuplicateEdge"
    SELF_LOOP = "SelfLoop"
    DUPLICATE_ID = "DuplicateId"
    NOT_FOUND = "NotFound"
    HAS_EDGES = "HasEdges"
    IO_ERROR = "IoError"
    AMBIGUOUS_MATCH = "AmbiguousMatch"
    INVALID_EDGE_KIND = "InvalidEdgeKind"
    READ_ONLY = "ReadOnly"


class StorymapError(Exception):
    """Base class for errors carrying an ``ErrorCode``."""

    code: ErrorCode

    def __init__(self, message: str, *, target_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.target_id = target_id

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "target_id": self.target_id}


class GraphError(StorymapError):
    """A graph invariant would be violated; the graph is unchanged."""


class DanglingReference(GraphError):
    code = ErrorCode.DANGLING_REFERENCE


class DuplicateEdge(GraphError):
    code = ErrorCode.DUPLICATE_EDGE


class SelfLoop(GraphError):
    code = ErrorCode.SELF_LOOP


class DuplicateId(GraphError):
    code = ErrorCode.DUPLICATE_ID


class NotFound(GraphError):
    code = ErrorCode.NOT_FOUND


class HasEdges(GraphError):
    code = ErrorCode.HAS_EDGES


class InvalidEdgeKind(GraphError):
    code = ErrorCode.INVALID_EDGE_KIND


class ReadOnly(GraphError):
    code = ErrorCode.READ_ONLY


class StoreIOError(StorymapError):
    """Any failure of the specification or key-value store."""

    code = ErrorCode.IO_ERROR


@dataclass(frozen=True)
class AmbiguousMatch:
    """More than one parent satisfied the winning match rule.

    The first candidate in parent-list order was used.

    Attributes:
        child_id: Node whose reference was resolved.
        reference: The reference text that matched.
        rule: Name of the match rule that produced the candidates.
        candidates: Matching parent ids in parent-list order.
    """

    child_id: str
    reference: str
    rule: str
    candidates: tuple[str, ...]

    code = ErrorCode.AMBIGUOUS_MATCH

    @property
    def chosen(self) -> str:
        return self.candidates[0]

    def __str__(self) -> str:
        others = ", ".join(self.candidates[1:])
        return (
            f"{self.child_id}: reference {self.reference!r} matched "
            f"{len(self.candidates)} parents by {self.rule}; using {self.chosen} (also: {others})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "child_id": self.child_id,
            "reference": self.reference,
            "rule": self.rule,
            "candidates": list(self.candidates),
        }
