"""Store ports - the asynchronous boundaries the core depends on.

``SpecificationStore`` holds the authoritative markdown records.
``KeyValueStore`` holds per-workspace view state (positions, zoom, scroll).
Every failure surfaces as ``StoreIOError``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from storymap.graph.errors import StoreIOError
from storymap.graph.GraphNode import NodeType, SourceRef
from storymap.graph.records import RawRecord

__all__ = ["KeyValueStore", "SpecificationStore", "StoreIOError"]


@runtime_checkable
class SpecificationStore(Protocol):
    async def list_records(self, workspace: str, record_type: NodeType) -> list[RawRecord]:
        """List the raw records of one type, in a stable order."""
        ...

    async def update_field(self, handle: SourceRef, field_name: str, new_value: str) -> None:
        """Rewrite one metadata field; an empty value removes it."""
        ...

    async def delete_record(self, handle: SourceRef, *, cascade: bool = False) -> None:
        """Delete a record; refuse when referenced unless ``cascade``."""
        ...

    async def create_record(self, workspace: str, record_type: NodeType, content: str) -> SourceRef:
        """Create a record and return its handle."""
        ...


@runtime_checkable
class KeyValueStore(Protocol):
    async def load(self, key: str) -> dict[str, Any] | None:
        """Return the stored value, or None when absent."""
        ...

    async def save(self, key: str, value: dict[str, Any]) -> None:
        ...
