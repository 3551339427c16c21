"""In-memory stores.

``MemorySpecStore`` keeps documents as markdown text keyed by handle and
reuses the markdown field rewriting, so it behaves like the file store
without touching disk. Both stores record every call and can be told to
fail, which is how synchronizer failure paths are exercised.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from storymap.graph.errors import StoreIOError
from storymap.graph.GraphNode import NodeType, SourceRef
from storymap.graph.records import REFERENCE_FIELDS, RawRecord
from storymap.utilities.spec_writer import extract_title, parse_fields, render_record, set_field


@dataclass
class _Document:
    workspace: str
    record_type: NodeType
    handle: SourceRef
    content: str


class MemorySpecStore:
    """Specification store holding documents in memory.

    Attributes:
        calls: Every store call as ``(operation, *args)``, in order.
        fail_operations: Operation names that raise ``StoreIOError``.
    """

    def __init__(self) -> None:
        self._documents: dict[SourceRef, _Document] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.fail_operations: set[str] = set()

    def add(
        self,
        workspace: str,
        record_type: NodeType,
        name: str,
        *,
        identifier: str = "",
        fields: dict[str, str] | None = None,
        body: str = "",
        filename: str | None = None,
    ) -> SourceRef:
        """Seed a document; returns its handle."""
        all_fields = {"ID": identifier} if identifier else {}
        all_fields.update(fields or {})
        content = render_record(name, all_fields, body)
        handle = SourceRef(
            path=f"{workspace}/{record_type.value}",
            filename=filename or f"{identifier or name}.md",
        )
        self._documents[handle] = _Document(workspace, record_type, handle, content)
        return handle

    def content(self, handle: SourceRef) -> str:
        return self._documents[handle].content

    def fields(self, handle: SourceRef) -> dict[str, str]:
        return parse_fields(self._documents[handle].content)

    def has(self, handle: SourceRef) -> bool:
        return handle in self._documents

    def calls_to(self, operation: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == operation]

    def _record_call(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if operation in self.fail_operations:
            raise StoreIOError(f"{operation} failed")

    # ─────────────────────────────────────────────────────────────────────────
    # SpecificationStore
    # ─────────────────────────────────────────────────────────────────────────

    async def list_records(self, workspace: str, record_type: NodeType) -> list[RawRecord]:
        self._record_call("list_records", workspace, record_type)
        records = []
        for doc in self._documents.values():
            if doc.workspace != workspace or doc.record_type is not record_type:
                continue
            fields = parse_fields(doc.content)
            lowered = {k.lower(): v for k, v in fields.items()}
            records.append(
                RawRecord(
                    identifier=lowered.get("id", ""),
                    display_name=lowered.get("name", "") or extract_title(doc.content),
                    status=lowered.get("status", ""),
                    raw_fields=fields,
                    raw_content=doc.content,
                    source_handle=doc.handle,
                )
            )
        return records

    async def update_field(self, handle: SourceRef, field_name: str, new_value: str) -> None:
        self._record_call("update_field", handle, field_name, new_value)
        doc = self._documents.get(handle)
        if doc is None:
            raise StoreIOError(f"{handle.filename} does not exist", target_id=handle.filename)
        doc.content = set_field(doc.content, field_name, new_value)

    async def delete_record(self, handle: SourceRef, *, cascade: bool = False) -> None:
        self._record_call("delete_record", handle, cascade)
        doc = self._documents.get(handle)
        if doc is None:
            raise StoreIOError(f"{handle.filename} does not exist", target_id=handle.filename)
        if not cascade:
            referencing = self._referencing(doc)
            if referencing:
                names = ", ".join(h.filename for h in referencing)
                raise StoreIOError(f"{handle.filename} is referenced by {names}")
        del self._documents[handle]

    async def create_record(self, workspace: str, record_type: NodeType, content: str) -> SourceRef:
        self._record_call("create_record", workspace, record_type, content)
        fields = {k.lower(): v for k, v in parse_fields(content).items()}
        stem = fields.get("id") or extract_title(content) or record_type.value
        handle = SourceRef(path=f"{workspace}/{record_type.value}", filename=f"{stem}.md")
        suffix = 2
        while handle in self._documents:
            handle = SourceRef(handle.path, f"{stem}-{suffix}.md")
            suffix += 1
        self._documents[handle] = _Document(workspace, record_type, handle, content)
        return handle

    def _referencing(self, target: _Document) -> list[SourceRef]:
        fields = {k.lower(): v.lower() for k, v in parse_fields(target.content).items()}
        identifier = fields.get("id", "")
        name = extract_title(target.content).lower()
        reference_fields = {f.lower() for names in REFERENCE_FIELDS.values() for f in names}
        found = []
        for doc in self._documents.values():
            if doc is target or doc.workspace != target.workspace:
                continue
            for key, value in parse_fields(doc.content).items():
                text = value.lower()
                if key.lower() in reference_fields and text and (
                    (identifier and identifier in text) or (name and text == name)
                ):
                    found.append(doc.handle)
                    break
        return found


class MemoryKeyValueStore:
    """Key-value store in a dict; values are deep-copied in and out.

    Attributes:
        saves: Every ``(key, value)`` saved, in order.
    """

    def __init__(self) -> None:
        self.data: dict[str, dict[str, Any]] = {}
        self.saves: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    async def load(self, key: str) -> dict[str, Any] | None:
        if self.fail:
            raise StoreIOError(f"load {key} failed")
        value = self.data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def save(self, key: str, value: dict[str, Any]) -> None:
        self.saves.append((key, copy.deepcopy(value)))
        if self.fail:
            raise StoreIOError(f"save {key} failed")
        self.data[key] = copy.deepcopy(value)
