"""Persistence Synchronizer - maps committed mutations to store writes.

- Node moves and viewport changes are coalesced into one debounced
  ``ViewState`` save through the key-value store.
- Edge changes are written at once to the *child* document's reference
  field. The value is recomputed from the live graph, so the document
  always ends up naming the child's current first parent.
- Node deletes and creates go to ``delete_record`` / ``create_record``.

A failed write never reverts the graph: the affected ids are marked
unsynced and a notice is posted. A later successful write or a reload
clears the marker. Writes that finish after a reload are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from storymap.graph.builder import SpecGraph
from storymap.graph.errors import ErrorCode, StoreIOError
from storymap.graph.GraphNode import GraphNode, SourceRef
from storymap.graph.mutations import (
    ADD_EDGE,
    ADD_NODE,
    MOVE_NODE,
    REBIND_EDGE,
    REMOVE_EDGE,
    REMOVE_NODE,
    MutationEntry,
)
from storymap.graph.records import RECORD_CLASSES, REFERENCE_FIELDS, ChildRecord
from storymap.graph.relations import Edge
from storymap.session.scheduler import Debouncer
from storymap.utilities.spec_writer import render_record

if TYPE_CHECKING:
    from storymap.session.notices import NoticeBoard
    from storymap.session.scheduler import Scheduler
    from storymap.session.view_state import ViewState
    from storymap.store.base import KeyValueStore, SpecificationStore

logger = logging.getLogger(__name__)

VIEW_STATE_KEY = "view-state"

_IDENTIFIER_FIELDS = {"capability id", "enabler id"}
_NAME_FIELDS = {"storyboard reference", "storyboard"}
_NAME_AND_ID_FIELDS = {"capability", "enabler"}


def format_reference(field_name: str, parent: GraphNode) -> str:
    """Render a parent reference the way ``field_name`` expects it."""
    key = field_name.strip().lower()
    if key in _NAME_FIELDS:
        return parent.name
    if key in _NAME_AND_ID_FIELDS:
        return f"{parent.name} ({parent.identifier})"
    return parent.identifier


def reference_update(graph: SpecGraph, child: GraphNode) -> tuple[str, str]:
    """The (field, value) a child document should hold right now.

    The field is the one the reference was read from, else the type's
    primary field. The value is empty when the child has no parent.
    """
    record = child.record
    field_name = None
    if isinstance(record, ChildRecord):
        field_name = record.reference_field
    if not field_name:
        field_name = REFERENCE_FIELDS[child.type][0]
    parent = graph.primary_parent(child.id)
    value = format_reference(field_name, parent) if parent is not None else ""
    return field_name, value


class PersistenceSynchronizer:
    """Turns graph mutations into specification and view-state writes."""

    def __init__(
        self,
        store: SpecificationStore,
        view_store: KeyValueStore,
        scheduler: Scheduler,
        notices: NoticeBoard,
        *,
        quiet_period: float = 0.5,
    ) -> None:
        self.store = store
        self.view_store = view_store
        self.scheduler = scheduler
        self.notices = notices
        self.debouncer = Debouncer(scheduler, quiet_period)
        self.graph = SpecGraph()
        self.view_state: ViewState | None = None
        self._generation = 0

    def bind(self, graph: SpecGraph, view_state: ViewState) -> None:
        """Start tracking a freshly loaded graph.

        Pending debounced writes are cancelled; writes already in flight
        finish against the old generation and are ignored.
        """
        self._generation += 1
        self.debouncer.cancel_all()
        self.graph = graph
        self.view_state = view_state

    @property
    def generation(self) -> int:
        return self._generation

    # ─────────────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────────────

    def on_mutation(self, entry: MutationEntry) -> None:
        """Schedule the writes a committed mutation requires."""
        op = entry.operation

        if op == MOVE_NODE:
            self.schedule_view_state()

        elif op == ADD_EDGE:
            edge = Edge.from_dict(entry.after_state["edge"])
            self._write_child(edge, markers=(edge.id,))

        elif op == REMOVE_EDGE:
            edge = Edge.from_dict(entry.before_state["edge"])
            self._write_child(edge, markers=(edge.from_id,), cleared=(edge.id,))

        elif op == REBIND_EDGE:
            old = Edge.from_dict(entry.before_state["edge"])
            new = Edge.from_dict(entry.after_state["edge"])
            replaced = tuple(e["id"] for e in entry.before_state.get("replaced", ()))
            self._write_child(new, markers=(new.id,), cleared=(old.id, *replaced))
            if old.from_id != new.from_id:
                self._write_child(old, markers=(old.from_id,), cleared=(old.id,))

        elif op == REMOVE_NODE:
            node_state = entry.before_state["node"]
            if node_state.get("source"):
                handle = SourceRef.from_dict(node_state["source"])
                cascade = bool(entry.after_state.get("cascade"))
                self._spawn(
                    self._delete_record(
                        self._generation, self.graph, entry.target_id, handle, cascade
                    )
                )

        elif op == ADD_NODE:
            self._spawn(self._create_record(self._generation, self.graph, entry.target_id))

        else:
            logger.debug("No persistence for %s", entry)

    def schedule_view_state(self) -> None:
        """Queue one debounced view-state save, restarting the quiet period."""
        if self.view_state is None:
            return
        generation = self._generation
        self.debouncer.schedule(VIEW_STATE_KEY, lambda: self._save_view_state(generation))

    def _write_child(
        self, edge: Edge, markers: tuple[str, ...], cleared: tuple[str, ...] = ()
    ) -> None:
        if not edge.kind.is_hierarchical:
            return
        self._spawn(
            self._write_reference(self._generation, self.graph, edge.from_id, markers, cleared)
        )

    def _spawn(self, coro: Any) -> None:
        self.scheduler.spawn(coro)

    # ─────────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────────

    async def _write_reference(
        self,
        generation: int,
        graph: SpecGraph,
        child_id: str,
        markers: tuple[str, ...],
        cleared: tuple[str, ...],
    ) -> dict[str, Any]:
        child = graph.find_by_id(child_id)
        if child is None or child.source is None:
            return {"success": False, "error": f"{child_id} has no backing document"}

        field_name, value = reference_update(graph, child)
        try:
            await self.store.update_field(child.source, field_name, value)
        except StoreIOError as e:
            if generation != self._generation:
                logger.info("Ignoring failed write for %s after reload: %s", child_id, e)
                return {"success": False, "error": str(e), "stale": True}
            graph.mark_unsynced(*markers)
            self.notices.error(
                f"Could not update {child.source.filename}: {e}",
                code=ErrorCode.IO_ERROR,
                target_id=child_id,
            )
            logger.error("Reference write for %s failed: %s", child_id, e)
            return {"success": False, "error": str(e)}

        if generation != self._generation:
            return {"success": True, "stale": True}

        graph.clear_unsynced(child_id, *markers, *cleared)
        if isinstance(child.record, ChildRecord):
            child.record = replace(child.record, parent_reference=value, reference_field=field_name)
        logger.info("Wrote %s=%r to %s", field_name, value, child.source.filename)
        return {"success": True, "file": child.source.filename, "field": field_name, "value": value}

    async def _delete_record(
        self, generation: int, graph: SpecGraph, node_id: str, handle: SourceRef, cascade: bool
    ) -> dict[str, Any]:
        try:
            await self.store.delete_record(handle, cascade=cascade)
        except StoreIOError as e:
            if generation != self._generation:
                return {"success": False, "error": str(e), "stale": True}
            graph.mark_unsynced(node_id)
            self.notices.error(
                f"Could not delete {handle.filename}: {e}",
                code=ErrorCode.IO_ERROR,
                target_id=node_id,
            )
            logger.error("Delete of %s failed: %s", handle.filename, e)
            return {"success": False, "error": str(e)}

        if generation == self._generation:
            graph.clear_unsynced(node_id)
        return {"success": True, "deleted": handle.filename}

    async def _create_record(
        self, generation: int, graph: SpecGraph, node_id: str
    ) -> dict[str, Any]:
        node = graph.find_by_id(node_id)
        if node is None:
            return {"success": False, "error": f"{node_id} no longer exists"}

        content = render_record(
            node.name,
            {"ID": node.identifier, "Type": node.type.label, "Status": node.status},
        )
        try:
            handle = await self.store.create_record(graph.workspace, node.type, content)
        except StoreIOError as e:
            if generation != self._generation:
                return {"success": False, "error": str(e), "stale": True}
            graph.mark_unsynced(node_id)
            self.notices.error(
                f"Could not create {node.type.label} '{node.name}': {e}",
                code=ErrorCode.IO_ERROR,
                target_id=node_id,
            )
            logger.error("Create of %s failed: %s", node_id, e)
            return {"success": False, "error": str(e)}

        if generation != self._generation or graph.find_by_id(node_id) is not node:
            return {"success": True, "stale": True}

        node.source = handle
        node.record = RECORD_CLASSES[node.type](
            identifier=node.identifier,
            name=node.name,
            status=node.status,
            content=content,
            source=handle,
        )
        graph.clear_unsynced(node_id)
        logger.info("Created %s for %s", handle.filename, node_id)
        return {"success": True, "file": handle.filename}

    async def _save_view_state(self, generation: int) -> dict[str, Any]:
        state = self.view_state
        if generation != self._generation or state is None:
            return {"success": False, "stale": True}

        state.capture(self.graph)
        try:
            await self.view_store.save(state.key, state.to_dict())
        except StoreIOError as e:
            self.notices.warning(f"Could not save view state: {e}", code=ErrorCode.IO_ERROR)
            logger.warning("View state save failed: %s", e)
            return {"success": False, "error": str(e)}
        logger.debug("Saved view state %s (%d positions)", state.key, len(state.positions))
        return {"success": True, "key": state.key}
