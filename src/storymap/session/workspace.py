"""Workspace session - wires Loader -> Resolver -> Layout -> Graph.

One session owns the graph of one workspace together with its view
state, notices, synchronizer and interaction controller. Reloading
replaces the graph wholesale; switching workspace means a new session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from storymap.graph.builder import GraphBuilder, SpecGraph
from storymap.graph.errors import ErrorCode, StoreIOError
from storymap.graph.GraphNode import NodeType, Size
from storymap.graph.layout import LayoutEngine, LayoutPolicy
from storymap.graph.loader import DEFAULT_PREFIXES, RecordLoader
from storymap.graph.mutations import MutationEntry
from storymap.graph.resolver import RelationshipResolver, ResolverOptions
from storymap.session.interaction import InteractionController
from storymap.session.notices import NoticeBoard
from storymap.session.scheduler import Scheduler
from storymap.session.sync import PersistenceSynchronizer
from storymap.session.view_state import ViewState
from storymap.store.base import KeyValueStore, SpecificationStore

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Everything the view needs to render one frame."""

    nodes: list[dict[str, Any]] = field(default_factory=list)
    edges: list[dict[str, Any]] = field(default_factory=list)
    orphans: dict[str, list[str]] = field(default_factory=dict)
    selection: dict[str, str] | None = None
    pending_drag: dict[str, Any] | None = None
    unsynced: list[str] = field(default_factory=list)
    notices: list[dict[str, Any]] = field(default_factory=list)
    canvas: dict[str, float] = field(default_factory=dict)
    view: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": self.nodes,
            "edges": self.edges,
            "orphans": self.orphans,
            "selection": self.selection,
            "pending_drag": self.pending_drag,
            "unsynced": self.unsynced,
            "notices": self.notices,
            "canvas": self.canvas,
            "view": self.view,
        }


class WorkspaceSession:
    """The editing session of one workspace."""

    def __init__(
        self,
        workspace: str,
        store: SpecificationStore,
        view_store: KeyValueStore,
        scheduler: Scheduler,
        *,
        config: dict[str, Any] | None = None,
        policy: LayoutPolicy = LayoutPolicy.LAYERED,
        narrative_order: Sequence[str] | None = None,
    ) -> None:
        config = config or {}
        resolver_options = ResolverOptions.from_config(config)

        self.workspace = workspace
        self.store = store
        self.view_store = view_store
        self.policy = policy
        self.narrative_order = list(narrative_order or [])
        self.prefixes: dict[NodeType, str] = {**DEFAULT_PREFIXES, **resolver_options.prefixes}

        self.loader = RecordLoader(store, self.prefixes)
        self.resolver = RelationshipResolver(resolver_options)
        self.engine = LayoutEngine.from_config(config)
        self.notices = NoticeBoard()
        self.sync = PersistenceSynchronizer(
            store,
            view_store,
            scheduler,
            self.notices,
            quiet_period=float(config.get("sync", {}).get("quiet_period", 0.5)),
        )
        self.controller = InteractionController(self)
        self.graph = SpecGraph(workspace=workspace)
        self.view_state = ViewState(workspace, policy)

    # ─────────────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────────────

    async def load(self, *, restore_positions: bool = True) -> SpecGraph:
        """Load, resolve and lay out the workspace.

        With ``restore_positions`` cached view-state positions win over
        the computed layout for nodes that still exist.

        Raises:
            StoreIOError: If the records cannot be listed.
        """
        records = await self.loader.load(self.workspace, self.narrative_order)
        builder = GraphBuilder(self.workspace)
        builder.add_records(records.all_records())
        graph = builder.build(self.resolver)
        self.engine.layout(graph, self.policy).apply(graph)

        view_state = ViewState(self.workspace, self.policy)
        if restore_positions:
            view_state = await self._restore_view_state(graph, view_state)

        self.graph = graph
        self.view_state = view_state
        self.sync.bind(graph, view_state)
        self.controller.reset()

        for ambiguity in graph.ambiguous_matches():
            self.notices.warning(
                str(ambiguity), code=ErrorCode.AMBIGUOUS_MATCH, target_id=ambiguity.child_id
            )
        for assignment in graph.low_confidence_assignments():
            self.notices.warning(
                f"{assignment.child_id} was attached to {assignment.parent_id} by guess",
                target_id=assignment.child_id,
            )
        logger.info(
            "Loaded workspace %s: %d nodes, %d edges",
            self.workspace,
            graph.node_count(),
            graph.edge_count(),
        )
        return graph

    async def reload(self) -> SpecGraph:
        """Discard the graph and unsynced markers; recompute every position."""
        return await self.load(restore_positions=False)

    async def _restore_view_state(self, graph: SpecGraph, fresh: ViewState) -> ViewState:
        try:
            cached = await self.view_store.load(fresh.key)
        except StoreIOError as e:
            self.notices.warning(f"Could not read cached view: {e}", code=ErrorCode.IO_ERROR)
            return fresh
        if not cached:
            return fresh
        state = ViewState.from_dict(cached, workspace=self.workspace)
        state.policy = self.policy
        restored = state.restore_into(graph)
        logger.debug("Restored %d cached position(s)", restored)
        return state

    def set_policy(self, policy: LayoutPolicy) -> None:
        """Switch layout policy and lay the graph out again."""
        self.policy = policy
        self.engine.layout(self.graph, policy).apply(self.graph)
        self.view_state.policy = policy
        self.sync.schedule_view_state()

    # ─────────────────────────────────────────────────────────────────────────
    # Incremental layout
    # ─────────────────────────────────────────────────────────────────────────

    def reposition_subtree(self, node_id: str) -> list[MutationEntry]:
        """Move a newly parented node's subtree into place."""
        positions = self.engine.reposition_subtree(self.graph, node_id, self.policy)
        entries = []
        for moved_id, position in positions.items():
            entry = self.graph.move_node(moved_id, position)
            self.sync.on_mutation(entry)
            entries.append(entry)
        return entries

    # ─────────────────────────────────────────────────────────────────────────
    # View projection
    # ─────────────────────────────────────────────────────────────────────────

    def canvas(self) -> Size:
        shown = [n for n in self.graph.all_nodes() if n.type in self.policy.node_types]
        if self.policy is LayoutPolicy.MASONRY:
            margin_x = self.engine.masonry_config.origin_x
            margin_y = self.engine.masonry_config.origin_y
        else:
            margin_x = margin_y = self.engine.layered_config.padding
        if not shown:
            return Size(2 * margin_x, 2 * margin_y)
        return Size(
            max(n.position.x + n.size.width for n in shown) + margin_x,
            max(n.position.y + n.size.height for n in shown) + margin_y,
        )

    def snapshot(self) -> Snapshot:
        """Project the session for the view; drains pending notices."""
        graph = self.graph
        shown = self.policy.node_types
        unsynced = set(graph.unsynced_ids())
        orphans = graph.orphans()
        orphan_ids = {i for ids in orphans.values() for i in ids}

        nodes = []
        for node in graph.all_nodes():
            if node.type not in shown:
                continue
            data = node.to_dict()
            data["orphan"] = node.id in orphan_ids
            data["unsynced"] = node.id in unsynced
            nodes.append(data)

        shown_ids = {n["id"] for n in nodes}
        edges = []
        for edge in graph.all_edges():
            if edge.from_id in shown_ids and edge.to_id in shown_ids:
                data = edge.to_dict()
                data["unsynced"] = edge.id in unsynced
                edges.append(data)

        controller = self.controller
        view_state = self.view_state
        return Snapshot(
            nodes=nodes,
            edges=edges,
            orphans={t.label: ids for t, ids in orphans.items()},
            selection=controller.selection.to_dict() if controller.selection else None,
            pending_drag=controller.pending.to_dict() if controller.pending else None,
            unsynced=sorted(unsynced),
            notices=[n.to_dict() for n in self.notices.drain()],
            canvas=self.canvas().to_dict(),
            view={
                "workspace": self.workspace,
                "policy": self.policy.value,
                "gesture": controller.state.value,
                "zoom": view_state.zoom,
                "scroll": {"x": view_state.scroll_x, "y": view_state.scroll_y},
            },
        )
