"""Graph module - specification graph data structures.

Exports:
- NodeType, GraphNode, Position, Size, SourceRef
- EdgeKind, Edge
- SpecGraph, GraphBuilder
- MutationEntry
"""

from storymap.graph.builder import GraphBuilder, SpecGraph
from storymap.graph.GraphNode import GraphNode, NodeType, Position, Size, SourceRef
from storymap.graph.mutations import MutationEntry
from storymap.graph.relations import Edge, EdgeKind

__all__ = [
    "NodeType",
    "GraphNode",
    "Position",
    "Size",
    "SourceRef",
    "EdgeKind",
    "Edge",
    "SpecGraph",
    "GraphBuilder",
    "MutationEntry",
]
