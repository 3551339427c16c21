"""Relationship Resolver - infers child -> parent edges between layers.

For each child, in declared order, the resolver tries:

1. Explicit reference match, by rule priority:
   identifier equality, name equality, substring containment either way.
   Within a rule the first parent in parent-list order wins.
2. Identifier-pattern fallback over the raw content, then the filename.
3. Orphan classification.

Enablers may additionally be assigned round-robin when
``low_confidence_assignment`` is enabled; those edges carry
``confidence="low"``. Consecutive storyboards get StoryboardFlow edges.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from storymap.graph.errors import AmbiguousMatch
from storymap.graph.GraphNode import GraphNode, NodeType
from storymap.graph.loader import DEFAULT_PREFIXES
from storymap.graph.records import ChildRecord
from storymap.graph.relations import CONFIDENCE_HIGH, CONFIDENCE_LOW, Edge, EdgeKind

if TYPE_CHECKING:
    from storymap.graph.builder import SpecGraph

logger = logging.getLogger(__name__)

CHILD_LAYERS = (NodeType.CAPABILITY, NodeType.ENABLER, NodeType.TEST_SCENARIO)

_PAREN_ID = re.compile(r"\(([^()]+)\)\s*$")


class MatchRule(Enum):
    """How a parent was found, in priority order."""

    IDENTIFIER = "identifier"
    NAME = "name"
    SUBSTRING = "substring"
    PATTERN = "pattern"
    ROUND_ROBIN = "round_robin"


@dataclass(frozen=True)
class ParentMatch:
    """The parent chosen for a child and every candidate of the winning rule."""

    parent_id: str
    rule: MatchRule
    candidates: tuple[str, ...]

    @property
    def is_ambiguous(self) -> bool:
        return len(self.candidates) > 1


@dataclass(frozen=True)
class LowConfidenceAssignment:
    """An enabler attached to a capability by round-robin guess."""

    child_id: str
    parent_id: str
    confidence: str = CONFIDENCE_LOW

    def to_dict(self) -> dict[str, Any]:
        return {"child_id": self.child_id, "parent_id": self.parent_id, "confidence": self.confidence}


@dataclass
class ResolverOptions:
    """Resolver settings.

    Attributes:
        prefixes: Identifier prefix per node type.
        low_confidence_assignment: Assign unreferenced enablers round-robin.
    """

    prefixes: dict[NodeType, str] = field(default_factory=lambda: dict(DEFAULT_PREFIXES))
    low_confidence_assignment: bool = False

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ResolverOptions:
        prefixes = dict(DEFAULT_PREFIXES)
        for key, value in config.get("prefixes", {}).items():
            prefixes[NodeType.parse(key)] = str(value)
        resolver = config.get("resolver", {})
        return cls(
            prefixes=prefixes,
            low_confidence_assignment=bool(resolver.get("low_confidence_assignment", False)),
        )


@dataclass
class ResolveResult:
    """Output of one resolver run."""

    edges: list[Edge] = field(default_factory=list)
    orphans: dict[NodeType, list[str]] = field(
        default_factory=lambda: {t: [] for t in CHILD_LAYERS}
    )
    ambiguities: list[AmbiguousMatch] = field(default_factory=list)
    low_confidence: list[LowConfidenceAssignment] = field(default_factory=list)


def identifier_patterns(prefix: str, label: str) -> list[re.Pattern[str]]:
    """Ordered identifier patterns for a parent type, most specific first."""
    p = re.escape(prefix)
    token = rf"({p}-[A-Z0-9-]+)"
    camel = label[0].lower() + label[1:]
    sources = [
        rf"\*\*{label}\s*ID\*\*:\s*{token}",
        rf"\*\*{label}\s*ID:\*\*\s*{token}",
        rf"{label}\s*ID:\s*{token}",
        rf"{camel}Id:\s*{token}",
        rf"\*\*{label}\*\*:[^(\n]*\({token}\)",
        rf"{label}:\s*{token}",
        rf"parent:\s*{token}",
        rf"\b({p}-\d{{3,6}})\b",
        rf"\b({p}-[A-Z]+-[A-Z0-9-]+-\d+)\b",
    ]
    return [re.compile(source, re.IGNORECASE) for source in sources]


class RelationshipResolver:
    """Infers edges for a freshly loaded, edge-free graph."""

    def __init__(self, options: ResolverOptions | None = None) -> None:
        self.options = options or ResolverOptions()
        self._patterns: dict[NodeType, list[re.Pattern[str]]] = {
            t: identifier_patterns(self.options.prefixes[t], t.label)
            for t in (NodeType.STORYBOARD, NodeType.CAPABILITY, NodeType.ENABLER)
        }

    def resolve(self, graph: SpecGraph) -> ResolveResult:
        """Resolve every layer pair of ``graph``.

        The graph is read only; the caller attaches ``result.edges``.
        """
        result = ResolveResult()

        storyboards = list(graph.nodes_by_type(NodeType.STORYBOARD))
        for earlier, later in zip(storyboards, storyboards[1:]):
            result.edges.append(
                Edge(earlier.id, later.id, EdgeKind.STORYBOARD_FLOW, inferred=True)
            )

        for child_type in CHILD_LAYERS:
            parent_type = child_type.parent_type
            assert parent_type is not None
            kind = EdgeKind.for_types(child_type, parent_type)
            assert kind is not None
            parents = list(graph.nodes_by_type(parent_type))
            for index, child in enumerate(graph.nodes_by_type(child_type)):
                match = self.match_child(child, parents)
                if match is None and self._wants_round_robin(child, parents):
                    parent = parents[index % len(parents)]
                    match = ParentMatch(parent.id, MatchRule.ROUND_ROBIN, (parent.id,))
                    result.low_confidence.append(LowConfidenceAssignment(child.id, parent.id))
                    logger.warning(
                        "Assigned %s to %s by round-robin (low confidence)", child.id, parent.id
                    )

                if match is None:
                    result.orphans[child_type].append(child.id)
                    logger.debug("%s %s is an orphan", child_type.label, child.id)
                    continue

                confidence = (
                    CONFIDENCE_LOW if match.rule is MatchRule.ROUND_ROBIN else CONFIDENCE_HIGH
                )
                result.edges.append(
                    Edge(child.id, match.parent_id, kind, inferred=True, confidence=confidence)
                )
                if match.is_ambiguous:
                    ambiguity = AmbiguousMatch(
                        child_id=child.id,
                        reference=_reference_of(child),
                        rule=match.rule.value,
                        candidates=match.candidates,
                    )
                    result.ambiguities.append(ambiguity)
                    logger.warning("%s", ambiguity)

        logger.info(
            "Resolved %d edge(s); orphans: %s",
            len(result.edges),
            ", ".join(f"{t.label}={len(ids)}" for t, ids in result.orphans.items()),
        )
        return result

    def match_child(self, child: GraphNode, parents: list[GraphNode]) -> ParentMatch | None:
        """Find the parent of one child: explicit reference, then patterns."""
        if not parents:
            return None
        reference = _reference_of(child)
        if reference:
            match = self.match_reference(reference, parents)
            if match is not None:
                return match
        return self.match_pattern(child, parents)

    def match_reference(self, reference: str, parents: list[GraphNode]) -> ParentMatch | None:
        """Match reference text against parents by rule priority."""
        text = reference.strip().lower()
        if not text:
            return None
        paren = _PAREN_ID.search(reference)
        ids = {text}
        if paren:
            ids.add(paren.group(1).strip().lower())
        name_part = _PAREN_ID.sub("", reference).strip().lower() or text
        names = {text, name_part}

        rules: list[tuple[MatchRule, Callable[[GraphNode], bool]]] = [
            (MatchRule.IDENTIFIER, lambda p: p.identifier.lower() in ids),
            (MatchRule.NAME, lambda p: p.name.strip().lower() in names),
            (MatchRule.SUBSTRING, lambda p: _contains_either(name_part, p.name.strip().lower())),
        ]
        for rule, predicate in rules:
            hits = [parent.id for parent in parents if predicate(parent)]
            if hits:
                return ParentMatch(hits[0], rule, tuple(hits))
        return None

    def match_pattern(self, child: GraphNode, parents: list[GraphNode]) -> ParentMatch | None:
        """Scan content then filename for a token equal to a parent identifier."""
        parent_type = parents[0].type
        by_identifier: dict[str, str] = {}
        for parent in parents:
            by_identifier.setdefault(parent.identifier.upper(), parent.id)

        record = child.record
        haystacks = [record.content if record else "", record.filename if record else ""]
        for haystack in haystacks:
            if not haystack:
                continue
            for pattern in self._patterns[parent_type]:
                for found in pattern.finditer(haystack):
                    token = found.group(1).upper().rstrip("-")
                    if token in by_identifier:
                        return ParentMatch(by_identifier[token], MatchRule.PATTERN, (by_identifier[token],))
        return None

    def _wants_round_robin(self, child: GraphNode, parents: list[GraphNode]) -> bool:
        if not self.options.low_confidence_assignment or not parents:
            return False
        if child.type is not NodeType.ENABLER or _reference_of(child):
            return False
        prefix = re.escape(self.options.prefixes[NodeType.CAPABILITY])
        record = child.record
        text = f"{record.content if record else ''}\n{record.filename if record else ''}"
        return re.search(rf"\b{prefix}-[A-Z0-9]", text, re.IGNORECASE) is None


def _reference_of(node: GraphNode) -> str:
    record = node.record
    if isinstance(record, ChildRecord):
        return record.parent_reference
    return ""


def _contains_either(a: str, b: str) -> bool:
    return bool(a) and bool(b) and (a in b or b in a)
