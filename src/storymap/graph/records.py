"""Typed specification records.

``RawRecord`` is what a store returns: loosely shaped metadata read from
one markdown document. The loader validates each raw record into exactly
one of the closed record variants below; nothing downstream inspects raw
field maps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from storymap.graph.GraphNode import NodeType, SourceRef

# Reference fields per child type, most specific first.
REFERENCE_FIELDS: dict[NodeType, tuple[str, ...]] = {
    NodeType.CAPABILITY: ("Storyboard Reference", "Storyboard"),
    NodeType.ENABLER: ("Capability ID", "Capability"),
    NodeType.TEST_SCENARIO: ("Enabler ID", "Enabler"),
}


@dataclass(frozen=True)
class RawRecord:
    """Untyped record as listed by a specification store.

    Attributes:
        identifier: Declared identifier, or empty.
        display_name: Title or name, or empty.
        status: Declared status, or empty.
        raw_fields: ``**Field**: value`` metadata keyed by field name.
        raw_content: Full document text.
        source_handle: Where the document lives.
    """

    identifier: str = ""
    display_name: str = ""
    status: str = ""
    raw_fields: dict[str, str] = field(default_factory=dict)
    raw_content: str = ""
    source_handle: SourceRef | None = None

    def get_field(self, name: str) -> str:
        """Case-insensitive field lookup; empty string when absent."""
        wanted = name.lower()
        for key, value in self.raw_fields.items():
            if key.lower() == wanted:
                return value.strip()
        return ""


@dataclass(frozen=True)
class SpecRecord:
    """Common shape of every typed record."""

    record_type: ClassVar[NodeType]

    identifier: str
    name: str
    status: str = "draft"
    content: str = field(default="", repr=False)
    source: SourceRef | None = None

    @property
    def filename(self) -> str:
        return self.source.filename if self.source else ""


@dataclass(frozen=True)
class StoryboardRecord(SpecRecord):
    record_type: ClassVar[NodeType] = NodeType.STORYBOARD


@dataclass(frozen=True)
class ChildRecord(SpecRecord):
    """A record that declares a reference to a parent record.

    Attributes:
        parent_reference: The reference text, or empty.
        reference_field: Name of the field the reference was read from.
    """

    parent_reference: str = ""
    reference_field: str | None = None

    @property
    def primary_reference_field(self) -> str:
        return REFERENCE_FIELDS[self.record_type][0]


@dataclass(frozen=True)
class CapabilityRecord(ChildRecord):
    record_type: ClassVar[NodeType] = NodeType.CAPABILITY


@dataclass(frozen=True)
class EnablerRecord(ChildRecord):
    record_type: ClassVar[NodeType] = NodeType.ENABLER


@dataclass(frozen=True)
class TestScenarioRecord(ChildRecord):
    __test__ = False

    record_type: ClassVar[NodeType] = NodeType.TEST_SCENARIO


RECORD_CLASSES: dict[NodeType, type[SpecRecord]] = {
    NodeType.STORYBOARD: StoryboardRecord,
    NodeType.CAPABILITY: CapabilityRecord,
    NodeType.ENABLER: EnablerRecord,
    NodeType.TEST_SCENARIO: TestScenarioRecord,
}
