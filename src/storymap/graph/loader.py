"""Record Loader - fetches raw records and validates them into typed records.

This is the only place raw field maps are inspected. Each raw record is
turned into exactly one ``SpecRecord`` variant with its identifier, name,
status and parent reference settled.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Sequence

from storymap.graph.GraphNode import NodeType
from storymap.graph.records import (
    RECORD_CLASSES,
    REFERENCE_FIELDS,
    ChildRecord,
    RawRecord,
    SpecRecord,
)

if TYPE_CHECKING:
    from storymap.store.base import SpecificationStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES: dict[NodeType, str] = {
    NodeType.STORYBOARD: "STORY",
    NodeType.CAPABILITY: "CAP",
    NodeType.ENABLER: "ENB",
    NodeType.TEST_SCENARIO: "TS",
}

DEFAULT_STATUS = "draft"


@dataclass
class LoadedRecords:
    """Typed records of one workspace, per type in store order."""

    storyboards: list[SpecRecord] = field(default_factory=list)
    capabilities: list[SpecRecord] = field(default_factory=list)
    enablers: list[SpecRecord] = field(default_factory=list)
    test_scenarios: list[SpecRecord] = field(default_factory=list)

    def by_type(self, record_type: NodeType) -> list[SpecRecord]:
        return {
            NodeType.STORYBOARD: self.storyboards,
            NodeType.CAPABILITY: self.capabilities,
            NodeType.ENABLER: self.enablers,
            NodeType.TEST_SCENARIO: self.test_scenarios,
        }[record_type]

    def all_records(self) -> Iterator[SpecRecord]:
        """Iterate all records, layer by layer."""
        yield from self.storyboards
        yield from self.capabilities
        yield from self.enablers
        yield from self.test_scenarios

    def __len__(self) -> int:
        return sum(1 for _ in self.all_records())


class RecordLoader:
    """Loads and validates the records of a workspace from a store."""

    def __init__(
        self,
        store: SpecificationStore,
        prefixes: dict[NodeType, str] | None = None,
    ) -> None:
        self.store = store
        self.prefixes = {**DEFAULT_PREFIXES, **(prefixes or {})}

    async def load(
        self, workspace: str, narrative_order: Sequence[str] | None = None
    ) -> LoadedRecords:
        """Fetch every record type and validate it.

        Raises:
            StoreIOError: If the store cannot list a record type.
        """
        loaded = LoadedRecords()
        for record_type in NodeType:
            raws = await self.store.list_records(workspace, record_type)
            typed = loaded.by_type(record_type)
            typed.extend(self.validate(raw, record_type) for raw in raws)
            logger.debug("Loaded %d %s record(s) from %s", len(raws), record_type.value, workspace)

        if narrative_order:
            loaded.storyboards = order_storyboards(loaded.storyboards, narrative_order)
        return loaded

    def validate(self, raw: RawRecord, record_type: NodeType) -> SpecRecord:
        """Validate one raw record into its typed variant."""
        prefix = self.prefixes[record_type]
        filename = raw.source_handle.filename if raw.source_handle else ""
        stem = Path(filename).stem

        identifier = extract_identifier(raw, prefix)
        name = raw.display_name.strip() or raw.get_field("Name") or stem or identifier
        status = raw.status.strip() or raw.get_field("Status") or DEFAULT_STATUS

        cls = RECORD_CLASSES[record_type]
        common = {
            "identifier": identifier,
            "name": name,
            "status": status,
            "content": raw.raw_content,
            "source": raw.source_handle,
        }
        if not issubclass(cls, ChildRecord):
            return cls(**common)

        reference, reference_field = "", None
        for field_name in REFERENCE_FIELDS[record_type]:
            value = raw.get_field(field_name)
            if value:
                reference, reference_field = value, field_name
                break
        return cls(**common, parent_reference=reference, reference_field=reference_field)


def extract_identifier(raw: RawRecord, prefix: str) -> str:
    """Settle a record identifier.

    Order: declared identifier, ``ID`` field, prefixed token in the
    filename, ``**ID**:`` line in the content, prefix plus the first number
    in the filename, prefix plus the sanitised filename.
    """
    declared = raw.identifier.strip() or raw.get_field("ID")
    if declared:
        return declared.upper()

    filename = raw.source_handle.filename if raw.source_handle else ""
    stem = Path(filename).stem
    token = re.compile(rf"((?i:{re.escape(prefix)})-[A-Z0-9][A-Z0-9-]*)")

    match = token.search(stem)
    if match:
        return match.group(1).upper().rstrip("-")

    match = re.search(rf"\*\*ID\*\*:\s*((?i:{re.escape(prefix)})-[A-Z0-9-]+)", raw.raw_content)
    if match:
        return match.group(1).upper().rstrip("-")

    match = re.search(r"(\d+)", stem)
    if match:
        return f"{prefix}-{match.group(1)}"

    sanitised = re.sub(r"[^A-Za-z0-9]+", "-", stem).strip("-").upper()
    return f"{prefix}-{sanitised or 'UNNAMED'}"


def order_storyboards(
    storyboards: list[SpecRecord], narrative_order: Sequence[str]
) -> list[SpecRecord]:
    """Sort storyboards by an external narrative order of ids or names.

    Storyboards not named in the order keep their relative order and sort
    after those that are.
    """
    keys = [entry.strip().lower() for entry in narrative_order]

    def rank(record: SpecRecord) -> int:
        for index, key in enumerate(keys):
            if key in (record.identifier.lower(), record.name.lower()):
                return index
        return len(keys)

    return sorted(storyboards, key=rank)
