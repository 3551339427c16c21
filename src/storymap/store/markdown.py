"""Markdown file store.

A workspace is a directory. Storyboards live in ``conception/``, the other
record types in ``definition/`` (both configurable); a file's type is
decided by its name. Blocking file access runs in worker threads via
``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from storymap.graph.errors import StoreIOError
from storymap.graph.GraphNode import NodeType, SourceRef
from storymap.graph.records import REFERENCE_FIELDS, RawRecord
from storymap.utilities.spec_writer import (
    extract_title,
    parse_fields,
    update_field_in_file,
)

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORIES: dict[NodeType, str] = {
    NodeType.STORYBOARD: "conception",
    NodeType.CAPABILITY: "definition",
    NodeType.ENABLER: "definition",
    NodeType.TEST_SCENARIO: "definition",
}


@dataclass(frozen=True)
class FilenameRule:
    """Filename test for one record type (case-insensitive)."""

    prefixes: tuple[str, ...] = ()
    contains: tuple[str, ...] = ()

    def matches(self, filename: str) -> bool:
        name = filename.lower()
        if not name.endswith(".md"):
            return False
        return any(name.startswith(p.lower()) for p in self.prefixes) or any(
            c.lower() in name for c in self.contains
        )


DEFAULT_FILENAME_RULES: dict[NodeType, FilenameRule] = {
    NodeType.STORYBOARD: FilenameRule(prefixes=("STORY", "storyboard"), contains=("-story",)),
    NodeType.CAPABILITY: FilenameRule(
        prefixes=("CAP-", "capability", "capabilities"), contains=("-capability",)
    ),
    NodeType.ENABLER: FilenameRule(prefixes=("ENB-", "enabler"), contains=("-enabler",)),
    NodeType.TEST_SCENARIO: FilenameRule(
        prefixes=("TS-", "test-scenario", "test_scenario", "testscenario"),
        contains=("-test-scenario",),
    ),
}


@dataclass
class MarkdownSpecStore:
    """Specification store over markdown files.

    Attributes:
        root: Base directory for relative workspace paths.
        directories: Sub-directory per record type.
        rules: Filename rule per record type.
    """

    root: Path = field(default_factory=Path.cwd)
    directories: dict[NodeType, str] = field(default_factory=lambda: dict(DEFAULT_DIRECTORIES))
    rules: dict[NodeType, FilenameRule] = field(
        default_factory=lambda: dict(DEFAULT_FILENAME_RULES)
    )

    @classmethod
    def from_config(cls, config: dict[str, Any], root: Path | None = None) -> MarkdownSpecStore:
        directories = dict(DEFAULT_DIRECTORIES)
        for key, value in config.get("directories", {}).items():
            try:
                directories[NodeType.parse(key)] = str(value)
            except ValueError:
                continue
        rules = dict(DEFAULT_FILENAME_RULES)
        for key, value in config.get("files", {}).items():
            rules[NodeType.parse(key)] = FilenameRule(
                prefixes=tuple(value.get("prefixes", ())),
                contains=tuple(value.get("contains", ())),
            )
        return cls(root=root or Path.cwd(), directories=directories, rules=rules)

    def workspace_dir(self, workspace: str) -> Path:
        path = Path(workspace)
        return path if path.is_absolute() else self.root / path

    def record_dir(self, workspace: str, record_type: NodeType) -> Path:
        return self.workspace_dir(workspace) / self.directories[record_type]

    def record_type_of(self, filename: str) -> NodeType | None:
        """Type a filename belongs to; the most specific layer wins."""
        for record_type in reversed(list(NodeType)):
            if self.rules[record_type].matches(filename):
                return record_type
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # SpecificationStore
    # ─────────────────────────────────────────────────────────────────────────

    async def list_records(self, workspace: str, record_type: NodeType) -> list[RawRecord]:
        return await asyncio.to_thread(self._list_records, workspace, record_type)

    async def update_field(self, handle: SourceRef, field_name: str, new_value: str) -> None:
        error = await asyncio.to_thread(
            update_field_in_file, handle.absolute(), field_name, new_value
        )
        if error:
            raise StoreIOError(error, target_id=handle.filename)
        logger.info("Set %s on %s", field_name, handle.filename)

    async def delete_record(self, handle: SourceRef, *, cascade: bool = False) -> None:
        await asyncio.to_thread(self._delete_record, handle, cascade)

    async def create_record(self, workspace: str, record_type: NodeType, content: str) -> SourceRef:
        return await asyncio.to_thread(self._create_record, workspace, record_type, content)

    # ─────────────────────────────────────────────────────────────────────────
    # Blocking implementations
    # ─────────────────────────────────────────────────────────────────────────

    def _list_records(self, workspace: str, record_type: NodeType) -> list[RawRecord]:
        directory = self.record_dir(workspace, record_type)
        if not directory.is_dir():
            logger.debug("No %s directory at %s", record_type.value, directory)
            return []

        records = []
        for path in sorted(directory.rglob("*.md")):
            if self.record_type_of(path.name) is not record_type:
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable %s: %s", path, e)
                continue
            records.append(self._raw_record(path, content))
        return records

    @staticmethod
    def _raw_record(path: Path, content: str) -> RawRecord:
        fields = parse_fields(content)
        lowered = {k.lower(): v for k, v in fields.items()}
        return RawRecord(
            identifier=lowered.get("id", ""),
            display_name=lowered.get("name", "") or extract_title(content),
            status=lowered.get("status", ""),
            raw_fields=fields,
            raw_content=content,
            source_handle=SourceRef(path=str(path.parent), filename=path.name),
        )

    def _delete_record(self, handle: SourceRef, cascade: bool) -> None:
        path = handle.absolute()
        if not path.is_file():
            raise StoreIOError(f"{handle.filename} does not exist", target_id=handle.filename)

        if not cascade:
            referencing = self._referencing_files(path, self._workspace_of(path))
            if referencing:
                names = ", ".join(p.name for p in referencing)
                raise StoreIOError(
                    f"{handle.filename} is referenced by {names}", target_id=handle.filename
                )
        try:
            path.unlink()
        except OSError as e:
            raise StoreIOError(f"Cannot delete {handle.filename}: {e}") from e
        logger.info("Deleted %s", path)

    def _workspace_of(self, path: Path) -> Path:
        """Workspace directory holding a record file, found via its type's directory."""
        record_type = self.record_type_of(path.name)
        if record_type is None:
            raise StoreIOError(f"{path.name} is not a record file", target_id=path.name)
        subdir = self.directories[record_type]
        for candidate in path.parents:
            if candidate / subdir in path.parents:
                return candidate
        raise StoreIOError(
            f"{path.name} is not inside a {subdir} directory", target_id=path.name
        )

    def _referencing_files(self, path: Path, workspace_dir: Path) -> list[Path]:
        """Documents under ``workspace_dir`` whose reference fields name ``path``."""
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreIOError(f"Cannot read {path.name}: {e}") from e
        record = self._raw_record(path, content)
        identifier = record.identifier.lower()
        name = record.display_name.lower()
        reference_fields = {f.lower() for fields in REFERENCE_FIELDS.values() for f in fields}

        found = []
        for other in sorted(workspace_dir.rglob("*.md")):
            if other == path:
                continue
            try:
                fields = parse_fields(other.read_text(encoding="utf-8"))
            except OSError:
                continue
            for key, value in fields.items():
                if key.lower() not in reference_fields or not value:
                    continue
                text = value.lower()
                if (identifier and re.search(rf"\b{re.escape(identifier)}\b", text)) or (
                    name and text == name
                ):
                    found.append(other)
                    break
        return found

    def _create_record(self, workspace: str, record_type: NodeType, content: str) -> SourceRef:
        directory = self.record_dir(workspace, record_type)
        fields = {k.lower(): v for k, v in parse_fields(content).items()}
        stem = fields.get("id") or extract_title(content) or record_type.value
        stem = re.sub(r"[^A-Za-z0-9]+", "-", stem).strip("-") or record_type.value

        try:
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / f"{stem}.md"
            suffix = 2
            while path.exists():
                path = directory / f"{stem}-{suffix}.md"
                suffix += 1
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise StoreIOError(f"Cannot create {record_type.label} record: {e}") from e

        logger.info("Created %s", path)
        return SourceRef(path=str(path.parent), filename=path.name)
