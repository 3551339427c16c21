"""Spec file I/O - reading and rewriting markdown specification documents.

Documents carry metadata as bold field lines::

    ## Metadata
    - **ID**: CAP-001
    - **Storyboard Reference**: Checkout

Every file read and write uses ``encoding="utf-8"`` explicitly.

Public API
----------
- ``parse_fields``         - field name -> value, first occurrence wins
- ``extract_title``        - first level-1 heading
- ``set_field``            - rewrite, insert or remove one field line
- ``update_field_in_file`` - ``set_field`` against a file on disk
- ``render_record``        - content for a newly created document
"""

from __future__ import annotations

import re
from pathlib import Path

FIELD_LINE_RE = re.compile(
    r"^(?P<lead>[ \t]*(?:[-*+][ \t]+)?)\*\*(?P<name>[^*\n]+?)\*\*:[ \t]*(?P<value>.*?)[ \t]*$",
    re.MULTILINE,
)
TITLE_RE = re.compile(r"^#[ \t]+(?P<title>.+?)[ \t]*$", re.MULTILINE)
METADATA_HEADING_RE = re.compile(r"^##[ \t]+Metadata[ \t]*$", re.MULTILINE | re.IGNORECASE)
HEADING_RE = re.compile(r"^#{1,6}[ \t]+", re.MULTILINE)


def parse_fields(content: str) -> dict[str, str]:
    """Collect ``**Field**: value`` lines; the first occurrence of a name wins."""
    fields: dict[str, str] = {}
    for match in FIELD_LINE_RE.finditer(content):
        name = match.group("name").strip()
        if name not in fields:
            fields[name] = match.group("value").strip()
    return fields


def extract_title(content: str) -> str:
    """Return the first level-1 heading, or an empty string."""
    match = TITLE_RE.search(content)
    return match.group("title").strip() if match else ""


def _find_field(content: str, field_name: str) -> re.Match[str] | None:
    wanted = field_name.strip().lower()
    for match in FIELD_LINE_RE.finditer(content):
        if match.group("name").strip().lower() == wanted:
            return match
    return None


def set_field(content: str, field_name: str, value: str) -> str:
    """Return ``content`` with one metadata field rewritten.

    An existing line is rewritten in place keeping its bullet style. A
    missing field is inserted after the last field line of the
    ``## Metadata`` section, creating the section below the title when
    absent. An empty value removes the line.
    """
    value = value.strip()
    existing = _find_field(content, field_name)

    if existing is not None:
        if not value:
            end = existing.end()
            if content[end : end + 1] == "\n":
                end += 1
            return content[: existing.start()] + content[end:]
        line = f"{existing.group('lead')}**{field_name}**: {value}"
        return content[: existing.start()] + line + content[existing.end() :]

    if not value:
        return content

    line = f"- **{field_name}**: {value}"
    heading = METADATA_HEADING_RE.search(content)
    if heading is None:
        return _insert_metadata_section(content, line)

    next_heading = HEADING_RE.search(content, heading.end())
    section_end = next_heading.start() if next_heading else len(content)
    last_field = None
    for match in FIELD_LINE_RE.finditer(content, heading.end(), section_end):
        last_field = match

    if last_field is not None:
        pos = last_field.end()
        return content[:pos] + "\n" + line + content[pos:]

    pos = heading.end()
    return content[:pos] + "\n" + line + content[pos:]


def _insert_metadata_section(content: str, line: str) -> str:
    section = f"## Metadata\n{line}\n"
    title = TITLE_RE.search(content)
    if title is None:
        return section + ("\n" + content if content else "")
    pos = title.end()
    rest = content[pos:].lstrip("\n")
    head = content[:pos] + "\n\n" + section
    return head + ("\n" + rest if rest else "")


def update_field_in_file(file_path: Path, field_name: str, value: str) -> str | None:
    """Rewrite one metadata field of a document on disk.

    Returns:
        None if the file was written (or already held the value).
        A descriptive error string if the update failed.
    """
    file_path = Path(file_path)
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        return f"Cannot read {file_path.name}: {e}"

    new_content = set_field(content, field_name, value)
    if new_content == content:
        return None
    try:
        file_path.write_text(new_content, encoding="utf-8")
    except OSError as e:
        return f"Cannot write {file_path.name}: {e}"
    return None


def render_record(title: str, fields: dict[str, str], body: str = "") -> str:
    """Content for a new document: title, metadata section, optional body."""
    lines = [f"# {title}", "", "## Metadata"]
    lines.extend(f"- **{name}**: {value}" for name, value in fields.items() if value)
    content = "\n".join(lines) + "\n"
    if body.strip():
        content += "\n" + body.strip() + "\n"
    return content
