"""Tests for markdown metadata field parsing and rewriting."""

from storymap.utilities.spec_writer import (
    extract_title,
    parse_fields,
    render_record,
    set_field,
    update_field_in_file,
)

DOC = """# Cart Pricing

## Metadata
- **ID**: CAP-001
- **Storyboard Reference**: Login

## Description

Prices the cart.
"""


class TestParseFields:
    def test_fields_and_title(self):
        assert parse_fields(DOC) == {"ID": "CAP-001", "Storyboard Reference": "Login"}
        assert extract_title(DOC) == "Cart Pricing"

    def test_first_occurrence_wins(self):
        content = "**Status**: Draft\n\n**Status**: Final\n"

        assert parse_fields(content) == {"Status": "Draft"}

    def test_no_title(self):
        assert extract_title("## Only a section\n") == ""


class TestSetField:
    def test_rewrite_in_place(self):
        updated = set_field(DOC, "Storyboard Reference", "Checkout")

        assert "- **Storyboard Reference**: Checkout\n" in updated
        assert "Login" not in updated
        assert updated.count("\n") == DOC.count("\n")

    def test_rewrite_is_case_insensitive_and_keeps_bullet(self):
        content = "# X\n\n* **capability id**: CAP-1\n"

        assert set_field(content, "Capability ID", "CAP-2") == "# X\n\n* **Capability ID**: CAP-2\n"

    def test_insert_after_last_metadata_field(self):
        updated = set_field(DOC, "Status", "Active")

        assert parse_fields(updated)["Status"] == "Active"
        assert "- **Storyboard Reference**: Login\n- **Status**: Active\n\n## Description" in updated

    def test_insert_creates_metadata_section(self):
        content = "# Tax Calc\n\nComputes tax.\n"

        updated = set_field(content, "Capability ID", "CAP-001")

        assert updated == "# Tax Calc\n\n## Metadata\n- **Capability ID**: CAP-001\n\nComputes tax.\n"

    def test_empty_value_removes_line(self):
        updated = set_field(DOC, "Storyboard Reference", "")

        assert "Storyboard Reference" not in updated
        assert "- **ID**: CAP-001\n\n## Description" in updated

    def test_removing_absent_field_is_noop(self):
        assert set_field(DOC, "Enabler ID", "") == DOC


class TestUpdateFieldInFile:
    def test_writes_file(self, tmp_path):
        path = tmp_path / "CAP-001.md"
        path.write_text(DOC, encoding="utf-8")

        assert update_field_in_file(path, "Storyboard Reference", "Checkout") is None
        assert parse_fields(path.read_text(encoding="utf-8"))["Storyboard Reference"] == "Checkout"

    def test_missing_file_returns_error(self, tmp_path):
        error = update_field_in_file(tmp_path / "nope.md", "ID", "X")

        assert error is not None
        assert "nope.md" in error


class TestRenderRecord:
    def test_renders_parseable_document(self):
        content = render_record("Shipping", {"ID": "CAP-SHIPPING", "Status": "draft", "Empty": ""})

        assert extract_title(content) == "Shipping"
        assert parse_fields(content) == {"ID": "CAP-SHIPPING", "Status": "draft"}
