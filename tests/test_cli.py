"""Tests for the storymap command-line interface."""

import json

import pytest

from storymap.cli import create_parser, main
from storymap.utilities.spec_writer import render_record


@pytest.fixture
def workspace(tmp_path):
    conception = tmp_path / "conception"
    definition = tmp_path / "definition"
    conception.mkdir()
    definition.mkdir()
    (conception / "STORY-checkout.md").write_text(
        render_record("Checkout", {"ID": "STORY-CHECKOUT"}), encoding="utf-8"
    )
    (definition / "CAP-001.md").write_text(
        render_record("Cart Pricing", {"ID": "CAP-001", "Storyboard Reference": "Checkout"}),
        encoding="utf-8",
    )
    (definition / "ENB-001.md").write_text(
        render_record("Tax Calc", {"ID": "ENB-001"}), encoding="utf-8"
    )
    return tmp_path


class TestParser:
    def test_graph_options(self):
        args = create_parser().parse_args(["-w", "ws", "graph", "--layout", "masonry", "-j"])

        assert args.command == "graph"
        assert args.workspace == "ws"
        assert args.layout == "masonry"
        assert args.json is True

    def test_serve_options(self):
        args = create_parser().parse_args(["serve", "--port", "8080"])

        assert args.port == 8080
        assert args.host is None

    def test_rejects_unknown_layout(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["graph", "--layout", "radial"])


class TestGraphCommand:
    def test_json_output(self, workspace, capsys):
        assert main(["--workspace", str(workspace), "--log-level", "WARNING", "graph", "--json"]) == 0

        data = json.loads(capsys.readouterr().out)
        ids = [n["id"] for n in data["nodes"]]
        assert ids == ["STORY-CHECKOUT", "CAP-001", "ENB-001"]
        assert [e["id"] for e in data["edges"]] == ["CAP-001->STORY-CHECKOUT"]
        assert data["ambiguities"] == []

    def test_text_output_lists_orphans(self, workspace, capsys):
        assert main(["-w", str(workspace), "--log-level", "WARNING", "graph"]) == 0

        out = capsys.readouterr().out
        assert "Storyboard STORY-CHECKOUT: Checkout" in out
        assert "  Capability CAP-001: Cart Pricing" in out
        assert "Orphan Enablers:" in out
        assert "3 nodes, 1 edges" in out

    def test_bad_config_exits_nonzero(self, workspace, capsys):
        config = workspace / "broken.toml"
        config.write_text("[layout\n", encoding="utf-8")

        assert main(["--config", str(config), "-w", str(workspace), "graph"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "storymap" in capsys.readouterr().out
