"""
storymap.cli - Command-line interface.

Main entry point for the storymap CLI tool.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from storymap import __version__
from storymap.config import ConfigError, find_config_file, load_config
from storymap.graph.builder import SpecGraph
from storymap.graph.GraphNode import NodeType
from storymap.graph.layout import LayoutPolicy
from storymap.session.scheduler import AsyncioScheduler
from storymap.session.workspace import WorkspaceSession
from storymap.store.kv import JsonFileKeyValueStore
from storymap.store.markdown import MarkdownSpecStore
from storymap.utilities.logs import setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storymap",
        description="Specification dependency graph and layout engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  storymap graph                     # Summarise the workspace graph
  storymap graph --layout masonry -j # Positions as JSON
  storymap serve --port 5050         # Start the REST API server

Configuration:
  .storymap.toml in the working directory or any parent, overridden by
  STORYMAP_<SECTION>_<KEY> environment variables.
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"storymap {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
        metavar="PATH",
    )
    parser.add_argument(
        "-w",
        "--workspace",
        default=".",
        help="Workspace directory (default: current directory)",
        metavar="PATH",
    )
    parser.add_argument(
        "--log-level",
        help="Log level (default: from config, else INFO)",
        metavar="LEVEL",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write JSON log lines to this file",
        metavar="PATH",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output; re-raise unexpected errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    graph_parser = subparsers.add_parser(
        "graph",
        help="Load, resolve and lay out the workspace",
    )
    graph_parser.add_argument(
        "--layout",
        choices=[p.value for p in LayoutPolicy],
        help="Layout policy (default: from config)",
    )
    graph_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output the graph as JSON",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the REST API server",
    )
    serve_parser.add_argument(
        "--host",
        help="Interface to bind (default: from config)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (default: from config)",
    )
    serve_parser.add_argument(
        "--layout",
        choices=[p.value for p in LayoutPolicy],
        help="Initial layout policy (default: from config)",
    )

    return parser


def _load_config(args: argparse.Namespace) -> dict[str, Any]:
    path = args.config or find_config_file(Path(args.workspace))
    return load_config(path)


def _build_session(
    args: argparse.Namespace, config: dict[str, Any], scheduler: AsyncioScheduler
) -> WorkspaceSession:
    workspace = str(Path(args.workspace).resolve())
    store = MarkdownSpecStore.from_config(config)
    state_dir = store.workspace_dir(workspace) / config["directories"].get("state", ".storymap")
    policy = LayoutPolicy(args.layout or config["layout"].get("default", "layered"))
    return WorkspaceSession(
        workspace,
        store,
        JsonFileKeyValueStore(state_dir),
        scheduler,
        config=config,
        policy=policy,
        narrative_order=config["storyboards"].get("narrative_order", []),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = _load_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_config = config.get("logging", {})
    setup_logging(
        args.log_level or log_config.get("level", "INFO"),
        args.log_file or log_config.get("file") or None,
        json_console=bool(log_config.get("json", False)),
    )

    try:
        if args.command == "graph":
            return graph_command(args, config)
        elif args.command == "serve":
            return serve_command(args, config)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


def graph_command(args: argparse.Namespace, config: dict[str, Any]) -> int:
    """Handle graph command - print the resolved, laid-out graph."""

    async def _load() -> WorkspaceSession:
        session = _build_session(args, config, AsyncioScheduler())
        await session.load()
        return session

    session = asyncio.run(_load())
    graph = session.graph

    if args.json:
        data = graph.to_dict()
        data["ambiguities"] = [a.to_dict() for a in graph.ambiguous_matches()]
        data["low_confidence"] = [a.to_dict() for a in graph.low_confidence_assignments()]
        data["canvas"] = session.canvas().to_dict()
        print(json.dumps(data, indent=2))
        return 0

    print(format_graph(graph))
    return 0


def format_graph(graph: SpecGraph) -> str:
    """Render the graph as an indented text tree."""
    lines = [f"Workspace: {graph.workspace}", ""]

    def walk(node_id: str, depth: int) -> None:
        node = graph.get_node(node_id)
        pos = node.position
        lines.append(
            f"{'  ' * depth}{node.type.label} {node.identifier}: {node.name} "
            f"[{node.status}] @ ({pos.x:g}, {pos.y:g})"
        )
        for child in graph.iter_children(node_id):
            if graph.primary_parent(child.id) is node:
                walk(child.id, depth + 1)

    for storyboard in graph.nodes_by_type(NodeType.STORYBOARD):
        walk(storyboard.id, 0)

    orphans = graph.orphans()
    for node_type, ids in orphans.items():
        if not ids:
            continue
        lines.append("")
        lines.append(f"Orphan {node_type.label}s:")
        for node_id in ids:
            walk(node_id, 1)

    ambiguities = graph.ambiguous_matches()
    if ambiguities:
        lines.append("")
        lines.append("Ambiguous matches:")
        lines.extend(f"  {a}" for a in ambiguities)

    lines.append("")
    lines.append(f"{graph.node_count()} nodes, {graph.edge_count()} edges")
    return "\n".join(lines)


def serve_command(args: argparse.Namespace, config: dict[str, Any]) -> int:
    """Handle serve command - run the REST API over one workspace session."""
    from storymap.server import EventLoopThread, create_app

    server_config = config.get("server", {})
    host = args.host or server_config.get("host", "127.0.0.1")
    port = args.port or int(server_config.get("port", 5050))

    runner = EventLoopThread().start()
    try:
        session = _build_session(args, config, AsyncioScheduler(runner.loop))
        runner.run(session.load())

        print(
            f"""
======================================
  storymap server
======================================

Workspace: {session.workspace}
Server:    http://{host}:{port}

Press Ctrl+C to stop
"""
        )

        app = create_app(session, runner)
        try:
            app.run(host=host, port=port, debug=False)
        except KeyboardInterrupt:
            print("\nServer stopped.")
        runner.run(session.sync.scheduler.drain())
    finally:
        runner.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
