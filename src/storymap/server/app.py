"""storymap.server.app - Flask app factory and REST API routes.

A thin REST wrapper over one ``WorkspaceSession``. Every call is
marshalled onto the session's event loop thread; no graph logic lives
here.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from flask import Flask, jsonify, request
from flask_cors import CORS

from storymap import __version__
from storymap.graph.errors import StoreIOError
from storymap.graph.layout import LayoutPolicy
from storymap.server.runner import EventLoopThread
from storymap.session.workspace import WorkspaceSession

logger = logging.getLogger(__name__)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# Gesture name -> ordered (parameter, converter, required)
GESTURES: dict[str, tuple[tuple[str, Callable[[Any], Any], bool], ...]] = {
    "pointer_down_node": (("node_id", str, True), ("x", float, True), ("y", float, True)),
    "pointer_down_endpoint": (
        ("edge_id", str, True),
        ("endpoint", str, True),
        ("x", float, True),
        ("y", float, True),
    ),
    "pointer_move": (("x", float, True), ("y", float, True)),
    "pointer_up": (("x", float, True), ("y", float, True), ("target_node_id", str, False)),
    "click_node": (("node_id", str, True),),
    "click_edge": (("edge_id", str, True),),
    "click_background": (),
    "begin_connect": (("node_id", str, True),),
    "delete_edge": (("edge_id", str, True),),
    "delete_selected_edge": (),
    "delete_node": (("node_id", str, True), ("cascade", _flag, False)),
    "create_node": (
        ("node_type", str, True),
        ("name", str, True),
        ("x", float, True),
        ("y", float, True),
        ("status", str, False),
    ),
    "scroll": (("x", float, True), ("y", float, True)),
    "zoom": (("level", float, True),),
}


def _gesture_kwargs(name: str, data: dict[str, Any]) -> dict[str, Any]:
    """Convert a JSON body into keyword arguments for a gesture.

    Raises:
        ValueError: If a required parameter is missing or malformed.
    """
    kwargs: dict[str, Any] = {}
    for param, convert, required in GESTURES[name]:
        value = data.get(param)
        if value is None:
            if required:
                raise ValueError(f"{param} required")
            continue
        try:
            kwargs[param] = convert(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid {param}: {value!r}") from e
    return kwargs


def create_app(session: WorkspaceSession, runner: EventLoopThread) -> Flask:
    """Create the Flask application with REST API routes.

    Args:
        session: A loaded workspace session bound to ``runner``'s loop.
        runner: The running event loop thread.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    CORS(app)

    _state: dict[str, Any] = {"session": session, "runner": runner}

    def _snapshot() -> dict[str, Any]:
        return _state["runner"].call(lambda: _state["session"].snapshot().to_dict())

    @app.route("/api/health")
    def api_health():
        """GET /api/health - Liveness and graph size."""
        graph = _state["session"].graph
        return jsonify(
            {
                "status": "ok",
                "version": __version__,
                "workspace": _state["session"].workspace,
                "nodes": graph.node_count(),
                "edges": graph.edge_count(),
            }
        )

    @app.route("/api/snapshot")
    def api_snapshot():
        """GET /api/snapshot - Current view projection (drains notices)."""
        return jsonify(_snapshot())

    @app.route("/api/reload", methods=["POST"])
    def api_reload():
        """POST /api/reload - Re-import the workspace, discarding local state."""
        try:
            _state["runner"].run(_state["session"].reload())
        except StoreIOError as e:
            logger.error("Reload failed: %s", e)
            return jsonify({"success": False, "error": str(e)}), 500
        return jsonify({"success": True, "snapshot": _snapshot()})

    @app.route("/api/layout", methods=["POST"])
    def api_layout():
        """POST /api/layout - Switch layout policy ("layered" or "masonry")."""
        data = request.get_json(silent=True) or {}
        try:
            policy = LayoutPolicy(data.get("policy", ""))
        except ValueError:
            return jsonify({"success": False, "error": "policy must be layered or masonry"}), 400
        _state["runner"].call(_state["session"].set_policy, policy)
        return jsonify({"success": True, "snapshot": _snapshot()})

    @app.route("/api/gesture/<name>", methods=["POST"])
    def api_gesture(name: str):
        """POST /api/gesture/<name> - Forward one gesture to the controller."""
        if name not in GESTURES:
            return jsonify({"success": False, "error": f"Unknown gesture: {name}"}), 404
        data = request.get_json(silent=True) or {}
        try:
            kwargs = _gesture_kwargs(name, data)
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400

        method = getattr(_state["session"].controller, name)
        outcome = _state["runner"].call(method, **kwargs)
        result = outcome.to_dict()
        result["snapshot"] = _snapshot()
        status_code = 200 if outcome.ok else 400
        return jsonify(result), status_code

    return app
