"""storymap.server - Flask REST API server for the story map.

Exposes the workspace session's snapshot and gesture callbacks over
HTTP for a browser front end.
"""

from storymap.server.app import create_app
from storymap.server.runner import EventLoopThread

__all__ = ["create_app", "EventLoopThread"]
