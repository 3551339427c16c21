"""Session module - interactive editing of one workspace.

Exports:
- WorkspaceSession, Snapshot
- InteractionController, Outcome, GestureState
- PersistenceSynchronizer
- AsyncioScheduler, ManualScheduler, Debouncer
- ViewState, Notice, NoticeBoard
"""

from storymap.session.interaction import GestureState, InteractionController, Outcome
from storymap.session.notices import Notice, NoticeBoard
from storymap.session.scheduler import AsyncioScheduler, Debouncer, ManualScheduler
from storymap.session.sync import PersistenceSynchronizer
from storymap.session.view_state import ViewState
from storymap.session.workspace import Snapshot, WorkspaceSession

__all__ = [
    "WorkspaceSession",
    "Snapshot",
    "InteractionController",
    "Outcome",
    "GestureState",
    "PersistenceSynchronizer",
    "AsyncioScheduler",
    "ManualScheduler",
    "Debouncer",
    "ViewState",
    "Notice",
    "NoticeBoard",
]
