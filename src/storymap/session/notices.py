"""Transient, non-blocking user notices."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any

from storymap.graph.errors import ErrorCode

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Notice:
    message: str
    level: str = ERROR
    code: ErrorCode | None = None
    target_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "level": self.level,
            "code": self.code.value if self.code else None,
            "target_id": self.target_id,
        }


class NoticeBoard:
    """Bounded queue of notices; the view drains it on each snapshot."""

    def __init__(self, maxlen: int = 50) -> None:
        self._notices: deque[Notice] = deque(maxlen=maxlen)

    def post(self, notice: Notice) -> Notice:
        self._notices.append(notice)
        return notice

    def error(
        self, message: str, code: ErrorCode | None = None, target_id: str | None = None
    ) -> Notice:
        return self.post(Notice(message, ERROR, code, target_id))

    def warning(
        self, message: str, code: ErrorCode | None = None, target_id: str | None = None
    ) -> Notice:
        return self.post(Notice(message, WARNING, code, target_id))

    def drain(self) -> list[Notice]:
        notices = list(self._notices)
        self._notices.clear()
        return notices

    def __len__(self) -> int:
        return len(self._notices)
