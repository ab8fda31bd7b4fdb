from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_UNDO_LIMIT = 10


@dataclass(frozen=True)
class UndoEntry:
    task_id: str
    snapshot: dict[str, Any]


class UndoStack:
    """Last-in-first-out log of pre-edit snapshots, capped at `limit` entries.

    Pushing past the cap discards the oldest entry. `pop()` consumes the newest entry;
    there is no redo.
    """

    def __init__(self, limit: int = DEFAULT_UNDO_LIMIT) -> None:
        if limit < 1:
            raise ValueError(f"undo limit must be positive, got {limit}")
        self.limit = limit
        self._entries: deque[UndoEntry] = deque(maxlen=limit)

    def push(self, task_id: str, snapshot: Mapping[str, Any]) -> None:
        self._entries.append(UndoEntry(task_id=task_id, snapshot=copy.deepcopy(dict(snapshot))))

    def pop(self) -> UndoEntry | None:
        if not self._entries:
            return None
        return self._entries.pop()

    def peek(self) -> UndoEntry | None:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
