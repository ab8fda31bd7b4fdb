"""Task editor: debounced, diff-based editing of one task at a time over a goal's tree.

`TaskEditor` is the stateful half of metatree. It never owns authoritative task state:
it reads an immutable snapshot of the flat task collection (`refresh`) and sends every
change out through a `TaskStore` (`metatree.store`). A refreshed snapshot is expected to
come back in from the caller.

Editing session states
- idle: no task open (`editing_id is None`).
- editing: one task has an edit buffer, a wire-keyed dict seeded with the task's full
  field set and overlaid by every `update_*` call.
- saving: at least one store call for the open task is in flight (counted per task id in
  `saving`). The buffer stays editable.

Transitions
- `open(task)`: snapshot the task into the buffer and push the same snapshot onto the
  undo stack. Opening a task (the same one included) while one is open first commits the
  old buffer (fire-and-forget).
- `update_field` / `update_extra` / schedule helpers: merge into the buffer and restart
  the debounce timer (`EditorConfig.debounce_s`). Only the last timer of a burst fires.
- Timer fires, `flush()` or `close()`: diff the buffer against the original record (deep
  equality per key) and call `store.update_task(id, patch)` with only the changed keys.
  An empty patch makes no store call.
- `close()`: cancel the pending timer, flush, return to idle.

Saves triggered by the timer are not serialized against each other: two overlapping saves
may complete out of order (last write wins). A failed save is logged, kept on
`last_error`, and leaves the buffer untouched so the user can retry. A store that raises
inside a timer-spawned save is logged from the task's done callback.

Tree commands
`create_task`, `create_root_task`, `move_task`, `toggle_completed` and `undo` act on the
active goal (`select_goal`). Without an active goal they do nothing and return None.

The debounce timer is an `asyncio` timer handle, so the editor must be driven from inside
a running event loop.
"""

from __future__ import annotations

import asyncio
import copy
import datetime as dt
import sys
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from . import schedule
from .ordering import Direction, Position, insert_order, move_target
from .schedule import ScheduleCategory
from .store import StoreResult, TaskStore
from .task import TaskRecord, build_new_task, new_task_id, task_from_template
from .tree import TaskNode, build_tree, siblings_of, validate_parent_assignment
from .undo import DEFAULT_UNDO_LIMIT, UndoStack


@dataclass(frozen=True)
class EditorConfig:
    store: TaskStore
    debounce_s: float = 0.5
    undo_limit: int = DEFAULT_UNDO_LIMIT
    today: Callable[[], dt.date] = field(default=dt.date.today)


class EditorState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


def compute_patch(buffer: dict[str, Any], original: dict[str, Any]) -> dict[str, Any]:
    """Keys of `buffer` whose value differs from `original` (deep equality)."""
    return {k: copy.deepcopy(v) for k, v in buffer.items() if v != original.get(k)}


class TaskEditor:
    def __init__(self, cfg: EditorConfig, *, tasks: Iterable[TaskRecord] = ()) -> None:
        self.cfg = cfg
        self.meta_id: str | None = None
        self.editing_id: str | None = None
        self.buffer: dict[str, Any] = {}
        self.saving: Counter[str] = Counter()
        self.last_error: str | None = None
        self.undo_stack = UndoStack(cfg.undo_limit)
        self._tasks: tuple[TaskRecord, ...] = tuple(tasks)
        self._opened: dict[str, Any] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: set[asyncio.Task[StoreResult]] = set()

    # -------------------- snapshot / selection --------------------

    def refresh(self, tasks: Iterable[TaskRecord]) -> None:
        self._tasks = tuple(tasks)

    @property
    def tasks(self) -> tuple[TaskRecord, ...]:
        return self._tasks

    def select_goal(self, meta_id: str | None) -> None:
        self.meta_id = meta_id

    def tree(self) -> list[TaskNode]:
        if not self.meta_id:
            return []
        return build_tree(self._tasks, self.meta_id)

    def find(self, task_id: str) -> TaskRecord | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    @property
    def state(self) -> EditorState:
        if self.editing_id is None:
            return EditorState.IDLE
        if self.saving[self.editing_id]:
            return EditorState.SAVING
        return EditorState.EDITING

    @property
    def has_pending_save(self) -> bool:
        return self._timer is not None

    # -------------------- editing session --------------------

    def open(self, task: TaskRecord) -> None:
        if self.editing_id is not None:
            self._cancel_timer()
            self._spawn_save()

        snapshot = task.to_dict()
        self.editing_id = task.id
        self.buffer = copy.deepcopy(snapshot)
        self._opened = snapshot
        self.undo_stack.push(task.id, snapshot)

    def update_field(self, key: str, value: Any) -> None:
        if self.editing_id is None:
            return
        self.buffer[key] = value
        self._schedule_save()

    def update_extra(self, key: str, value: Any) -> None:
        if self.editing_id is None:
            return
        extra = dict(self.buffer.get("extra") or {})
        if value is None:
            extra.pop(key, None)
        else:
            extra[key] = value
        self.buffer["extra"] = extra
        self._schedule_save()

    def _apply(self, patch: dict[str, Any]) -> None:
        self.buffer.update(patch)
        self._schedule_save()

    def set_schedule(self, category: ScheduleCategory) -> None:
        if self.editing_id is None:
            return
        self._apply(schedule.select_category(self.buffer, category, today=self.cfg.today()))

    def set_weekdays(self, days: Iterable[Any]) -> None:
        if self.editing_id is None:
            return
        self._apply(schedule.set_weekdays(self.buffer, days))

    def toggle_weekday(self, code: str) -> None:
        if self.editing_id is None:
            return
        self._apply(schedule.toggle_weekday(self.buffer, code))

    def set_weekly_time(self, time: str | None) -> None:
        if self.editing_id is None:
            return
        self._apply(schedule.set_weekly_time(self.buffer, time))

    def set_monthly_day(self, day: int | None) -> None:
        if self.editing_id is None:
            return
        self._apply(schedule.set_monthly_day(self.buffer, day))

    def set_monthly_time(self, time: str | None) -> None:
        if self.editing_id is None:
            return
        self._apply(schedule.set_monthly_time(self.buffer, time))

    def schedule_category(self) -> ScheduleCategory | None:
        if self.editing_id is None:
            return None
        return schedule.derive_category(self.buffer)

    def original(self) -> dict[str, Any]:
        """Fields the buffer is diffed against: the snapshot record when present, else the record as opened."""
        if self.editing_id is None:
            return {}
        current = self.find(self.editing_id)
        return current.to_dict() if current is not None else self._opened

    def diff(self) -> dict[str, Any]:
        if self.editing_id is None:
            return {}
        return compute_patch(self.buffer, self.original())

    async def flush(self) -> StoreResult | None:
        self._cancel_timer()
        if self.editing_id is None:
            return None
        patch = self.diff()
        if not patch:
            return None
        return await self._save(self.editing_id, patch)

    async def close(self) -> StoreResult | None:
        result = await self.flush()
        self.editing_id = None
        self.buffer = {}
        self._opened = {}
        return result

    async def drain(self) -> None:
        """Wait for every in-flight save to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    def _schedule_save(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.cfg.debounce_s, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn_save()

    def _spawn_save(self) -> asyncio.Task[StoreResult] | None:
        if self.editing_id is None:
            return None
        patch = self.diff()
        if not patch:
            return None
        task = asyncio.ensure_future(self._save(self.editing_id, patch))
        self._inflight.add(task)
        task.add_done_callback(self._on_save_done)
        return task

    def _on_save_done(self, task: asyncio.Task[StoreResult]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self.last_error = str(exc)
        print(f"[metatree] save crashed: {exc!r}", file=sys.stderr)

    async def _save(self, task_id: str, patch: dict[str, Any]) -> StoreResult:
        self.saving[task_id] += 1
        print(f"[metatree] save {task_id} fields={','.join(sorted(patch))}", file=sys.stderr)
        try:
            result = await self.cfg.store.update_task(task_id, patch)
        finally:
            self.saving[task_id] -= 1
            if not self.saving[task_id]:
                del self.saving[task_id]
        self._record(result, action="save", task_id=task_id)
        return result

    def _record(self, result: StoreResult, *, action: str, task_id: str) -> None:
        if result.success:
            self.last_error = None
            return
        self.last_error = result.error or f"{action} failed"
        print(f"[metatree] {action} failed {task_id}: {self.last_error}", file=sys.stderr)

    # -------------------- tree commands --------------------

    async def create_task(self, position: Position, reference: TaskRecord) -> TaskRecord | None:
        """Create an empty task before/after `reference` or as its last child, then open it.

        A child under a reference that already sits at the deepest allowed level is rejected
        (logged and kept on `last_error`) without calling the store.
        """
        if not self.meta_id:
            return None

        task_id = new_task_id()
        if position == Position.CHILD:
            error = validate_parent_assignment(self._tasks, task_id, reference.id, self.meta_id)
            if error:
                self.last_error = error
                print(f"[metatree] create rejected under {reference.id}: {error}", file=sys.stderr)
                return None
            parent_id: str | None = reference.id
            level = reference.level + 1
            siblings = siblings_of(self._tasks, meta_id=self.meta_id, parent_id=reference.id)
            order = insert_order(siblings, Position.AFTER)
        else:
            parent_id = reference.parent_id
            level = reference.level
            siblings = siblings_of(self._tasks, meta_id=self.meta_id, parent_id=parent_id)
            order = insert_order(siblings, position, reference.id)

        template = task_from_template(reference, today=self.cfg.today())
        record = TaskRecord.from_dict(
            {
                **template.to_dict(),
                "id": task_id,
                "metaId": self.meta_id,
                "parentId": parent_id,
                "level": level,
                "order": order,
                "title": "",
                "isCompleted": False,
            }
        )
        return await self._create_and_open(record)

    async def create_root_task(self, title: str = "") -> TaskRecord | None:
        if not self.meta_id:
            return None
        roots = siblings_of(self._tasks, meta_id=self.meta_id, parent_id=None)
        record = build_new_task(
            self.meta_id,
            today=self.cfg.today(),
            level=0,
            order=insert_order(roots, Position.AFTER),
            title=title,
        )
        return await self._create_and_open(record)

    async def _create_and_open(self, record: TaskRecord) -> TaskRecord | None:
        print(f"[metatree] create {record.id} order={record.order} parent={record.parent_id}", file=sys.stderr)
        result = await self.cfg.store.create_task(record)
        self._record(result, action="create", task_id=record.id)
        if not result.success:
            return None
        self.open(record)
        return record

    async def move_task(self, task: TaskRecord, direction: Direction) -> StoreResult | None:
        meta_id = task.meta_id or self.meta_id
        if not meta_id:
            return None
        siblings = siblings_of(self._tasks, meta_id=meta_id, parent_id=task.parent_id, exclude_id=task.id)
        target = move_target(siblings, task.order, direction)
        if target is None:
            return None
        position, reference = target
        new_order = insert_order(siblings, position, reference.id)
        print(f"[metatree] move {task.id} {direction.value} order={task.order}->{new_order}", file=sys.stderr)
        result = await self.cfg.store.update_task(task.id, {"order": new_order})
        self._record(result, action="move", task_id=task.id)
        return result

    async def toggle_completed(self, task: TaskRecord) -> StoreResult:
        result = await self.cfg.store.update_task(task.id, {"isCompleted": not task.is_completed})
        self._record(result, action="toggle", task_id=task.id)
        return result

    async def undo(self) -> StoreResult | None:
        entry = self.undo_stack.pop()
        if entry is None:
            return None
        if self.editing_id == entry.task_id:
            self._cancel_timer()
            self.buffer = copy.deepcopy(entry.snapshot)
        print(f"[metatree] undo {entry.task_id} ({len(self.undo_stack)} left)", file=sys.stderr)
        result = await self.cfg.store.update_task(entry.task_id, copy.deepcopy(entry.snapshot))
        self._record(result, action="undo", task_id=entry.task_id)
        return result
