"""metatree.store

This module defines the persistence contract metatree's editor programs against and a
JSON-file implementation of it used by the CLI.

Protocol
- `TaskStore.create_task(record) -> StoreResult`
  Persist a brand-new record. Identity, goal, parent, level and order are computed by the
  caller before this is invoked.
- `TaskStore.update_task(task_id, fields) -> StoreResult`
  Persist only the given wire-keyed fields (camelCase, as in `TaskRecord.to_dict()`).
- Both are coroutines: they are the only suspension points in metatree. Failures are
  reported as `StoreResult(success=False, error=...)` rather than raised; the editor never
  retries and never rolls back its buffer.

Any object with these two coroutine methods works (a remote database client, a test fake).

JSON store
`JsonTaskStore` keeps every task in one UTF-8 JSON document:

    {"tasks": [ {<normalized task>}, ... ]}

- Written with `indent=2`, `ensure_ascii=True` and a trailing newline.
- A missing file is an empty collection; a document that is not an object with a
  `tasks` list raises ValueError.
- Every write goes through `normalize_for_store`, so the file only holds sparse,
  category-consistent records.
- `update_task` merges the given fields over the stored record. A supplied `extra` replaces
  the stored one whole (callers send the full buffered `extra`), and a change of `type`/`scope` runs `sanitize_by_type` on the result.
- `list_tasks()` returns hydrated `TaskRecord`s with levels recalculated from the parent
  chain (levels are derived, not trusted).

Normalization rules (`normalize_for_store`)
- null, empty strings, empty lists and empty dicts are dropped; `title` is always kept.
- `kind`, `type`, `points` and `extra.frequency` are always present.
- Weekly without weekdays and monthly without a 1..31 day degrade to punctual.
- `date` (and `time` when a valid HH:MM) are kept only for punctual tasks with a valid
  YYYY-MM-DD date; a punctual task without a date is marked `extra.unscheduled = true`.
- `repeatRule` is rebuilt from the `extra` sub-fields.
- Financial fields survive only for `INGRESO`/`GASTO`; `label`, `unit` and `quantity`
  only for `FISICO`/`CRECIMIENTO`. TITLE rows carry no scheduling fields.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .schedule import build_repeat_rule, effective_frequency, is_valid_date, is_valid_time
from .task import (
    DEFAULT_POINTS,
    Frequency,
    TaskRecord,
    is_financial,
    is_physical_or_knowledge,
    sanitize_by_type,
    utc_now_iso,
)
from .tree import recalculate_levels


@dataclass(frozen=True)
class StoreResult:
    success: bool
    error: str | None = None

    @staticmethod
    def ok() -> "StoreResult":
        return StoreResult(success=True)

    @staticmethod
    def failed(error: str) -> "StoreResult":
        return StoreResult(success=False, error=error)


class TaskStore(Protocol):
    async def create_task(self, record: TaskRecord) -> StoreResult: ...

    async def update_task(self, task_id: str, fields: Mapping[str, Any]) -> StoreResult: ...


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def normalize_for_store(task: TaskRecord, *, now: str) -> dict[str, Any]:
    fields = task.to_dict()
    extra = dict(task.extra)
    frequency = effective_frequency(fields)
    has_date = is_valid_date(task.date)
    punctual = frequency == Frequency.PUNTUAL

    out_extra: dict[str, Any] = {"frequency": frequency.value}
    if punctual and not has_date and not task.is_title:
        out_extra["unscheduled"] = True

    if frequency == Frequency.SEMANAL:
        out_extra["weeklyDays"] = extra.get("weeklyDays")
        if is_valid_time(extra.get("weeklyTime")):
            out_extra["weeklyTime"] = extra["weeklyTime"]
    elif frequency == Frequency.MENSUAL:
        out_extra["monthlyDay"] = extra.get("monthlyDay")
        if is_valid_time(extra.get("monthlyTime")):
            out_extra["monthlyTime"] = extra["monthlyTime"]

    financial = is_financial(task.type)
    phys_know = is_physical_or_knowledge(task.scope)

    if financial and "amountEUR" in extra:
        amount = extra["amountEUR"]
        valid = isinstance(amount, (int, float)) and not isinstance(amount, bool) and amount > 0
        out_extra["amountEUR"] = amount if valid else 0
    if phys_know:
        if extra.get("unit"):
            out_extra["unit"] = extra["unit"]
        if isinstance(extra.get("quantity"), (int, float)):
            out_extra["quantity"] = extra["quantity"]

    if extra.get("reminderEnabled") is True:
        out_extra["reminderEnabled"] = True
        out_extra["reminderOffsetUnit"] = extra.get("reminderOffsetUnit")
        if isinstance(extra.get("reminderOffsetValue"), (int, float)):
            out_extra["reminderOffsetValue"] = extra["reminderOffsetValue"]

    notes = extra.get("notes")
    if isinstance(notes, str) and notes.strip():
        out_extra["notes"] = notes.strip()
    out_extra["completedDates"] = extra.get("completedDates")
    out_extra["movementIdsByDate"] = extra.get("movementIdsByDate")

    d: dict[str, Any] = {
        "id": task.id,
        "kind": task.kind.value,
        "type": task.type.value,
        "title": task.title,
        "metaId": task.meta_id,
        "parentId": task.parent_id,
        "order": task.order,
        "points": task.points if task.points is not None else DEFAULT_POINTS,
    }
    if not task.is_title:
        d["scope"] = task.scope.value if task.scope else None
        if phys_know:
            d["label"] = task.label
    if task.description and task.description.strip():
        d["description"] = task.description.strip()

    if not task.is_title:
        if has_date and punctual:
            d["date"] = task.date
            if is_valid_time(task.time):
                d["time"] = task.time
        d["repeatRule"] = build_repeat_rule({"extra": out_extra})

    if financial:
        d["accountId"] = task.account_id
        d["forecastId"] = task.forecast_id
        d["movementId"] = task.movement_id
    if task.is_completed:
        d["isCompleted"] = True

    d["createdAt"] = task.created_at or now
    d["updatedAt"] = now

    cleaned = {k: v for k, v in d.items() if k == "title" or not _is_empty(v)}
    cleaned["extra"] = {k: v for k, v in out_extra.items() if k == "frequency" or not _is_empty(v)}
    for k, v in task.unknown.items():
        if k not in cleaned and not _is_empty(v):
            cleaned[k] = v
    return cleaned


class JsonTaskStore:
    def __init__(self, path: Path, *, clock: Callable[[], str] = utc_now_iso) -> None:
        self.path = path
        self.clock = clock

    def _load_raw(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"tasks file must be a JSON object, got {type(raw)}")
        tasks = raw.get("tasks", [])
        if not isinstance(tasks, list):
            raise ValueError("tasks file field 'tasks' must be a list")
        return [t for t in tasks if isinstance(t, dict)]

    def _save_raw(self, tasks: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"tasks": tasks}, indent=2, ensure_ascii=True) + "\n", encoding="utf-8")

    def list_tasks(self) -> list[TaskRecord]:
        return recalculate_levels(TaskRecord.from_dict(t) for t in self._load_raw())

    def get(self, task_id: str) -> TaskRecord:
        for record in self.list_tasks():
            if record.id == task_id:
                return record
        raise KeyError(f"Task not found: {task_id}")

    async def create_task(self, record: TaskRecord) -> StoreResult:
        tasks = self._load_raw()
        if any(t.get("id") == record.id for t in tasks):
            return StoreResult.failed(f"task already exists: {record.id}")
        tasks.append(normalize_for_store(record, now=self.clock()))
        self._save_raw(tasks)
        return StoreResult.ok()

    async def update_task(self, task_id: str, fields: Mapping[str, Any]) -> StoreResult:
        tasks = self._load_raw()
        idx = next((i for i, t in enumerate(tasks) if t.get("id") == task_id), None)
        if idx is None:
            return StoreResult.failed(f"task not found: {task_id}")

        existing = TaskRecord.from_dict(tasks[idx]).to_dict()
        merged = {**existing, **fields}
        if "extra" in fields:
            merged["extra"] = dict(fields.get("extra") or {})
        merged = sanitize_by_type(merged, existing)
        merged["id"] = task_id

        tasks[idx] = normalize_for_store(TaskRecord.from_dict(merged), now=self.clock())
        self._save_raw(tasks)
        return StoreResult.ok()
