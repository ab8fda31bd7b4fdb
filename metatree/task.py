"""metatree.task

This module defines the task record model shared by every other part of metatree: the
enumerations that classify a task, the `TaskRecord` dataclass, and the helpers that build
new records or clean them up when their classification changes.

Stored shape (one document per task)
The persistence collaborator stores each task as a flat JSON object with camelCase keys:

- identity/tree: `id`, `metaId`, `parentId`, `level`, `order`
- classification: `kind` ("NORMAL" | "TITLE"), `type` ("ACTIVIDAD" | "INGRESO" | "GASTO"),
  `scope` ("LABORAL" | "FISICO" | "CRECIMIENTO")
- content: `title`, `label`, `description`, `points`, `isCompleted`
- scheduling: `date` (YYYY-MM-DD), `time` (HH:MM), `repeatRule` (see `metatree.schedule`)
- finance links: `accountId`, `forecastId`, `movementId`
- timestamps: `createdAt`, `updatedAt` (ISO-8601 strings; compared as strings)
- `extra`: open extension map (recurrence sub-fields, amount, notes, ...)
- any other key is preserved in `TaskRecord.unknown` and round-tripped

Parsing rules (dict -> dataclass)
- Type coercion is forgiving: enum values outside the known set fall back to the default
  member, `order` keeps ints as ints and coerces other numerics to float, `points`
  defaults to 2 (0 for TITLE rows).
- `level` is kept as read; `metatree.tree.recalculate_levels` recomputes it from the
  parent chain.

Serialization rules (dataclass -> dict)
- `TaskRecord.to_dict()` always emits every known key (absent values as None) so two
  snapshots can be compared key by key. `unknown` is merged last.

Category-specific fields
- Financial tasks (`INGRESO`/`GASTO`) may carry `accountId`, `forecastId` and
  `extra.amountEUR`.
- Physical/knowledge tasks (scope `FISICO`/`CRECIMIENTO`) may carry `label` and
  `extra.unit`/`quantity`/`physicalDetails`/`knowledgeDetails`.
- `sanitize_by_type` strips the fields that stop applying when type or scope changes.
"""

from __future__ import annotations

import copy
import datetime as dt
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class TaskType(str, Enum):
    ACTIVIDAD = "ACTIVIDAD"
    INGRESO = "INGRESO"
    GASTO = "GASTO"


class TaskScope(str, Enum):
    LABORAL = "LABORAL"
    FISICO = "FISICO"
    CRECIMIENTO = "CRECIMIENTO"


class TaskKind(str, Enum):
    NORMAL = "NORMAL"
    TITLE = "TITLE"


class Frequency(str, Enum):
    PUNTUAL = "PUNTUAL"
    SEMANAL = "SEMANAL"
    MENSUAL = "MENSUAL"


DEFAULT_POINTS = 2

EXTRA_FIELDS_COMMON = frozenset(
    {
        "completedDates",
        "movementIdsByDate",
        "frequency",
        "weeklyDays",
        "weeklyTime",
        "monthlyDay",
        "monthlyTime",
        "unscheduled",
        "notes",
        "reminderEnabled",
        "reminderOffsetUnit",
        "reminderOffsetValue",
    }
)
EXTRA_FIELDS_FINANCIAL = frozenset({"amountEUR"})
EXTRA_FIELDS_PHYSICAL_KNOWLEDGE = frozenset({"unit", "quantity", "physicalDetails", "knowledgeDetails"})

# wire key -> attribute name
_FIELD_KEYS: dict[str, str] = {
    "id": "id",
    "metaId": "meta_id",
    "parentId": "parent_id",
    "level": "level",
    "order": "order",
    "kind": "kind",
    "type": "type",
    "scope": "scope",
    "title": "title",
    "label": "label",
    "description": "description",
    "date": "date",
    "time": "time",
    "repeatRule": "repeat_rule",
    "points": "points",
    "isCompleted": "is_completed",
    "accountId": "account_id",
    "forecastId": "forecast_id",
    "movementId": "movement_id",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "extra": "extra",
}


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_task_id() -> str:
    return str(uuid.uuid4())


def is_financial(task_type: TaskType | str | None) -> bool:
    return task_type in (TaskType.INGRESO, TaskType.GASTO)


def is_physical_or_knowledge(scope: TaskScope | str | None) -> bool:
    return scope in (TaskScope.FISICO, TaskScope.CRECIMIENTO)


def _enum_or(enum_cls: type[Enum], raw: Any, default: Any) -> Any:
    if raw is None:
        return default
    try:
        return enum_cls(str(raw))
    except ValueError:
        return default


def _opt_str(raw: Any) -> str | None:
    return str(raw) if raw is not None else None


def _number(raw: Any, default: float = 0) -> float:
    if isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


@dataclass
class TaskRecord:
    id: str
    meta_id: str | None = None
    parent_id: str | None = None
    level: int = 0
    order: float = 0
    kind: TaskKind = TaskKind.NORMAL
    type: TaskType = TaskType.ACTIVIDAD
    scope: TaskScope | None = TaskScope.LABORAL
    title: str = ""
    label: str | None = None
    description: str | None = None
    date: str | None = None
    time: str | None = None
    repeat_rule: str | None = None
    points: int = DEFAULT_POINTS
    is_completed: bool = False
    account_id: str | None = None
    forecast_id: str | None = None
    movement_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    unknown: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_title(self) -> bool:
        return self.kind == TaskKind.TITLE

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "TaskRecord":
        known: dict[str, Any] = {}
        unknown: dict[str, Any] = {}
        for k, v in d.items():
            if k in _FIELD_KEYS:
                known[k] = v
            else:
                unknown[k] = v

        if known.get("id") is None:
            raise ValueError("task is missing required field: id")

        kind = _enum_or(TaskKind, known.get("kind"), TaskKind.NORMAL)
        is_title = kind == TaskKind.TITLE
        scope = None if is_title else _enum_or(TaskScope, known.get("scope"), TaskScope.LABORAL)
        points_raw = known.get("points")
        if isinstance(points_raw, (int, float)) and not isinstance(points_raw, bool):
            points = int(points_raw)
        else:
            points = 0 if is_title else DEFAULT_POINTS
        level_raw = known.get("level")

        return TaskRecord(
            id=str(known["id"]),
            meta_id=_opt_str(known.get("metaId")),
            parent_id=_opt_str(known.get("parentId")) or None,
            level=int(level_raw) if isinstance(level_raw, (int, float)) and not isinstance(level_raw, bool) else 0,
            order=_number(known.get("order")),
            kind=kind,
            type=_enum_or(TaskType, known.get("type"), TaskType.ACTIVIDAD),
            scope=scope,
            title=str(known.get("title") or ""),
            label=_opt_str(known.get("label")),
            description=_opt_str(known.get("description")),
            date=_opt_str(known.get("date")),
            time=_opt_str(known.get("time")),
            repeat_rule=_opt_str(known.get("repeatRule")),
            points=points,
            is_completed=known.get("isCompleted") is True,
            account_id=_opt_str(known.get("accountId")),
            forecast_id=_opt_str(known.get("forecastId")),
            movement_id=_opt_str(known.get("movementId")),
            created_at=_opt_str(known.get("createdAt")),
            updated_at=_opt_str(known.get("updatedAt")),
            extra=copy.deepcopy(dict(known.get("extra") or {})),
            unknown=copy.deepcopy(unknown),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for key, attr in _FIELD_KEYS.items():
            value = getattr(self, attr)
            if isinstance(value, Enum):
                value = value.value
            d[key] = copy.deepcopy(value)
        d.update(copy.deepcopy(self.unknown))
        return d

    def with_fields(self, fields: Mapping[str, Any]) -> "TaskRecord":
        """Return a copy with wire-keyed `fields` overlaid (no merge of `extra`)."""
        return TaskRecord.from_dict({**self.to_dict(), **fields})


def is_done(task: TaskRecord) -> bool:
    if task.is_title:
        return False
    if task.is_completed:
        return True
    return bool(task.extra.get("completedDates"))


def sanitize_by_type(merged: Mapping[str, Any], prev: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Drop fields that no longer apply after a type/scope change.

    `merged` and `prev` are wire-keyed dicts. When neither `type` nor `scope` differ from
    `prev`, `merged` is returned unchanged (as a new dict).
    """
    prev = prev or {}
    out = dict(merged)
    next_type = out.get("type", prev.get("type"))
    next_scope = out.get("scope", prev.get("scope"))
    if next_type == prev.get("type") and next_scope == prev.get("scope"):
        return out

    financial = is_financial(_enum_or(TaskType, next_type, None))
    phys_know = is_physical_or_knowledge(_enum_or(TaskScope, next_scope, None))

    allowed = set(EXTRA_FIELDS_COMMON)
    if financial:
        allowed |= EXTRA_FIELDS_FINANCIAL
    if phys_know:
        allowed |= EXTRA_FIELDS_PHYSICAL_KNOWLEDGE

    source_extra = out.get("extra")
    if source_extra is None:
        source_extra = prev.get("extra")
    out["extra"] = {k: v for k, v in (source_extra or {}).items() if k in allowed}

    if not financial:
        out["accountId"] = None
        out["forecastId"] = None
    if not phys_know:
        out["label"] = None
    return out


def build_new_task(
    meta_id: str,
    *,
    today: dt.date,
    task_id: str | None = None,
    parent_id: str | None = None,
    level: int = 0,
    order: float = 999,
    task_type: TaskType = TaskType.ACTIVIDAD,
    scope: TaskScope | None = TaskScope.LABORAL,
    title: str = "",
    label: str | None = None,
    description: str | None = None,
    date: str | None = None,
    points: int = DEFAULT_POINTS,
    is_title: bool = False,
    unscheduled: bool = False,
    account_id: str | None = None,
    forecast_id: str | None = None,
    amount: float | None = None,
    extra_overrides: Mapping[str, Any] | None = None,
    now: str | None = None,
) -> TaskRecord:
    """Build a complete new record with every default the rest of the system expects."""
    now = now or utc_now_iso()
    if is_title:
        return TaskRecord(
            id=task_id or new_task_id(),
            meta_id=meta_id,
            parent_id=parent_id,
            level=level,
            order=order,
            kind=TaskKind.TITLE,
            scope=None,
            title=title,
            points=0,
            created_at=now,
            updated_at=now,
            extra={"frequency": Frequency.PUNTUAL.value},
        )

    extra: dict[str, Any] = {"frequency": Frequency.PUNTUAL.value}
    if unscheduled:
        extra["unscheduled"] = True
    if amount is not None and amount > 0:
        extra["amountEUR"] = amount
    for key, value in (extra_overrides or {}).items():
        if value is None or value == "" or value == []:
            continue
        extra[key] = copy.deepcopy(value)
    extra.setdefault("frequency", Frequency.PUNTUAL.value)

    return TaskRecord(
        id=task_id or new_task_id(),
        meta_id=meta_id,
        parent_id=parent_id,
        level=level,
        order=order,
        type=task_type,
        scope=scope if scope is not None else TaskScope.LABORAL,
        title=title,
        label=label,
        description=description,
        date=None if unscheduled else (date or today.isoformat()),
        points=points,
        account_id=account_id,
        forecast_id=forecast_id,
        created_at=now,
        updated_at=now,
        extra=extra,
    )


_TEMPLATE_EXTRA_KEYS = (
    "completedDates",
    "notes",
    "unit",
    "quantity",
    "weeklyDays",
    "weeklyTime",
    "monthlyDay",
    "monthlyTime",
    "frequency",
)


def task_from_template(template: TaskRecord, *, today: dt.date, now: str | None = None) -> TaskRecord:
    """New sibling-style record inheriting `template`'s classification but not its title."""
    overrides = {k: template.extra[k] for k in _TEMPLATE_EXTRA_KEYS if k in template.extra}
    amount = template.extra.get("amountEUR")
    punctual = template.extra.get("frequency", Frequency.PUNTUAL.value) == Frequency.PUNTUAL.value
    return build_new_task(
        template.meta_id or "",
        today=today,
        parent_id=template.parent_id,
        level=template.level,
        order=template.order + 1,
        task_type=template.type,
        scope=template.scope,
        label=template.label,
        description=template.description,
        date=template.date,
        points=template.points,
        is_title=template.is_title,
        unscheduled=template.extra.get("unscheduled") is True or (punctual and not template.date),
        account_id=template.account_id,
        forecast_id=template.forecast_id,
        amount=amount if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None,
        extra_overrides=overrides,
        now=now,
    )


@dataclass(frozen=True)
class BankAccount:
    id: str
    name: str


@dataclass(frozen=True)
class ForecastLine:
    id: str
    name: str
    type: TaskType = TaskType.INGRESO
