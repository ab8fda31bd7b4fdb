"""Schedule codec: derive, switch and render a task's scheduling category.

A task is in exactly one of four schedule categories:

- `PUNCTUAL`: a one-off `date` (YYYY-MM-DD) with an optional `time` (HH:MM).
- `WEEKLY`: recurs on a set of weekdays (`extra.weeklyDays`) at an optional
  `extra.weeklyTime`.
- `MONTHLY`: recurs on a day of the month (`extra.monthlyDay`, 1..31) at an optional
  `extra.monthlyTime`.
- `UNSCHEDULED`: explicitly has no date.

All functions here operate on a wire-keyed field mapping (`date`, `time`, `repeatRule`,
`extra`), which is either `TaskRecord.to_dict()` or an editor buffer. Write-path helpers
never mutate their input; they return a patch of the fields to overlay.

Recurrence descriptor
`repeatRule` is the canonical recurrence source of truth, rewritten on every change of a
weekday, weekly time, monthly day or monthly time:

    WEEKLY|days=L,X,V|time=09:00
    MONTHLY|day=15|time=

The `extra` sub-fields are a projection of it kept for editing. Weekday codes are the
Monday-first alphabet `L M X J V S D`; stored weekday lists holding codes or 0-6 indices
are normalized to it and unrecognised entries are dropped.

"Today" is always passed in by the caller.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from .task import Frequency

WEEKDAY_CODES: tuple[str, ...] = ("L", "M", "X", "J", "V", "S", "D")
MONTH_ABBREVIATIONS: tuple[str, ...] = (
    "Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic",
)

UNSCHEDULED_LABEL = "Sin programar"
WEEKLY_LABEL = "Semanal"
SEPARATOR = " · "

_TIME_RE = re.compile(r"^\d{2}:\d{2}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_RECURRENCE_SUBFIELDS = ("weeklyDays", "weeklyTime", "monthlyDay", "monthlyTime")


class ScheduleCategory(str, Enum):
    PUNCTUAL = "puntual"
    WEEKLY = "semanal"
    MONTHLY = "mensual"
    UNSCHEDULED = "sin_programar"


@dataclass(frozen=True)
class Recurrence:
    frequency: Frequency
    weekdays: tuple[str, ...] = ()
    day: int | None = None
    time: str | None = None


def is_valid_time(value: Any) -> bool:
    if not isinstance(value, str) or not _TIME_RE.match(value):
        return False
    hours, minutes = (int(p) for p in value.split(":"))
    return 0 <= hours <= 23 and 0 <= minutes <= 59


def is_valid_date(value: Any) -> bool:
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        dt.date.fromisoformat(value)
    except ValueError:
        return False
    return True


def normalize_weekdays(raw: Any) -> list[str]:
    """Normalize stored weekday selections (codes or 0-6 indices) to sorted codes."""
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return []
    found: set[str] = set()
    for entry in raw:
        if isinstance(entry, str) and entry in WEEKDAY_CODES:
            found.add(entry)
        elif isinstance(entry, int) and not isinstance(entry, bool) and 0 <= entry < len(WEEKDAY_CODES):
            found.add(WEEKDAY_CODES[entry])
    return [c for c in WEEKDAY_CODES if c in found]


def encode_weekly(days: Iterable[str], time: str | None = None) -> str:
    return f"WEEKLY|days={','.join(normalize_weekdays(list(days)))}|time={time or ''}"


def encode_monthly(day: int, time: str | None = None) -> str:
    return f"MONTHLY|day={int(day)}|time={time or ''}"


def parse_repeat_rule(rule: str) -> Recurrence:
    """Decode a recurrence descriptor. Raises ValueError when malformed."""
    head, *parts = rule.split("|")
    params: dict[str, str] = {}
    for part in parts:
        key, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"Malformed repeat rule segment {part!r} in {rule!r}")
        params[key] = value
    time = params.get("time") or None

    if head == "WEEKLY":
        days = [d for d in params.get("days", "").split(",") if d]
        return Recurrence(frequency=Frequency.SEMANAL, weekdays=tuple(normalize_weekdays(days)), time=time)
    if head == "MONTHLY":
        try:
            day = int(params["day"])
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Monthly repeat rule without a valid day: {rule!r}") from exc
        return Recurrence(frequency=Frequency.MENSUAL, day=day, time=time)
    raise ValueError(f"Unknown repeat rule kind {head!r} in {rule!r}")


def _extra(fields: Mapping[str, Any]) -> dict[str, Any]:
    return dict(fields.get("extra") or {})


def derive_category(fields: Mapping[str, Any]) -> ScheduleCategory:
    extra = _extra(fields)
    flag = extra.get("unscheduled")
    if flag is True:
        return ScheduleCategory.UNSCHEDULED
    frequency = extra.get("frequency")
    if frequency == Frequency.SEMANAL.value:
        return ScheduleCategory.WEEKLY
    if frequency == Frequency.MENSUAL.value:
        return ScheduleCategory.MONTHLY
    if flag is False:
        return ScheduleCategory.PUNCTUAL
    if not fields.get("date") and not fields.get("repeatRule"):
        return ScheduleCategory.UNSCHEDULED
    return ScheduleCategory.PUNCTUAL


def effective_frequency(fields: Mapping[str, Any]) -> Frequency:
    """Frequency to persist; weekly without days or monthly without a 1..31 day degrade to punctual."""
    extra = _extra(fields)
    frequency = extra.get("frequency")
    if frequency == Frequency.SEMANAL.value:
        return Frequency.SEMANAL if normalize_weekdays(extra.get("weeklyDays")) else Frequency.PUNTUAL
    if frequency == Frequency.MENSUAL.value:
        return Frequency.MENSUAL if _valid_month_day(extra.get("monthlyDay")) else Frequency.PUNTUAL
    return Frequency.PUNTUAL


def build_repeat_rule(fields: Mapping[str, Any]) -> str | None:
    extra = _extra(fields)
    frequency = effective_frequency(fields)
    if frequency == Frequency.SEMANAL:
        time = extra.get("weeklyTime")
        return encode_weekly(extra.get("weeklyDays") or [], time if is_valid_time(time) else None)
    if frequency == Frequency.MENSUAL:
        time = extra.get("monthlyTime")
        return encode_monthly(extra["monthlyDay"], time if is_valid_time(time) else None)
    return None


def _valid_month_day(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 31


def select_category(
    fields: Mapping[str, Any], category: ScheduleCategory, *, today: dt.date
) -> dict[str, Any]:
    """Patch switching `fields` to `category`, resetting every scheduling field."""
    extra = _extra(fields)
    weekdays = normalize_weekdays(extra.get("weeklyDays"))
    month_day = extra.get("monthlyDay") if _valid_month_day(extra.get("monthlyDay")) else 1
    for key in _RECURRENCE_SUBFIELDS:
        extra.pop(key, None)

    if category == ScheduleCategory.UNSCHEDULED:
        extra.update(frequency=Frequency.PUNTUAL.value, unscheduled=True)
        return {"date": None, "time": None, "repeatRule": None, "extra": extra}

    if category == ScheduleCategory.PUNCTUAL:
        extra.update(frequency=Frequency.PUNTUAL.value, unscheduled=False)
        return {"date": fields.get("date") or today.isoformat(), "repeatRule": None, "extra": extra}

    if category == ScheduleCategory.WEEKLY:
        extra.update(frequency=Frequency.SEMANAL.value, unscheduled=False, weeklyDays=weekdays)
        weekly_time = _extra(fields).get("weeklyTime")
        if weekly_time:
            extra["weeklyTime"] = weekly_time
        rule = encode_weekly(weekdays, weekly_time) if weekdays else None
        return {"date": None, "time": None, "repeatRule": rule, "extra": extra}

    if category == ScheduleCategory.MONTHLY:
        extra.update(frequency=Frequency.MENSUAL.value, unscheduled=False, monthlyDay=month_day)
        monthly_time = _extra(fields).get("monthlyTime")
        if monthly_time:
            extra["monthlyTime"] = monthly_time
        return {"date": None, "time": None, "repeatRule": encode_monthly(month_day, monthly_time), "extra": extra}

    raise ValueError(f"Unknown schedule category: {category}")


def set_weekdays(fields: Mapping[str, Any], days: Iterable[Any]) -> dict[str, Any]:
    extra = _extra(fields)
    extra["weeklyDays"] = normalize_weekdays(list(days))
    rule = encode_weekly(extra["weeklyDays"], extra.get("weeklyTime")) if extra["weeklyDays"] else None
    return {"repeatRule": rule, "extra": extra}


def toggle_weekday(fields: Mapping[str, Any], code: str) -> dict[str, Any]:
    current = normalize_weekdays(_extra(fields).get("weeklyDays"))
    if code in current:
        current.remove(code)
    else:
        current.append(code)
    return set_weekdays(fields, current)


def set_weekly_time(fields: Mapping[str, Any], time: str | None) -> dict[str, Any]:
    extra = _extra(fields)
    if time:
        extra["weeklyTime"] = time
    else:
        extra.pop("weeklyTime", None)
    days = normalize_weekdays(extra.get("weeklyDays"))
    return {"repeatRule": encode_weekly(days, time) if days else None, "extra": extra}


def set_monthly_day(fields: Mapping[str, Any], day: int | None) -> dict[str, Any]:
    extra = _extra(fields)
    extra["monthlyDay"] = day if _valid_month_day(day) else 1
    return {"repeatRule": encode_monthly(extra["monthlyDay"], extra.get("monthlyTime")), "extra": extra}


def set_monthly_time(fields: Mapping[str, Any], time: str | None) -> dict[str, Any]:
    extra = _extra(fields)
    if time:
        extra["monthlyTime"] = time
    else:
        extra.pop("monthlyTime", None)
    day = extra.get("monthlyDay") if _valid_month_day(extra.get("monthlyDay")) else 1
    return {"repeatRule": encode_monthly(day, time), "extra": extra}


def format_date_short(iso_date: str | None) -> str:
    if not is_valid_date(iso_date):
        return ""
    d = dt.date.fromisoformat(iso_date)  # type: ignore[arg-type]
    return f"{d.day} {MONTH_ABBREVIATIONS[d.month - 1]}"


def format_time(time: str | None) -> str:
    return time[:5] if time else ""


def schedule_display(fields: Mapping[str, Any], *, today: dt.date) -> str:
    category = derive_category(fields)
    extra = _extra(fields)

    if category == ScheduleCategory.UNSCHEDULED:
        return UNSCHEDULED_LABEL
    if category == ScheduleCategory.WEEKLY:
        days = normalize_weekdays(extra.get("weeklyDays"))
        if not days:
            return WEEKLY_LABEL
        time = extra.get("weeklyTime")
        return f"{' '.join(days)}{SEPARATOR}{format_time(time)}" if time else " ".join(days)
    if category == ScheduleCategory.MONTHLY:
        day = extra.get("monthlyDay") or 1
        time = extra.get("monthlyTime")
        return f"Día {day}{SEPARATOR}{format_time(time)}" if time else f"Día {day}"

    date_str = format_date_short(fields.get("date"))
    time = fields.get("time")
    if time:
        return f"{date_str}{SEPARATOR}{format_time(time)}"
    return date_str or today.isoformat()


def reminder_display(fields: Mapping[str, Any]) -> str | None:
    """`Aviso a las HH:MM` (time minus the configured offset, modulo 24h) or None."""
    time = fields.get("time")
    extra = _extra(fields)
    if not time or extra.get("reminderEnabled") is not True:
        return None
    unit = extra.get("reminderOffsetUnit")
    value = extra.get("reminderOffsetValue")
    if unit not in ("min", "hor"):
        return None
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        return None

    parts = str(time).split(":")
    if len(parts) < 2:
        return None
    try:
        total = int(parts[0]) * 60 + int(parts[1])
    except ValueError:
        return None

    total -= int(value) if unit == "min" else int(value) * 60
    total %= 1440
    return f"Aviso a las {total // 60:02d}:{total % 60:02d}"
