import datetime as dt
from typing import Any

import pytest

from metatree.schedule import (
    Recurrence,
    ScheduleCategory,
    derive_category,
    effective_frequency,
    encode_monthly,
    encode_weekly,
    is_valid_date,
    is_valid_time,
    normalize_weekdays,
    parse_repeat_rule,
    reminder_display,
    schedule_display,
    select_category,
    set_monthly_day,
    set_weekly_time,
    toggle_weekday,
)
from metatree.task import Frequency

TODAY = dt.date(2024, 3, 5)


def _apply(fields: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    return {**fields, **patch}


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"date": "2024-03-05"}, ScheduleCategory.PUNCTUAL),
        ({"date": None}, ScheduleCategory.UNSCHEDULED),
        ({"extra": {"unscheduled": False}}, ScheduleCategory.PUNCTUAL),
        ({"date": "2024-03-05", "extra": {"unscheduled": True}}, ScheduleCategory.UNSCHEDULED),
        ({"extra": {"frequency": "SEMANAL"}}, ScheduleCategory.WEEKLY),
        ({"extra": {"frequency": "MENSUAL", "monthlyDay": 3}}, ScheduleCategory.MONTHLY),
        ({"repeatRule": "WEEKLY|days=L|time="}, ScheduleCategory.PUNCTUAL),
    ],
)
def test_derive_category(fields: dict[str, Any], expected: ScheduleCategory) -> None:
    assert derive_category(fields) == expected


def test_weekly_descriptor_round_trips_in_canonical_day_order() -> None:
    rule = encode_weekly(["V", "L", "X"], "09:00")

    assert rule == "WEEKLY|days=L,X,V|time=09:00"
    assert parse_repeat_rule(rule) == Recurrence(
        frequency=Frequency.SEMANAL, weekdays=("L", "X", "V"), time="09:00"
    )


def test_monthly_descriptor_without_time() -> None:
    rule = encode_monthly(15)

    assert rule == "MONTHLY|day=15|time="
    parsed = parse_repeat_rule(rule)
    assert parsed.frequency == Frequency.MENSUAL
    assert parsed.day == 15
    assert parsed.time is None


@pytest.mark.parametrize("rule", ["DAILY|time=09:00", "WEEKLY|days", "MONTHLY|day=x|time=", "MONTHLY|time="])
def test_parse_repeat_rule_rejects_malformed_descriptors(rule: str) -> None:
    with pytest.raises(ValueError):
        parse_repeat_rule(rule)


def test_normalize_weekdays_accepts_codes_and_monday_first_indices() -> None:
    assert normalize_weekdays([6, "X", 0, "Q", 9, True, "X"]) == ["L", "X", "D"]
    assert normalize_weekdays("LX") == []
    assert normalize_weekdays(None) == []


@pytest.mark.parametrize(
    ("value", "expected"),
    [("00:00", True), ("23:59", True), ("24:00", False), ("9:00", False), ("09:60", False), (None, False)],
)
def test_is_valid_time(value: Any, expected: bool) -> None:
    assert is_valid_time(value) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("2024-02-29", True), ("2023-02-29", False), ("2024-3-5", False), ("", False)],
)
def test_is_valid_date(value: Any, expected: bool) -> None:
    assert is_valid_date(value) is expected


def test_effective_frequency_degrades_incomplete_recurrences_to_punctual() -> None:
    assert effective_frequency({"extra": {"frequency": "SEMANAL", "weeklyDays": []}}) == Frequency.PUNTUAL
    assert effective_frequency({"extra": {"frequency": "MENSUAL", "monthlyDay": 40}}) == Frequency.PUNTUAL
    assert effective_frequency({"extra": {"frequency": "MENSUAL", "monthlyDay": 31}}) == Frequency.MENSUAL


def test_select_unscheduled_clears_date_time_and_rule() -> None:
    fields = {"date": "2024-03-05", "time": "10:00", "repeatRule": None, "extra": {"frequency": "PUNTUAL"}}

    patch = select_category(fields, ScheduleCategory.UNSCHEDULED, today=TODAY)

    assert patch == {
        "date": None,
        "time": None,
        "repeatRule": None,
        "extra": {"frequency": "PUNTUAL", "unscheduled": True},
    }
    assert derive_category(_apply(fields, patch)) == ScheduleCategory.UNSCHEDULED


def test_select_punctual_from_unscheduled_defaults_to_today() -> None:
    fields = {"date": None, "extra": {"frequency": "PUNTUAL", "unscheduled": True}}

    patch = select_category(fields, ScheduleCategory.PUNCTUAL, today=TODAY)

    assert patch["date"] == "2024-03-05"
    assert patch["extra"]["unscheduled"] is False
    assert derive_category(_apply(fields, patch)) == ScheduleCategory.PUNCTUAL


def test_select_weekly_keeps_days_and_drops_monthly_fields() -> None:
    fields = {
        "date": "2024-03-05",
        "extra": {"frequency": "MENSUAL", "monthlyDay": 15, "weeklyDays": ["J"], "weeklyTime": "08:00"},
    }

    patch = select_category(fields, ScheduleCategory.WEEKLY, today=TODAY)

    assert patch["date"] is None
    assert patch["repeatRule"] == "WEEKLY|days=J|time=08:00"
    assert "monthlyDay" not in patch["extra"]
    assert patch["extra"]["weeklyDays"] == ["J"]


def test_select_weekly_without_days_has_no_rule() -> None:
    patch = select_category({"extra": {}}, ScheduleCategory.WEEKLY, today=TODAY)

    assert patch["repeatRule"] is None
    assert patch["extra"]["weeklyDays"] == []


def test_select_monthly_defaults_to_first_day() -> None:
    patch = select_category({"date": "2024-03-05", "extra": {}}, ScheduleCategory.MONTHLY, today=TODAY)

    assert patch["repeatRule"] == "MONTHLY|day=1|time="
    assert patch["extra"]["monthlyDay"] == 1


@pytest.mark.parametrize("category", list(ScheduleCategory))
def test_select_category_is_idempotent(category: ScheduleCategory) -> None:
    fields = {
        "date": "2024-03-05",
        "time": "10:00",
        "extra": {"frequency": "SEMANAL", "weeklyDays": ["L"], "weeklyTime": "07:00", "notes": "n"},
    }

    once = _apply(fields, select_category(fields, category, today=TODAY))
    twice = _apply(once, select_category(once, category, today=TODAY))

    assert twice == once
    assert derive_category(once) == category
    assert once["extra"]["notes"] == "n"


def test_toggle_weekday_rewrites_descriptor() -> None:
    fields = {"extra": {"frequency": "SEMANAL", "weeklyDays": ["L", "X"], "weeklyTime": "09:00"}}

    removed = _apply(fields, toggle_weekday(fields, "X"))
    added = _apply(removed, toggle_weekday(removed, "V"))
    emptied = _apply(fields, toggle_weekday(_apply(fields, toggle_weekday(fields, "L")), "X"))

    assert removed["repeatRule"] == "WEEKLY|days=L|time=09:00"
    assert added["repeatRule"] == "WEEKLY|days=L,V|time=09:00"
    assert emptied["repeatRule"] is None


def test_set_weekly_time_and_monthly_day_patches() -> None:
    weekly = {"extra": {"weeklyDays": ["S"]}}
    monthly = {"extra": {"monthlyTime": "20:00"}}

    assert set_weekly_time(weekly, "18:30")["repeatRule"] == "WEEKLY|days=S|time=18:30"
    assert "weeklyTime" not in set_weekly_time({"extra": {"weeklyTime": "x"}}, None)["extra"]
    assert set_monthly_day(monthly, 20)["repeatRule"] == "MONTHLY|day=20|time=20:00"
    assert set_monthly_day(monthly, 0)["extra"]["monthlyDay"] == 1


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"date": None}, "Sin programar"),
        ({"extra": {"frequency": "SEMANAL", "weeklyDays": ["L", "X"], "weeklyTime": "09:00"}}, "L X · 09:00"),
        ({"extra": {"frequency": "SEMANAL", "weeklyDays": []}}, "Semanal"),
        ({"extra": {"frequency": "MENSUAL", "monthlyDay": 15}}, "Día 15"),
        ({"extra": {"frequency": "MENSUAL", "monthlyDay": 1, "monthlyTime": "08:00"}}, "Día 1 · 08:00"),
        ({"date": "2024-12-25"}, "25 Dic"),
        ({"date": "2024-03-05", "time": "10:30:00"}, "5 Mar · 10:30"),
        ({"extra": {"unscheduled": False}}, "2024-03-05"),
    ],
)
def test_schedule_display(fields: dict[str, Any], expected: str) -> None:
    assert schedule_display(fields, today=TODAY) == expected


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"time": "09:00", "extra": {"reminderEnabled": True, "reminderOffsetUnit": "hor", "reminderOffsetValue": 2}},
         "Aviso a las 07:00"),
        ({"time": "00:10", "extra": {"reminderEnabled": True, "reminderOffsetUnit": "min", "reminderOffsetValue": 20}},
         "Aviso a las 23:50"),
        ({"time": "09:00", "extra": {"reminderEnabled": False, "reminderOffsetUnit": "min", "reminderOffsetValue": 5}},
         None),
        ({"time": None, "extra": {"reminderEnabled": True, "reminderOffsetUnit": "min", "reminderOffsetValue": 5}},
         None),
        ({"time": "09:00", "extra": {"reminderEnabled": True, "reminderOffsetUnit": "dia", "reminderOffsetValue": 1}},
         None),
    ],
)
def test_reminder_display(fields: dict[str, Any], expected: str | None) -> None:
    assert reminder_display(fields) == expected
