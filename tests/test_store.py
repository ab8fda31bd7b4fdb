from __future__ import annotations

import asyncio
import datetime as dt
import json
from pathlib import Path

import pytest

from metatree.store import JsonTaskStore, StoreResult, normalize_for_store
from metatree.task import TaskKind, TaskRecord, TaskScope, TaskType, build_new_task

TODAY = dt.date(2024, 3, 5)
CREATED = "2024-03-01T00:00:00.000Z"
NOW = "2024-03-05T12:00:00.000Z"


def _task(**kwargs) -> TaskRecord:
    kwargs.setdefault("today", TODAY)
    kwargs.setdefault("task_id", "t1")
    kwargs.setdefault("now", CREATED)
    return build_new_task("g", **kwargs)


def test_normalize_for_store_drops_empty_fields_but_keeps_title_and_zero() -> None:
    out = normalize_for_store(_task(order=0), now=NOW)

    assert out == {
        "id": "t1",
        "kind": "NORMAL",
        "type": "ACTIVIDAD",
        "title": "",
        "metaId": "g",
        "order": 0,
        "points": 2,
        "scope": "LABORAL",
        "date": "2024-03-05",
        "createdAt": CREATED,
        "updatedAt": NOW,
        "extra": {"frequency": "PUNTUAL"},
    }


def test_normalize_for_store_degrades_weekly_without_days_to_unscheduled() -> None:
    record = _task(unscheduled=True, extra_overrides={"frequency": "SEMANAL", "weeklyDays": []})

    out = normalize_for_store(record, now=NOW)

    assert out["extra"] == {"frequency": "PUNTUAL", "unscheduled": True}
    assert "repeatRule" not in out
    assert "date" not in out


def test_normalize_for_store_rebuilds_weekly_descriptor_and_drops_date() -> None:
    record = _task(extra_overrides={"frequency": "SEMANAL", "weeklyDays": ["X", "L"], "weeklyTime": "09:00"})
    record.time = "10:00"

    out = normalize_for_store(record, now=NOW)

    assert out["repeatRule"] == "WEEKLY|days=L,X|time=09:00"
    assert "date" not in out
    assert "time" not in out
    assert out["extra"] == {"frequency": "SEMANAL", "weeklyDays": ["X", "L"], "weeklyTime": "09:00"}


def test_normalize_for_store_keeps_time_only_when_valid() -> None:
    record = _task()
    record.time = "25:00"
    assert "time" not in normalize_for_store(record, now=NOW)

    record.time = "07:15"
    assert normalize_for_store(record, now=NOW)["time"] == "07:15"


def test_normalize_for_store_financial_and_physical_fields() -> None:
    expense = _task(task_type=TaskType.GASTO, account_id="acc", forecast_id="fc", amount=40)
    expense.extra["amountEUR"] = -5
    activity = _task(account_id="acc", amount=40, label="ignored")
    physical = _task(scope=TaskScope.FISICO, label="5 km", extra_overrides={"unit": "km", "quantity": 5})

    expense_out = normalize_for_store(expense, now=NOW)
    activity_out = normalize_for_store(activity, now=NOW)
    physical_out = normalize_for_store(physical, now=NOW)

    assert expense_out["accountId"] == "acc"
    assert expense_out["forecastId"] == "fc"
    assert expense_out["extra"]["amountEUR"] == 0
    assert "accountId" not in activity_out
    assert "amountEUR" not in activity_out["extra"]
    assert "label" not in activity_out
    assert physical_out["label"] == "5 km"
    assert physical_out["extra"]["unit"] == "km"
    assert physical_out["extra"]["quantity"] == 5


def test_normalize_for_store_title_rows_carry_no_schedule() -> None:
    title = _task(is_title=True, title="Fase 1")
    title.date = "2024-03-05"

    out = normalize_for_store(title, now=NOW)

    assert out["kind"] == TaskKind.TITLE.value
    assert out["points"] == 0
    assert "date" not in out
    assert "scope" not in out
    assert out["extra"] == {"frequency": "PUNTUAL"}


def test_normalize_for_store_preserves_unknown_fields() -> None:
    record = _task()
    record.unknown = {"ownerId": "u1", "blank": ""}

    out = normalize_for_store(record, now=NOW)

    assert out["ownerId"] == "u1"
    assert "blank" not in out


def test_json_store_missing_file_is_empty(tmp_path: Path) -> None:
    store = JsonTaskStore(tmp_path / "missing.json")

    assert store.list_tasks() == []


def test_json_store_rejects_invalid_documents(tmp_path: Path) -> None:
    not_object = tmp_path / "not-object.json"
    not_object.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a JSON object"):
        JsonTaskStore(not_object).list_tasks()

    bad_tasks = tmp_path / "bad-tasks.json"
    bad_tasks.write_text(json.dumps({"tasks": {}}), encoding="utf-8")
    with pytest.raises(ValueError, match="must be a list"):
        JsonTaskStore(bad_tasks).list_tasks()


def test_json_store_create_writes_normalized_document(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "tasks.json"
    store = JsonTaskStore(path, clock=lambda: NOW)

    result = asyncio.run(store.create_task(_task(title="Leer")))

    assert result == StoreResult.ok()
    text = path.read_text(encoding="utf-8")
    assert text.endswith("}\n")
    assert text.startswith('{\n  "tasks": [\n')
    assert json.loads(text)["tasks"][0]["title"] == "Leer"
    assert store.get("t1").title == "Leer"


def test_json_store_create_rejects_duplicate_ids(tmp_path: Path) -> None:
    store = JsonTaskStore(tmp_path / "tasks.json", clock=lambda: NOW)

    async def run() -> StoreResult:
        await store.create_task(_task())
        return await store.create_task(_task())

    result = asyncio.run(run())

    assert result.success is False
    assert result.error == "task already exists: t1"
    assert len(store.list_tasks()) == 1


def test_json_store_update_merges_fields_and_replaces_extra(tmp_path: Path) -> None:
    store = JsonTaskStore(tmp_path / "tasks.json", clock=lambda: NOW)

    async def run() -> StoreResult:
        await store.create_task(_task(extra_overrides={"notes": "a"}))
        return await store.update_task("t1", {"title": "Nuevo", "extra": {"frequency": "PUNTUAL", "completedDates": ["2024-03-05"]}})

    result = asyncio.run(run())

    assert result.success is True
    record = store.get("t1")
    assert record.title == "Nuevo"
    assert record.extra == {"frequency": "PUNTUAL", "completedDates": ["2024-03-05"]}
    assert record.created_at == CREATED
    assert record.updated_at == NOW


def test_json_store_update_sanitizes_on_type_change(tmp_path: Path) -> None:
    store = JsonTaskStore(tmp_path / "tasks.json", clock=lambda: NOW)

    async def run() -> StoreResult:
        await store.create_task(_task(task_type=TaskType.GASTO, account_id="acc", amount=50))
        return await store.update_task("t1", {"type": "ACTIVIDAD"})

    asyncio.run(run())

    record = store.get("t1")
    assert record.type == TaskType.ACTIVIDAD
    assert record.account_id is None
    assert "amountEUR" not in record.extra


def test_json_store_update_unknown_task_fails(tmp_path: Path) -> None:
    store = JsonTaskStore(tmp_path / "tasks.json")

    result = asyncio.run(store.update_task("nope", {"title": "x"}))

    assert result == StoreResult.failed("task not found: nope")


def test_json_store_get_unknown_task_raises(tmp_path: Path) -> None:
    with pytest.raises(KeyError, match="Task not found: nope"):
        JsonTaskStore(tmp_path / "tasks.json").get("nope")


def test_json_store_list_tasks_recalculates_levels(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(
        json.dumps(
            {
                "tasks": [
                    {"id": "p", "metaId": "g", "level": 3},
                    {"id": "c", "metaId": "g", "parentId": "p", "level": 0},
                    "not-a-task",
                ]
            }
        ),
        encoding="utf-8",
    )

    levels = {r.id: r.level for r in JsonTaskStore(path).list_tasks()}

    assert levels == {"p": 0, "c": 1}
