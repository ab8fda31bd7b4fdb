'''Plain-text rendering of a goal's task tree.

One line per task, children indented two spaces per depth level:

    [<glyph>] <name><finance extras>  | <schedule>  (<id>)

- `<glyph>` is "✓" (U+2713) for done tasks, otherwise the task's point value.
  TITLE rows render as a `## <title>` heading line instead.
- `<name>` is the title (or "Sin nombre" when empty); physical/knowledge tasks append
  ` · <label>` when a label is set.
- Financial tasks (`INGRESO`/`GASTO`) append the amount in Spanish notation
  (`1.234,50 €`) and the names of the linked bank account and forecast line when they
  are known.
- `<schedule>` is `metatree.schedule.schedule_display`, followed by the reminder text
  when one is configured.

The renderer is read-only: it never mutates the nodes or looks anything up in a store.
'''

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable

from .schedule import SEPARATOR, reminder_display, schedule_display
from .task import BankAccount, ForecastLine, TaskRecord, is_done, is_financial, is_physical_or_knowledge
from .tree import TaskNode

DONE_GLYPH = "\u2713"  # ✓
EMPTY_TITLE = "Sin nombre"


def format_amount(amount: float) -> str:
    text = f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{text} €"


def display_name(task: TaskRecord) -> str:
    title = task.title or ""
    if is_physical_or_knowledge(task.scope) and task.label:
        return f"{title}{SEPARATOR}{task.label}".strip() or EMPTY_TITLE
    return title or EMPTY_TITLE


def render_task_line(
    task: TaskRecord,
    *,
    today: dt.date,
    accounts: dict[str, str] | None = None,
    forecasts: dict[str, str] | None = None,
) -> str:
    if task.is_title:
        return f"## {task.title or EMPTY_TITLE}  ({task.id})"

    glyph = DONE_GLYPH if is_done(task) else str(task.points)
    parts = [f"[{glyph}] {display_name(task)}"]

    if is_financial(task.type):
        amount = task.extra.get("amountEUR")
        if isinstance(amount, (int, float)) and not isinstance(amount, bool) and amount:
            parts.append(f"{SEPARATOR}{format_amount(amount)}")
        bank = (accounts or {}).get(task.account_id or "")
        if bank:
            parts.append(f"{SEPARATOR}{bank}")
        forecast = (forecasts or {}).get(task.forecast_id or "")
        if forecast:
            parts.append(f"{SEPARATOR}{forecast}")

    fields = task.to_dict()
    when = schedule_display(fields, today=today)
    reminder = reminder_display(fields)
    if reminder:
        when = f"{when}{SEPARATOR}{reminder}"
    return f"{''.join(parts)}  | {when}  ({task.id})"


def render_tree(
    nodes: Iterable[TaskNode],
    *,
    today: dt.date,
    title: str | None = None,
    accounts: Iterable[BankAccount] = (),
    forecast_lines: Iterable[ForecastLine] = (),
) -> str:
    account_names = {a.id: a.name for a in accounts}
    forecast_names = {f.id: f.name for f in forecast_lines}

    lines: list[str] = []
    if title:
        lines.append(f"# {title}\n")

    def emit(node: TaskNode, depth: int) -> None:
        line = render_task_line(node.task, today=today, accounts=account_names, forecasts=forecast_names)
        lines.append("  " * depth + line)
        for child in node.children:
            emit(child, depth + 1)

    count = 0
    for node in nodes:
        emit(node, 0)
        count += 1
    if count == 0:
        lines.append("(no tasks)")
    return "\n".join(lines).rstrip() + "\n"
