"""metatree.cli

Command-line entrypoint for metatree, a goal ("meta") task tree with scheduling and
lightweight finance fields, backed by a JSON task file.

Entry points
- `metatree.cli:main`
- `python3 -m metatree ...` (delegates to this module)

Subcommands
- `show --goal <id>`: print the goal's task tree (see `metatree.render`).
- `add --goal <id> [--before ID | --after ID | --child ID] [--title TEXT]`: create a task.
  Without a reference the task is appended as the last root task of the goal.
- `move <id> {up,down}`: swap a task past its nearest sibling in that direction.
- `edit <id> [--title] [--points] [--description] [--amount] [--account] [--forecast]`:
  change plain fields.
- `schedule <id> {puntual,semanal,mensual,sin_programar} [--date] [--time] [--days] [--day]`:
  switch the scheduling category, then apply the given sub-fields.
- `done <id>`: toggle completion.

`edit --undo` applies the edit and then immediately restores the pre-edit snapshot
through the undo stack (useful for checking the undo path from scripts).

Control root and path resolution
- The control root is `Path($METATREE_CONTROL_ROOT)` when set, else the current directory.
- `--tasks-json` (default `.metatree/tasks.json`) is resolved against the control root.

Every mutating command runs one editing session through `TaskEditor` inside
`asyncio.run`: open, change, close (which flushes the diff to the store). Progress lines go
to stderr prefixed with `[metatree]`; the created/changed task id goes to stdout.

Exit codes
- 0 on success, 1 when a task id is unknown or the store reports a failure, 2 for
  argument errors (argparse).
"""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import os
import sys
from pathlib import Path

from .editor import EditorConfig, TaskEditor
from .ordering import Direction, Position
from .render import render_tree
from .schedule import WEEKDAY_CODES, ScheduleCategory
from .store import JsonTaskStore, StoreResult


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="metatree", description="Goal task tree with scheduling and finance fields.")
    p.add_argument(
        "--tasks-json",
        default=".metatree/tasks.json",
        help="Path to the task JSON file (default: ./.metatree/tasks.json).",
    )
    p.add_argument(
        "--today",
        default=None,
        help="Override the current date (YYYY-MM-DD) used for default dates and display.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print a goal's task tree.")
    show.add_argument("--goal", required=True, help="Goal (meta) id.")

    add = sub.add_parser("add", help="Create a task.")
    add.add_argument("--goal", required=True, help="Goal (meta) id.")
    where = add.add_mutually_exclusive_group()
    where.add_argument("--before", default=None, help="Insert before this sibling task id.")
    where.add_argument("--after", default=None, help="Insert after this sibling task id.")
    where.add_argument("--child", default=None, help="Append as the last child of this task id.")
    add.add_argument("--title", default="", help="Title for the new task.")

    move = sub.add_parser("move", help="Move a task one step among its siblings.")
    move.add_argument("task_id")
    move.add_argument("direction", choices=[d.value for d in Direction])

    edit = sub.add_parser("edit", help="Edit plain task fields.")
    edit.add_argument("task_id")
    edit.add_argument("--title", default=None)
    edit.add_argument("--points", type=int, default=None)
    edit.add_argument("--description", default=None)
    edit.add_argument("--amount", type=float, default=None, help="Amount in EUR (financial tasks).")
    edit.add_argument("--account", default=None, help="Bank account id (financial tasks).")
    edit.add_argument("--forecast", default=None, help="Forecast line id (financial tasks).")
    edit.add_argument("--undo", action="store_true", help="Undo the edit right after applying it.")

    sched = sub.add_parser("schedule", help="Change a task's scheduling.")
    sched.add_argument("task_id")
    sched.add_argument("category", choices=[c.value for c in ScheduleCategory])
    sched.add_argument("--date", default=None, help="Date for punctual tasks (YYYY-MM-DD).")
    sched.add_argument("--time", default=None, help="Time (HH:MM).")
    sched.add_argument("--days", default=None, help=f"Comma-separated weekday codes ({','.join(WEEKDAY_CODES)}).")
    sched.add_argument("--day", type=int, default=None, help="Day of month for monthly tasks (1-31).")

    done = sub.add_parser("done", help="Toggle a task's completion flag.")
    done.add_argument("task_id")
    return p


def _resolve_today(raw: str | None) -> dt.date:
    return dt.date.fromisoformat(raw) if raw else dt.date.today()


def _fail(message: str) -> int:
    print(f"[metatree] {message}", file=sys.stderr)
    return 1


def _exit_code(result: StoreResult | None) -> int:
    if result is not None and not result.success:
        return 1
    return 0


async def _run_add(editor: TaskEditor, args: argparse.Namespace) -> int:
    ref_id = args.before or args.after or args.child
    if ref_id is None:
        created = await editor.create_root_task()
    else:
        reference = editor.find(ref_id)
        if reference is None:
            return _fail(f"task not found: {ref_id}")
        position = Position.BEFORE if args.before else Position.AFTER if args.after else Position.CHILD
        created = await editor.create_task(position, reference)
    if created is None:
        return 1
    if args.title:
        editor.update_field("title", args.title)
    result = await editor.close()
    print(created.id)
    return _exit_code(result)


async def _run_edit(editor: TaskEditor, args: argparse.Namespace) -> int:
    task = editor.find(args.task_id)
    if task is None:
        return _fail(f"task not found: {args.task_id}")
    editor.select_goal(task.meta_id)
    editor.open(task)
    for key, value in (
        ("title", args.title),
        ("points", args.points),
        ("description", args.description),
        ("accountId", args.account),
        ("forecastId", args.forecast),
    ):
        if value is not None:
            editor.update_field(key, value)
    if args.amount is not None:
        editor.update_extra("amountEUR", args.amount)
    result = await editor.close()
    if args.undo:
        result = await editor.undo()
    print(task.id)
    return _exit_code(result)


async def _run_schedule(editor: TaskEditor, args: argparse.Namespace) -> int:
    task = editor.find(args.task_id)
    if task is None:
        return _fail(f"task not found: {args.task_id}")
    category = ScheduleCategory(args.category)
    editor.select_goal(task.meta_id)
    editor.open(task)
    editor.set_schedule(category)
    if category == ScheduleCategory.PUNCTUAL:
        if args.date:
            editor.update_field("date", args.date)
        if args.time:
            editor.update_field("time", args.time)
    elif category == ScheduleCategory.WEEKLY:
        if args.days is not None:
            editor.set_weekdays(d.strip() for d in args.days.split(",") if d.strip())
        if args.time:
            editor.set_weekly_time(args.time)
    elif category == ScheduleCategory.MONTHLY:
        if args.day is not None:
            editor.set_monthly_day(args.day)
        if args.time:
            editor.set_monthly_time(args.time)
    result = await editor.close()
    print(task.id)
    return _exit_code(result)


async def _run_move(editor: TaskEditor, args: argparse.Namespace) -> int:
    task = editor.find(args.task_id)
    if task is None:
        return _fail(f"task not found: {args.task_id}")
    result = await editor.move_task(task, Direction(args.direction))
    print(task.id)
    return _exit_code(result)


async def _run_done(editor: TaskEditor, args: argparse.Namespace) -> int:
    task = editor.find(args.task_id)
    if task is None:
        return _fail(f"task not found: {args.task_id}")
    result = await editor.toggle_completed(task)
    print(task.id)
    return _exit_code(result)


_COMMANDS = {
    "add": _run_add,
    "edit": _run_edit,
    "schedule": _run_schedule,
    "move": _run_move,
    "done": _run_done,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(list(sys.argv[1:] if argv is None else argv))

    control_root_env = os.environ.get("METATREE_CONTROL_ROOT")
    control_root = (Path(control_root_env) if control_root_env else Path.cwd()).resolve()
    tasks_json = (control_root / args.tasks_json).resolve()
    today = _resolve_today(args.today)

    store = JsonTaskStore(tasks_json)
    editor = TaskEditor(EditorConfig(store=store, today=lambda: today), tasks=store.list_tasks())

    if args.command == "show":
        editor.select_goal(args.goal)
        sys.stdout.write(render_tree(editor.tree(), today=today, title=args.goal))
        return 0

    if args.command == "add":
        editor.select_goal(args.goal)

    async def run() -> int:
        rc = await _COMMANDS[args.command](editor, args)
        await editor.drain()
        return rc

    return asyncio.run(run())
