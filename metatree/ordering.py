"""Sibling-order allocation for inserting and moving tasks.

Every task stores a numeric `order`; siblings (same goal, same parent) are displayed by
ascending `order`, ties broken by the `createdAt` string. Allocation computes one new value
for the inserted/moved task and never rewrites any other sibling.

Policy
- Empty sibling set: `SEED_ORDER` (1000).
- Append (no reference, or a reference not among the siblings): `max + ORDER_STEP`.
- Before the first sibling: `min - ORDER_STEP`.
- After the last sibling: `max + ORDER_STEP`.
- Otherwise: floor of the midpoint between the reference and its neighbour on that side.

Precision caveat
Midpoints are floored to integers. Repeated insertions into the same gap halve it each
time; once two neighbours are one apart the floor of their midpoint equals the lower one
and the new value collides with an existing sibling. Siblings are not renumbered when that
happens; ties then fall back to `createdAt` ordering.

Callers pass the sibling set *excluding* the task being moved.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from enum import Enum

from .task import TaskRecord

SEED_ORDER = 1000
ORDER_STEP = 1000


class Position(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    CHILD = "child"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


def sibling_sort_key(task: TaskRecord) -> tuple[float, str]:
    return (task.order, task.created_at or "")


def sort_siblings(siblings: Iterable[TaskRecord]) -> list[TaskRecord]:
    return sorted(siblings, key=sibling_sort_key)


def insert_order(
    siblings: Iterable[TaskRecord],
    position: Position = Position.AFTER,
    reference_id: str | None = None,
) -> float:
    """Order value placing a task `position` relative to `reference_id` among `siblings`.

    `Position.CHILD` is treated as append: a new child always goes after the last
    existing child of its parent.
    """
    ordered = sort_siblings(siblings)
    if not ordered:
        return SEED_ORDER

    last = ordered[-1].order
    if reference_id is None or position == Position.CHILD:
        return last + ORDER_STEP

    idx = next((i for i, t in enumerate(ordered) if t.id == reference_id), None)
    if idx is None:
        return last + ORDER_STEP

    if position == Position.BEFORE:
        if idx == 0:
            return ordered[0].order - ORDER_STEP
        return math.floor((ordered[idx - 1].order + ordered[idx].order) / 2)

    if idx == len(ordered) - 1:
        return ordered[idx].order + ORDER_STEP
    return math.floor((ordered[idx].order + ordered[idx + 1].order) / 2)


def move_target(
    siblings: Sequence[TaskRecord], current_order: float, direction: Direction
) -> tuple[Position, TaskRecord] | None:
    """Where a task at `current_order` lands when moved one step `direction`.

    Up places it before the nearest sibling with a lower order, down after the nearest
    sibling with a higher order. Returns None when there is nothing to pass.
    """
    ordered = sort_siblings(siblings)
    if direction == Direction.UP:
        lower = [s for s in ordered if s.order < current_order]
        return (Position.BEFORE, lower[-1]) if lower else None
    higher = [s for s in ordered if s.order > current_order]
    return (Position.AFTER, higher[0]) if higher else None
