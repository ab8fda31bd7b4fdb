"""Tree building over a flat task collection.

The persistence collaborator hands metatree a flat, loosely ordered list of task records
for every goal. `build_tree` turns the records of one goal into an ordered forest of
`TaskNode`s:

- A record is a root when it has no `parent_id`, or when its `parent_id` is not the id of
  another record of the same goal (orphans surface as roots, they are never dropped).
- Every sibling group is sorted by (`order`, `created_at` string).
- Parent links are resolved once through a parent-id keyed grouping; there is no upward
  traversal. Records caught in a parent cycle are unreachable from any root, so each
  cycle is surfaced once as an extra root (its lowest-ordered member) and the back edge
  is cut with a visited set.

The input is never mutated; nodes reference the original records.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .ordering import sibling_sort_key, sort_siblings
from .task import TaskRecord

MAX_DEPTH = 6


@dataclass
class TaskNode:
    task: TaskRecord
    children: list["TaskNode"] = field(default_factory=list)


def build_tree(records: Iterable[TaskRecord], meta_id: str) -> list[TaskNode]:
    goal_records = [r for r in records if r.meta_id == meta_id]
    ids = {r.id for r in goal_records}

    roots: list[TaskRecord] = []
    children_by_parent: dict[str, list[TaskRecord]] = {}
    for record in goal_records:
        if record.parent_id and record.parent_id in ids:
            children_by_parent.setdefault(record.parent_id, []).append(record)
        else:
            roots.append(record)

    seen: set[str] = set()

    def build_node(record: TaskRecord) -> TaskNode:
        seen.add(record.id)
        node = TaskNode(task=record)
        for child in sort_siblings(children_by_parent.get(record.id, [])):
            if child.id not in seen:
                node.children.append(build_node(child))
        return node

    forest = [build_node(r) for r in sort_siblings(roots)]

    for record in sorted(goal_records, key=sibling_sort_key):
        if record.id not in seen:
            forest.append(build_node(record))
    return forest


def walk(nodes: Iterable[TaskNode]) -> Iterator[TaskNode]:
    """Pre-order depth-first traversal (a parent is yielded before its descendants)."""
    stack = list(nodes)
    while stack:
        node = stack.pop(0)
        yield node
        stack[0:0] = list(node.children)


def flatten_hierarchy(records: Iterable[TaskRecord]) -> list[TaskRecord]:
    """Records parent-first across all goals; unreachable records are appended at the end."""
    records = list(records)
    children_by_parent: dict[str, list[TaskRecord]] = {}
    roots: list[TaskRecord] = []
    for record in records:
        if record.parent_id:
            children_by_parent.setdefault(record.parent_id, []).append(record)
        else:
            roots.append(record)

    out: list[TaskRecord] = []
    added: set[str] = set()
    stack = sort_siblings(roots)
    while stack:
        record = stack.pop(0)
        if record.id in added:
            continue
        added.add(record.id)
        out.append(record)
        stack[0:0] = sort_siblings(children_by_parent.get(record.id, []))

    out.extend(r for r in records if r.id not in added)
    return out


def recalculate_levels(records: Iterable[TaskRecord]) -> list[TaskRecord]:
    """Copies of `records` with `level` derived from the parent chain (missing parent or cycle stops the count)."""
    records = list(records)
    by_id = {r.id: r for r in records}
    memo: dict[str, int] = {}

    def level_of(record: TaskRecord) -> int:
        if record.id in memo:
            return memo[record.id]
        depth = 0
        visited = {record.id}
        current = record
        while current.parent_id and current.parent_id in by_id and current.parent_id not in visited:
            current = by_id[current.parent_id]
            visited.add(current.id)
            depth += 1
        memo[record.id] = depth
        return depth

    return [dataclasses.replace(r, level=level_of(r)) for r in records]


def validate_parent_assignment(
    records: Iterable[TaskRecord], task_id: str, new_parent_id: str, meta_id: str | None = None
) -> str | None:
    """Return an error message when `new_parent_id` cannot parent `task_id`, else None."""
    by_id = {r.id: r for r in records}
    parent = by_id.get(new_parent_id)
    if parent is None:
        return "parent not found"
    if meta_id and parent.meta_id != meta_id:
        return "parent belongs to another goal"

    visited: set[str] = set()
    current: TaskRecord | None = parent
    while current is not None and current.id not in visited:
        if current.id == task_id:
            return "would create a cycle"
        visited.add(current.id)
        current = by_id.get(current.parent_id) if current.parent_id else None

    if parent.level >= MAX_DEPTH - 1:
        return f"maximum depth reached ({MAX_DEPTH})"
    return None


def siblings_of(
    records: Iterable[TaskRecord], *, meta_id: str, parent_id: str | None, exclude_id: str | None = None
) -> list[TaskRecord]:
    return [
        r
        for r in records
        if r.meta_id == meta_id and (r.parent_id or None) == (parent_id or None) and r.id != exclude_id
    ]
