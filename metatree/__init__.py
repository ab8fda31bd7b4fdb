"""metatree: a goal ("meta") task tree with scheduling and lightweight finance fields.

This package implements the editing core of a hierarchical task planner, plus a small CLI
(`metatree.cli:main`, runnable via `python -m metatree`) that drives it over a JSON task
file. Every task belongs to one goal, may have a parent task inside that goal, and carries
scheduling (one-off, weekly, monthly or unscheduled), a point value, and optional finance
links for income/expense tasks.

What metatree provides
- A task record model (`metatree.task`) with forgiving parsing, full round-trip of unknown
  fields, and type/scope sanitizing.
- A schedule codec (`metatree.schedule`) that derives, switches and renders a task's
  scheduling category and encodes recurrence descriptors (`WEEKLY|days=L,X|time=09:00`).
- Tree building (`metatree.tree`) from a flat record list, sibling order allocation
  (`metatree.ordering`), and a bounded undo log (`metatree.undo`).
- A debounced, diff-based task editor (`metatree.editor.TaskEditor`) that writes through
  an async `TaskStore` protocol (`metatree.store`), with a JSON-file store for the CLI.
- Plain-text tree rendering (`metatree.render`).

What metatree intentionally does not do
- Own authoritative task state: the editor always works from a snapshot handed in by the
  caller and only ever sends changes out through the store.
- Renumber siblings when integer midpoints run out (see `metatree.ordering`).
- Provide drag-and-drop, authentication or remote synchronisation.

Key exports from this module
- `__version__`: the package version string. (`__all__` is intentionally limited to this.)

Important invariants and conventions
- Stored records use camelCase wire keys; `TaskRecord.to_dict()` is the canonical shape.
- The descriptor in `repeatRule` is the recurrence source of truth; `extra` holds an
  editable projection of it.
- Levels are derived from the parent chain and never trusted from storage.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
