# src/flowtask/tasks/ordering.py

"""
Positional ordering of subtasks.

All functions are pure: they never mutate their inputs and never raise on
malformed input (unknown or duplicated ids degrade gracefully).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from .task_models import Subtask


def sort_by_order(items: Iterable[Subtask]) -> list[Subtask]:
    return sorted(items, key=lambda s: s.order)


def next_order(items: Sequence[Subtask]) -> int:
    """Order for a newly appended item: max(order) + 1, or 0 when empty."""
    if not items:
        return 0
    return max(s.order for s in items) + 1


def normalize_orders(items: Sequence[Subtask]) -> list[Subtask]:
    """Replace negative order values by list position, then sort."""
    fixed = [s if s.order >= 0 else replace(s, order=i) for i, s in enumerate(items)]
    return sort_by_order(fixed)


def reorder(items: Sequence[Subtask], ordered_ids: Sequence[str]) -> list[Subtask]:
    """
    Assign order = index in `ordered_ids` to every matching item.

    - ids in `ordered_ids` with no matching item are ignored
    - a duplicated id takes its last position
    - items missing from `ordered_ids` keep their previous order value

    Callers are expected to pass a complete permutation of the current ids;
    this is not checked.
    """
    positions: dict[str, int] = {}
    for index, item_id in enumerate(ordered_ids):
        positions[item_id] = index

    reordered = [
        replace(s, order=positions[s.id]) if s.id in positions else s
        for s in items
    ]
    return sort_by_order(reordered)
