# src/rtodo/tasks/ordering.py

"""
Gapped integer sort keys for manual ordering inside one partition.

Keys are spaced STEP apart so appending or prepending never rewrites other rows.
A repack renumbers a partition to STEP, 2*STEP, ... keeping relative order.

Everything here is pure: callers pass current keys/ids in, get new ones back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

STEP = 1000


def append_key(current_max: int | None) -> int:
    """Key for a new last item. Empty partition starts at STEP."""
    if current_max is None:
        return STEP
    return int(current_max) + STEP


def prepend_key(current_min: int | None) -> int:
    """Key for a new first item; may go negative (a repack follows)."""
    if current_min is None:
        return STEP
    return int(current_min) - STEP


def spaced_keys(n: int) -> list[int]:
    return [(i + 1) * STEP for i in range(max(0, int(n)))]


def needs_repack(keys: Sequence[int]) -> bool:
    return list(keys) != spaced_keys(len(keys))


def temporary_keys(n: int, existing: Iterable[int], final: Iterable[int]) -> list[int]:
    """
    n distinct keys above every existing and every final key.

    Rewriting a partition in two phases (current -> temporary -> final) keeps the
    (date_scope, completed, sort_order) unique index valid after every single UPDATE.
    """
    ceiling = max([0, *existing, *final])
    return [ceiling + 1 + i for i in range(n)]


def _dedupe(ids: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    out: list[int] = []
    for i in ids:
        if i in seen:
            continue
        seen.add(i)
        out.append(i)
    return out


def merge_reorder(current: Sequence[int], requested: Iterable[int]) -> list[int]:
    """
    Final id sequence for one partition after a drag.

    current:   the partition's ids in their present display order
    requested: the dragged ids in the order the caller wants them

    Requested ids not in this partition are ignored; duplicates keep the first.
    If the requested ids sit in one contiguous run of slots, only that run is
    refilled and untouched ids keep their slots. Otherwise requested ids go first
    and untouched ids follow in their previous relative order.
    """
    members = set(current)
    touched = [i for i in _dedupe(requested) if i in members]
    if not touched:
        return list(current)

    touched_set = set(touched)
    slots = [pos for pos, i in enumerate(current) if i in touched_set]

    if slots[-1] - slots[0] + 1 == len(slots):
        out = list(current)
        for pos, task_id in zip(slots, touched):
            out[pos] = task_id
        return out

    untouched = [i for i in current if i not in touched_set]
    return touched + untouched
