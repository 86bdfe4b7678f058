# tests/test_task_store.py

from __future__ import annotations

import random
import sqlite3
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path

import pytest

from rtodo.errors import (
    NotFoundError,
    StorageError,
    StorageUnavailableError,
    TransactionConflictError,
    ValidationError,
)
from rtodo.tasks.ordering import STEP
from rtodo.tasks.task_models import Position
from rtodo.tasks.task_store import TaskStore

from .conftest import TODAY

JAN2 = date(2025, 1, 2)


def _texts(tasks) -> list[str]:
    return [t.text for t in tasks]


def _assert_partition_keys_distinct(store: TaskStore) -> None:
    groups: dict[tuple, list[int]] = defaultdict(list)
    for t in store.list_all():
        groups[(t.date_scope, t.completed)].append(t.sort_order)
    for key, orders in groups.items():
        assert len(orders) == len(set(orders)), f"duplicate sort_order in {key}: {orders}"


def test_empty_store_add_and_toggle_scenario(store: TaskStore) -> None:
    task = store.add("Buy milk")
    tasks = store.list_by_date(TODAY)
    assert len(tasks) == 1
    assert tasks[0].text == "Buy milk"
    assert tasks[0].completed is False

    toggled = store.toggle(task.id)
    tasks = store.list_by_date(TODAY)
    assert [t.completed for t in tasks] == [True]
    assert [t for t in tasks if t.completed] == [toggled]
    assert toggled.sort_order == STEP


def test_add_appends_last_among_incomplete(store: TaskStore) -> None:
    a = store.add("A")
    done = store.add("done")
    store.toggle(done.id)
    b = store.add("  B  ")

    tasks = store.list_by_date(TODAY)
    assert _texts(tasks) == ["A", "B", "done"]
    incomplete = [t for t in tasks if not t.completed]
    assert incomplete[-1].id == b.id
    assert b.text == "B"
    assert b.sort_order > a.sort_order
    assert b.date_scope == TODAY


def test_add_rejects_empty_text_and_bad_date(store: TaskStore) -> None:
    with pytest.raises(ValidationError):
        store.add("   ")
    with pytest.raises(ValidationError):
        store.add("x", "2025-13-45")
    assert store.count() == 0


def test_add_for_explicit_date(store: TaskStore) -> None:
    t = store.add("later", "2025-01-05")
    assert t.date_scope == date(2025, 1, 5)
    assert t.created_at.date() == date(2025, 1, 5)
    assert store.list_by_date(TODAY) == []
    assert _texts(store.list_by_date("2025-01-05")) == ["later"]


def test_toggle_twice_reappends_to_end(store: TaskStore) -> None:
    a = store.add("A")
    store.add("B")

    first = store.toggle(a.id)
    assert first.completed is True
    assert _texts(store.list_by_date(TODAY)) == ["B", "A"]

    second = store.toggle(a.id)
    assert second.completed is False
    assert _texts(store.list_by_date(TODAY)) == ["B", "A"]
    assert second.sort_order != a.sort_order


def test_toggle_missing_raises_not_found(store: TaskStore) -> None:
    with pytest.raises(NotFoundError):
        store.toggle(404)


def test_edit_keeps_position(store: TaskStore) -> None:
    a = store.add("A")
    store.add("B")
    edited = store.edit(a.id, " A2 ")
    assert edited.text == "A2"
    assert edited.sort_order == a.sort_order
    assert _texts(store.list_by_date(TODAY)) == ["A2", "B"]

    with pytest.raises(ValidationError):
        store.edit(a.id, "")
    with pytest.raises(NotFoundError):
        store.edit(999, "x")


def test_delete_returns_false_when_absent(store: TaskStore) -> None:
    a = store.add("A")
    b = store.add("B")
    assert store.delete(a.id) is True
    assert store.delete(a.id) is False
    remaining = store.list_by_date(TODAY)
    assert [t.id for t in remaining] == [b.id]


def test_ids_are_not_reused_after_delete(store: TaskStore) -> None:
    a = store.add("A")
    store.delete(a.id)
    b = store.add("B")
    assert b.id > a.id


def test_clear_completed_across_dates(store: TaskStore) -> None:
    a = store.add("A")
    b = store.add("B", JAN2)
    store.add("C")
    store.toggle(a.id)
    store.toggle(b.id)

    assert store.clear_completed() == 2
    assert all(not t.completed for t in store.list_all())
    assert _texts(store.list_all()) == ["C"]
    assert store.clear_completed() == 0


def test_reorder_swaps_first_two(store: TaskStore) -> None:
    a, b, c = (store.add(x) for x in "ABC")
    store.reorder([b.id, a.id, c.id])
    tasks = store.list_by_date(TODAY)
    assert _texts(tasks) == ["B", "A", "C"]
    assert [t.sort_order for t in tasks] == [1000, 2000, 3000]


def test_reorder_partial_drags(store: TaskStore) -> None:
    a, b, c, d = (store.add(x) for x in "ABCD")

    # contiguous block: untouched A and D keep their slots
    store.reorder([c.id, b.id])
    assert _texts(store.list_by_date(TODAY)) == ["A", "C", "B", "D"]

    # scattered: dragged ids first, the rest keep relative order after them
    store.reorder([d.id, a.id])
    assert _texts(store.list_by_date(TODAY)) == ["D", "A", "C", "B"]


def test_reorder_respects_partitions_and_ignores_unknown(store: TaskStore) -> None:
    a, b = store.add("A"), store.add("B")
    x, y = store.add("X"), store.add("Y")
    store.toggle(x.id)
    store.toggle(y.id)
    other1, other2 = store.add("O1", JAN2), store.add("O2", JAN2)

    store.reorder([y.id, b.id, 999, other2.id, x.id, a.id, other1.id])

    assert _texts(store.list_by_date(TODAY)) == ["B", "A", "Y", "X"]
    assert _texts(store.list_by_date(JAN2)) == ["O2", "O1"]
    _assert_partition_keys_distinct(store)


def test_reorder_empty_is_noop(store: TaskStore) -> None:
    store.add("A")
    before = store.list_by_date(TODAY)
    store.reorder([])
    store.reorder([12345])
    assert store.list_by_date(TODAY) == before


def test_reorder_failure_leaves_order_untouched(store: TaskStore, monkeypatch) -> None:
    ids = [store.add(x).id for x in "ABCD"]
    store.reorder([ids[2], ids[0]])  # leave the keys in a non-trivial state
    before = store.list_by_date(TODAY)

    original = TaskStore._write_keys
    calls = {"n": 0}

    def flaky(conn, assignments):
        calls["n"] += 1
        if calls["n"] == 2:
            # first phase already hit the table; fail the second
            raise sqlite3.OperationalError("disk I/O error")
        original(conn, assignments)

    monkeypatch.setattr(TaskStore, "_write_keys", staticmethod(flaky))

    with pytest.raises(StorageError):
        store.reorder(list(reversed(ids)))

    monkeypatch.undo()
    assert calls["n"] == 2
    assert store.list_by_date(TODAY) == before


def test_move_to_date_end(store: TaskStore) -> None:
    a = store.add("A")
    store.add("B")
    store.add("C", JAN2)

    moved = store.move_to_date(a.id, "2025-01-02", "end")

    assert moved.date_scope == JAN2
    assert moved.created_at == a.created_at
    assert moved.completed is False
    assert _texts(store.list_by_date(TODAY)) == ["B"]
    assert _texts(store.list_by_date(JAN2)) == ["C", "A"]


def test_move_to_date_front_repacks_destination(store: TaskStore) -> None:
    a = store.add("A")
    store.add("C", JAN2)
    store.add("D", JAN2)

    store.move_to_date(a.id, JAN2, Position.FRONT)

    tasks = store.list_by_date(JAN2)
    assert _texts(tasks) == ["A", "C", "D"]
    assert [t.sort_order for t in tasks] == [1000, 2000, 3000]


def test_move_keeps_completed_state(store: TaskStore) -> None:
    a = store.add("A")
    store.add("open", JAN2)
    store.toggle(a.id)

    moved = store.move_to_date(a.id, JAN2)
    assert moved.completed is True
    assert _texts(store.list_by_date(JAN2)) == ["open", "A"]


def test_move_validation(store: TaskStore) -> None:
    a = store.add("A")
    with pytest.raises(ValidationError):
        store.move_to_date(a.id, JAN2, "middle")
    with pytest.raises(ValidationError):
        store.move_to_date(a.id, "tomorrow")
    with pytest.raises(NotFoundError):
        store.move_to_date(999, JAN2)
    assert store.list_by_date(TODAY)[0].date_scope == TODAY


def test_distinct_dates_for_navigation(store: TaskStore) -> None:
    for day in ("2024-12-30", "2024-12-31", "2025-01-03", "2025-01-05", "2024-12-31"):
        store.add("x", day)
    store.add("today")

    assert store.list_dates_at_or_before() == [TODAY, date(2024, 12, 31), date(2024, 12, 30)]
    assert store.list_dates_after() == [date(2025, 1, 3), date(2025, 1, 5)]
    assert store.list_dates_after("2025-01-03") == [date(2025, 1, 5)]


def test_list_all_groups_by_date_then_completion(store: TaskStore) -> None:
    a = store.add("A")
    store.add("B")
    store.add("N", JAN2)
    store.toggle(a.id)
    assert _texts(store.list_all()) == ["B", "A", "N"]


def test_keys_stay_distinct_under_random_operations(store: TaskStore) -> None:
    rng = random.Random(1234)
    days = [TODAY, JAN2, date(2025, 1, 3)]
    ids: list[int] = []

    for step in range(150):
        op = rng.choice(["add", "add", "toggle", "delete", "reorder", "move_end", "move_front"])
        if op == "add" or not ids:
            ids.append(store.add(f"t{step}", rng.choice(days)).id)
        elif op == "toggle":
            store.toggle(rng.choice(ids))
        elif op == "delete":
            victim = rng.choice(ids)
            store.delete(victim)
            ids.remove(victim)
        elif op == "reorder":
            store.reorder(rng.sample(ids, k=min(len(ids), rng.randint(1, 6))))
        elif op == "move_end":
            store.move_to_date(rng.choice(ids), rng.choice(days), "end")
        else:
            store.move_to_date(rng.choice(ids), rng.choice(days), "front")

        _assert_partition_keys_distinct(store)

    assert sorted(t.id for t in store.list_all()) == sorted(ids)


def test_concurrent_toggles_from_two_connections(db_path: Path, clock) -> None:
    main = TaskStore(db_path, busy_timeout=5.0, clock=clock)
    compact = TaskStore(db_path, busy_timeout=5.0, clock=clock)
    ids = [main.add(f"t{i}").id for i in range(6)]

    def flip(store: TaskStore, task_ids: list[int]) -> None:
        for _ in range(10):
            for task_id in task_ids:
                store.toggle(task_id)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(flip, main, ids[:3]), pool.submit(flip, compact, ids[3:])]
        for f in futures:
            f.result()

    _assert_partition_keys_distinct(main)
    assert len(main.list_by_date(TODAY)) == 6


def test_lock_timeout_raises_conflict(db_path: Path, clock) -> None:
    store = TaskStore(db_path, busy_timeout=0.05, clock=clock)
    other = sqlite3.connect(str(db_path), isolation_level=None)
    try:
        other.execute("BEGIN IMMEDIATE")
        with pytest.raises(TransactionConflictError):
            store.add("blocked")
        other.execute("ROLLBACK")
    finally:
        other.close()

    assert store.add("free").text == "free"
    assert _texts(store.list_by_date(TODAY)) == ["free"]


def test_closed_store_is_unavailable(store: TaskStore) -> None:
    store.close()
    with pytest.raises(StorageUnavailableError):
        store.list_by_date(TODAY)
    with pytest.raises(StorageUnavailableError):
        store.add("x")


def test_reopen_repacks_gapped_partitions(db_path: Path, clock) -> None:
    store = TaskStore(db_path, clock=clock)
    a = store.add("A")
    store.add("B")
    store.add("C")
    store.toggle(a.id)  # leaves a gap at the front of the incomplete partition

    reopened = TaskStore(db_path, clock=clock)
    tasks = reopened.list_by_date(TODAY)
    assert _texts(tasks) == ["B", "C", "A"]
    assert [t.sort_order for t in tasks] == [1000, 2000, 1000]


def test_legacy_database_is_migrated(tmp_path: Path, clock) -> None:
    path = tmp_path / "legacy.db"
    conn = sqlite3.connect(str(path))
    conn.execute(
        """
        CREATE TABLE tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            text TEXT NOT NULL,
            completed BOOLEAN NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    conn.executemany(
        "INSERT INTO tasks(text, completed, created_at, sort_order) VALUES (?, ?, ?, ?)",
        [
            ("a", 0, "2025-01-01T08:00:00.000Z", 0),
            ("b", 0, "2025-01-01T09:00:00.000Z", 0),
            ("c", 1, "2025-01-01T10:00:00.000Z", 5),
            ("d", 0, "2025-01-02T10:00:00.000Z", 0),
        ],
    )
    conn.commit()
    conn.close()

    store = TaskStore(path, clock=clock)

    day1 = store.list_by_date(TODAY)
    assert _texts(day1) == ["a", "b", "c"]
    assert [t.sort_order for t in day1] == [1000, 2000, 1000]
    assert _texts(store.list_by_date(JAN2)) == ["d"]

    # the new unique index is live: the next add lands after b without collisions
    assert store.add("e").sort_order == 3000
