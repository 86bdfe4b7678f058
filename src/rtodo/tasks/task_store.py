# src/rtodo/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from datetime import date, datetime
from pathlib import Path

from ..errors import (
    NotFoundError,
    StorageError,
    StorageUnavailableError,
    TransactionConflictError,
)
from .ordering import append_key, merge_reorder, needs_repack, prepend_key, spaced_keys, temporary_keys
from .task_models import Partition, Position, Task, clean_text, parse_day

logger = logging.getLogger(__name__)

_ORDER_IN_DAY = "completed ASC, sort_order ASC, created_at DESC, id DESC"


def _translate(exc: sqlite3.Error) -> StorageError:
    msg = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError):
        if "locked" in msg or "busy" in msg:
            return TransactionConflictError(str(exc))
        if "unable to open" in msg:
            return StorageUnavailableError(str(exc))
    return StorageError(str(exc))


class TaskStore:
    """
    SQLite task store with gapped manual ordering.

    The schema is migration-safe in the same way as every store here:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Writes:
    - every mutation is one BEGIN IMMEDIATE transaction (write lock taken up front)
    - any exception inside rolls back before it propagates
    - lock waits are bounded by busy_timeout, then TransactionConflictError

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(
        self,
        db_path: str | Path = "rtodo.sqlite3",
        *,
        busy_timeout: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = max(0.0, float(busy_timeout))
        self._clock = clock or datetime.now
        self._closed = False
        self._ensure_schema()
        try:
            total = self.count()
        except StorageError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """No persistent connections; later calls raise StorageUnavailableError."""
        self._closed = True

    def today(self) -> date:
        return self._clock().date()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageUnavailableError("TaskStore is closed")
        try:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._busy_timeout,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"cannot open {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA synchronous=NORMAL")

    @contextlib.contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
        except sqlite3.Error as e:
            raise _translate(e) from e
        finally:
            conn.close()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as e:
            raise _translate(e) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    date_scope TEXT NOT NULL DEFAULT ''
                )
                """
            )

            # Migrations (safe): add missing columns.
            cols = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)")}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("sort_order", "INTEGER NOT NULL DEFAULT 0")
            add_col("date_scope", "TEXT NOT NULL DEFAULT ''")

            cur = conn.execute(
                "UPDATE tasks SET date_scope = substr(created_at, 1, 10) "
                "WHERE date_scope IS NULL OR date_scope = ''"
            )
            if cur.rowcount > 0:
                logger.info("TaskStore migration: backfilled date_scope rows=%s", cur.rowcount)

            indexes = {row["name"] for row in conn.execute("PRAGMA index_list(tasks)")}
            if "ux_tasks_partition_order" not in indexes:
                # Legacy rows never got a key; the old app used the row id.
                conn.execute("UPDATE tasks SET sort_order = id WHERE sort_order = 0")

            repacked = self._canonicalize_all(conn)
            if repacked:
                logger.info("TaskStore init: repacked %s partition(s)", repacked)

            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS ux_tasks_partition_order "
                "ON tasks(date_scope, completed, sort_order)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_date_order ON tasks(date_scope, sort_order)"
            )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        created_raw = str(row["created_at"] or "")
        try:
            created_at = datetime.fromisoformat(created_raw)
        except ValueError:
            created_at = datetime.fromisoformat(str(row["date_scope"]))
        return Task(
            id=int(row["id"]),
            text=str(row["text"] or ""),
            completed=bool(row["completed"]),
            created_at=created_at,
            sort_order=int(row["sort_order"]),
            date_scope=date.fromisoformat(str(row["date_scope"])),
        )

    def _fetch(self, conn: sqlite3.Connection, task_id: int) -> Task:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
        if row is None:
            raise NotFoundError(int(task_id))
        return self._row_to_task(row)

    @staticmethod
    def _partition_ids(conn: sqlite3.Connection, partition: Partition) -> list[int]:
        cur = conn.execute(
            """
            SELECT id FROM tasks
            WHERE date_scope = ? AND completed = ?
            ORDER BY sort_order ASC, created_at DESC, id DESC
            """,
            (partition.date_scope.isoformat(), int(partition.completed)),
        )
        return [int(r["id"]) for r in cur.fetchall()]

    @staticmethod
    def _key_bounds(conn: sqlite3.Connection, partition: Partition) -> tuple[int | None, int | None]:
        row = conn.execute(
            "SELECT MIN(sort_order), MAX(sort_order) FROM tasks WHERE date_scope = ? AND completed = ?",
            (partition.date_scope.isoformat(), int(partition.completed)),
        ).fetchone()
        return row[0], row[1]

    @staticmethod
    def _write_keys(conn: sqlite3.Connection, assignments: list[tuple[int, int]]) -> None:
        conn.executemany(
            "UPDATE tasks SET sort_order = ? WHERE id = ?",
            [(key, task_id) for task_id, key in assignments],
        )

    def _rewrite_partition(
        self, conn: sqlite3.Connection, partition: Partition, ordered_ids: list[int]
    ) -> bool:
        """
        Give ordered_ids fresh STEP-spaced keys. Returns False if already canonical.

        ordered_ids must be a permutation of the partition's ids.
        """
        cur = conn.execute(
            "SELECT id, sort_order FROM tasks WHERE date_scope = ? AND completed = ?",
            (partition.date_scope.isoformat(), int(partition.completed)),
        )
        current = {int(r["id"]): int(r["sort_order"]) for r in cur.fetchall()}
        if set(ordered_ids) != set(current) or len(ordered_ids) != len(current):
            raise StorageError(f"partition changed during rewrite: {partition}")

        final = spaced_keys(len(ordered_ids))
        if [current[i] for i in ordered_ids] == final:
            return False

        temps = temporary_keys(len(ordered_ids), current.values(), final)
        self._write_keys(conn, list(zip(ordered_ids, temps)))
        self._write_keys(conn, list(zip(ordered_ids, final)))
        return True

    def _canonicalize_all(self, conn: sqlite3.Connection) -> int:
        cur = conn.execute(
            """
            SELECT id, date_scope, completed, sort_order FROM tasks
            ORDER BY date_scope, completed, sort_order ASC, created_at DESC, id DESC
            """
        )
        groups: dict[Partition, list[tuple[int, int]]] = {}
        for r in cur.fetchall():
            p = Partition(date.fromisoformat(str(r["date_scope"])), bool(r["completed"]))
            groups.setdefault(p, []).append((int(r["id"]), int(r["sort_order"])))

        repacked = 0
        for partition, rows in groups.items():
            if not needs_repack([key for _, key in rows]):
                continue
            if self._rewrite_partition(conn, partition, [task_id for task_id, _ in rows]):
                repacked += 1
        return repacked

    # ---- reads ----

    def count(self) -> int:
        with self._reading() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def list_all(self) -> list[Task]:
        with self._reading() as conn:
            cur = conn.execute(f"SELECT * FROM tasks ORDER BY date_scope ASC, {_ORDER_IN_DAY}")
            return [self._row_to_task(r) for r in cur.fetchall()]

    def list_by_date(self, day: date | str) -> list[Task]:
        d = parse_day(day)
        with self._reading() as conn:
            cur = conn.execute(
                f"SELECT * FROM tasks WHERE date_scope = ? ORDER BY {_ORDER_IN_DAY}",
                (d.isoformat(),),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]

    def list_dates_at_or_before(self, today: date | str | None = None) -> list[date]:
        """Dates for history navigation, newest first."""
        d = self.today() if today is None else parse_day(today)
        with self._reading() as conn:
            cur = conn.execute(
                "SELECT DISTINCT date_scope FROM tasks WHERE date_scope <= ? ORDER BY date_scope DESC",
                (d.isoformat(),),
            )
            return [date.fromisoformat(r[0]) for r in cur.fetchall()]

    def list_dates_after(self, today: date | str | None = None) -> list[date]:
        """Dates for future navigation, soonest first."""
        d = self.today() if today is None else parse_day(today)
        with self._reading() as conn:
            cur = conn.execute(
                "SELECT DISTINCT date_scope FROM tasks WHERE date_scope > ? ORDER BY date_scope ASC",
                (d.isoformat(),),
            )
            return [date.fromisoformat(r[0]) for r in cur.fetchall()]

    # ---- writes ----

    def add(self, text: str, day: date | str | None = None) -> Task:
        text = clean_text(text)
        now = self._clock()
        d = now.date() if day is None else parse_day(day)
        created_at = now if d == now.date() else datetime.combine(d, now.time())

        with self._transaction() as conn:
            _, cur_max = self._key_bounds(conn, Partition(d, False))
            key = append_key(cur_max)
            cur = conn.execute(
                "INSERT INTO tasks(text, completed, created_at, sort_order, date_scope) VALUES (?, 0, ?, ?, ?)",
                (text, created_at.isoformat(), key, d.isoformat()),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise StorageError("SQLite did not return lastrowid for tasks insert")
            task = self._fetch(conn, int(rowid))

        logger.debug("Task added id=%s date=%s sort_order=%s", task.id, d, key)
        return task

    def toggle(self, task_id: int) -> Task:
        """Flip completed and append the task to the end of its new partition."""
        with self._transaction() as conn:
            task = self._fetch(conn, task_id)
            target = Partition(task.date_scope, not task.completed)
            _, cur_max = self._key_bounds(conn, target)
            conn.execute(
                "UPDATE tasks SET completed = ?, sort_order = ? WHERE id = ?",
                (int(target.completed), append_key(cur_max), task.id),
            )
            updated = self._fetch(conn, task.id)

        logger.debug("Task toggled id=%s completed=%s", updated.id, updated.completed)
        return updated

    def edit(self, task_id: int, text: str) -> Task:
        text = clean_text(text)
        with self._transaction() as conn:
            cur = conn.execute("UPDATE tasks SET text = ? WHERE id = ?", (text, int(task_id)))
            if cur.rowcount == 0:
                raise NotFoundError(int(task_id))
            return self._fetch(conn, task_id)

    def delete(self, task_id: int) -> bool:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            removed = cur.rowcount > 0
        logger.debug("Task delete id=%s removed=%s", task_id, removed)
        return removed

    def clear_completed(self) -> int:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE completed = 1")
            n = max(0, cur.rowcount)
        logger.info("Cleared completed tasks count=%s", n)
        return n

    def reorder(self, ordered_ids: Iterable[int]) -> None:
        """
        Apply a drag result.

        Ids are grouped by partition; each affected partition gets its merged order
        (see ordering.merge_reorder) and fresh keys, all in one transaction.
        Unknown ids are ignored.
        """
        ids = [int(i) for i in ordered_ids]
        if not ids:
            return

        with self._transaction() as conn:
            placeholders = ",".join("?" for _ in ids)
            cur = conn.execute(
                f"SELECT id, date_scope, completed FROM tasks WHERE id IN ({placeholders})",
                ids,
            )
            where: dict[int, Partition] = {
                int(r["id"]): Partition(date.fromisoformat(str(r["date_scope"])), bool(r["completed"]))
                for r in cur.fetchall()
            }

            requested: dict[Partition, list[int]] = {}
            for task_id in ids:
                p = where.get(task_id)
                if p is not None:
                    requested.setdefault(p, []).append(task_id)

            for partition, wanted in requested.items():
                current = self._partition_ids(conn, partition)
                self._rewrite_partition(conn, partition, merge_reorder(current, wanted))

        logger.debug("Reordered ids=%s partitions=%s", ids, len(requested))

    def move_to_date(
        self,
        task_id: int,
        target_day: date | str,
        position: Position | str = Position.END,
    ) -> Task:
        """
        Refile a task under another date, keeping its completed state.

        FRONT uses min - STEP and repacks the destination; END uses max + STEP.
        """
        d = parse_day(target_day)
        pos = Position.parse(position)

        with self._transaction() as conn:
            task = self._fetch(conn, task_id)
            dest = Partition(d, task.completed)
            cur_min, cur_max = self._key_bounds(conn, dest)
            key = prepend_key(cur_min) if pos is Position.FRONT else append_key(cur_max)
            conn.execute(
                "UPDATE tasks SET date_scope = ?, sort_order = ? WHERE id = ?",
                (d.isoformat(), key, task.id),
            )
            if pos is Position.FRONT:
                self._rewrite_partition(conn, dest, self._partition_ids(conn, dest))
            moved = self._fetch(conn, task.id)

        logger.debug("Task moved id=%s %s -> %s position=%s", task_id, task.date_scope, d, pos.value)
        return moved
