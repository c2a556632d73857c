"""
Task storage backend (SQLite).

Writes go through `TaskStore.transaction(owner_id)`, which holds SQLite's
write lock (BEGIN IMMEDIATE) for the whole read-modify-write, so two
operations on the same board never interleave. The context commits on normal
exit and rolls back on any exception.
"""
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import ConflictRetryable, Internal, LedgerError
from .schema import Column, TaskItem

logger = logging.getLogger(__name__)


def _connect(db_path: str, timeout: float) -> sqlite3.Connection:
    """Open an autocommit connection; transactions are issued explicitly."""
    conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def translate_error(exc: sqlite3.Error) -> LedgerError:
    """Map a sqlite3 failure onto the error taxonomy."""
    message = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message):
        return ConflictRetryable(f"Board is busy: {exc}")
    return Internal(f"Storage error: {exc}")


def _row_to_item(row: sqlite3.Row) -> TaskItem:
    data = dict(row)
    return TaskItem(
        task_id=data["task_id"],
        owner_id=data["owner_id"],
        title=data["title"],
        description=data.get("description") or "",
        column=Column(data["column_name"]),
        position=data["position"],
        created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else None,
        updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else None,
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class TaskUnitOfWork:
    """Row access for one owner inside an open write transaction."""

    def __init__(self, conn: sqlite3.Connection, owner_id: str):
        self.conn = conn
        self.owner_id = owner_id

    def list_items(self, column: Optional[Column] = None) -> List[TaskItem]:
        """The owner's items ordered by column, then position."""
        if column is None:
            rows = self.conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? ORDER BY column_name, position",
                (self.owner_id,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? AND column_name = ? ORDER BY position",
                (self.owner_id, column.value)
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def get(self, task_id: str) -> Optional[TaskItem]:
        row = self.conn.execute(
            "SELECT * FROM tasks WHERE task_id = ? AND owner_id = ?",
            (task_id, self.owner_id)
        ).fetchone()
        return _row_to_item(row) if row else None

    def insert(self, item: TaskItem) -> None:
        self.conn.execute("""
            INSERT INTO tasks
            (task_id, owner_id, title, description, column_name, position, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            item.task_id,
            item.owner_id,
            item.title,
            item.description,
            item.column.value,
            item.position,
            _iso(item.created_at),
            _iso(item.updated_at),
        ))

    def update(self, item: TaskItem) -> None:
        self.conn.execute("""
            UPDATE tasks
            SET title = ?, description = ?, column_name = ?, position = ?, updated_at = ?
            WHERE task_id = ? AND owner_id = ?
        """, (
            item.title,
            item.description,
            item.column.value,
            item.position,
            _iso(item.updated_at),
            item.task_id,
            self.owner_id,
        ))

    def delete(self, task_id: str) -> None:
        self.conn.execute(
            "DELETE FROM tasks WHERE task_id = ? AND owner_id = ?",
            (task_id, self.owner_id)
        )


class TaskStore:
    """SQLite-backed store for board tasks."""

    def __init__(self, db_path: str, lock_timeout: float = 5.0):
        """Initialize store and create tables if needed."""
        self.db_path = db_path
        self.lock_timeout = lock_timeout
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        conn = _connect(self.db_path, self.lock_timeout)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    column_name TEXT NOT NULL DEFAULT 'todo',
                    position INTEGER NOT NULL,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_owner_column
                ON tasks(owner_id, column_name, position)
            """)
        finally:
            conn.close()

    @contextmanager
    def transaction(self, owner_id: str) -> Iterator[TaskUnitOfWork]:
        """Exclusive read-modify-write scope for one owner's board.

        sqlite3 errors raised inside the block surface as ConflictRetryable
        (lock/busy) or Internal; the transaction is rolled back either way.
        """
        try:
            conn = _connect(self.db_path, self.lock_timeout)
        except sqlite3.Error as e:
            raise translate_error(e) from e
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise translate_error(e) from e
            try:
                yield TaskUnitOfWork(conn, owner_id)
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise translate_error(e) from e
            except BaseException:
                self._rollback(conn)
                raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    # ── read helpers (no write lock) ─────────────────────────────────────────

    def get(self, owner_id: str, task_id: str) -> Optional[TaskItem]:
        """Retrieve one of the owner's tasks, None if missing or not theirs."""
        try:
            conn = _connect(self.db_path, self.lock_timeout)
            try:
                return TaskUnitOfWork(conn, owner_id).get(task_id)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise translate_error(e) from e

    def list_for_owner(self, owner_id: str, column: Optional[Column] = None) -> List[TaskItem]:
        try:
            conn = _connect(self.db_path, self.lock_timeout)
            try:
                return TaskUnitOfWork(conn, owner_id).list_items(column)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise translate_error(e) from e

    def count(self) -> int:
        try:
            conn = _connect(self.db_path, self.lock_timeout)
            try:
                return conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise translate_error(e) from e
