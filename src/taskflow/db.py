from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Generator, List, Optional

from .errors import StoreError
from .models import Category, Priority, TaskEntity
from .repositories import Repository, changed_fields, new_task_id
from .schemas import TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    user_id: str = "user_id"
    title: str = "title"
    description: str = "description"
    category: str = "category"
    priority: str = "priority"
    due_date: str = "due_date"
    completed: str = "completed"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()


def _enum_value(value: object) -> object:
    return value.value if isinstance(value, (Category, Priority)) else value


def _dt_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    sqlite3 errors and unreadable rows surface as StoreError.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open task database {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"task database error: {e}") from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.user_id} TEXT NOT NULL,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NULL,
                    {_COLS.category} TEXT NOT NULL,
                    {_COLS.priority} TEXT NOT NULL,
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_user_created "
                f"ON {_COLS.table}({_COLS.user_id}, {_COLS.created_at})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        def parse_dt(s: Optional[str]) -> Optional[datetime]:
            if s is None:
                return None
            return datetime.fromisoformat(s)

        try:
            return {
                "id": str(row[_COLS.id]),
                "user_id": str(row[_COLS.user_id]),
                "title": str(row[_COLS.title]),
                "description": row[_COLS.description],
                # Unknown stored values are kept as plain strings; they never match a filter.
                "category": row[_COLS.category],
                "priority": row[_COLS.priority],
                "due_date": parse_dt(row[_COLS.due_date]),
                "completed": bool(row[_COLS.completed]),
                "created_at": parse_dt(row[_COLS.created_at]),  # type: ignore
                "updated_at": parse_dt(row[_COLS.updated_at]),  # type: ignore
            }  # type: ignore
        except ValueError as e:
            raise StoreError(f"malformed task row {row[_COLS.id]!r}: {e}") from e

    def _select_owned(self, conn: sqlite3.Connection, user_id: str, task_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ? AND {_COLS.user_id} = ?",
            (task_id, user_id),
        ).fetchone()

    def create(self, user_id: str, data: TaskCreate) -> TaskEntity:
        now = datetime.now().isoformat()
        task_id = new_task_id()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.user_id}, {_COLS.title}, {_COLS.description},
                    {_COLS.category}, {_COLS.priority}, {_COLS.due_date}, {_COLS.completed},
                    {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    user_id,
                    data.title,
                    data.description,
                    _enum_value(data.category),
                    _enum_value(data.priority),
                    _dt_text(data.due_date),
                    1 if data.completed else 0,
                    now,
                    now,
                ),
            )
            row = self._select_owned(conn, user_id, task_id)
            if row is None:
                raise StoreError(f"task {task_id} vanished after insert")
            logger.debug("created task %s for user %s", task_id, user_id)
            return self._row_to_entity(row)

    def get(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            row = self._select_owned(conn, user_id, task_id)
            return self._row_to_entity(row) if row else None

    def update(self, user_id: str, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        changes = changed_fields(data)
        with self._conn() as conn:
            if self._select_owned(conn, user_id, task_id) is None:
                return None

            assignments = []
            params: list = []
            for name, value in changes.items():
                if name == "completed":
                    value = 1 if value else 0
                elif name == "due_date":
                    value = _dt_text(value)  # type: ignore[arg-type]
                else:
                    value = _enum_value(value)
                assignments.append(f"{name} = ?")
                params.append(value)
            assignments.append(f"{_COLS.updated_at} = ?")
            params.append(datetime.now().isoformat())

            conn.execute(
                f"UPDATE {_COLS.table} SET {', '.join(assignments)} "
                f"WHERE {_COLS.id} = ? AND {_COLS.user_id} = ?",
                [*params, task_id, user_id],
            )
            row = self._select_owned(conn, user_id, task_id)
            if row is None:
                raise StoreError(f"task {task_id} vanished during update")
            logger.debug("updated task %s for user %s", task_id, user_id)
            return self._row_to_entity(row)

    def delete(self, user_id: str, task_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ? AND {_COLS.user_id} = ?",
                (task_id, user_id),
            )
            return cur.rowcount > 0

    def list_tasks(self, user_id: str) -> List[TaskEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} WHERE {_COLS.user_id} = ? ORDER BY {_COLS.created_at} DESC",
                (user_id,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]
