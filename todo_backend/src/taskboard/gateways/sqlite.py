from __future__ import annotations

import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional

from ..errors import GatewayError, NotFoundError
from .base import CATEGORIES, SUBTASKS, TASKS, Record, RecordGateway, check_collection

logger = logging.getLogger(__name__)

# Column name -> storage kind. 'datetime' is ISO-8601 text, 'bool' is 0/1.
_SCHEMA: Dict[str, Dict[str, str]] = {
    CATEGORIES: {
        "id": "text",
        "name": "text",
        "color": "text",
        "created_at": "datetime",
        "last_used": "datetime",
    },
    TASKS: {
        "id": "text",
        "title": "text",
        "description": "text",
        "category_id": "text",
        "status": "text",
        "created_at": "datetime",
        "updated_at": "datetime",
    },
    SUBTASKS: {
        "id": "text",
        "task_id": "text",
        "title": "text",
        "description": "text",
        "completed": "bool",
        "created_at": "datetime",
    },
}

_DDL = (
    f"""
    CREATE TABLE IF NOT EXISTS {CATEGORIES} (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        color TEXT NULL,
        created_at TEXT NOT NULL,
        last_used TEXT NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TASKS} (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NULL,
        category_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'todo',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {SUBTASKS} (
        id TEXT PRIMARY KEY,
        task_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NULL,
        completed INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{CATEGORIES}_last_used ON {CATEGORIES}(last_used)",
    f"CREATE INDEX IF NOT EXISTS idx_{TASKS}_category_id ON {TASKS}(category_id)",
    f"CREATE INDEX IF NOT EXISTS idx_{TASKS}_created_at ON {TASKS}(created_at)",
    f"CREATE INDEX IF NOT EXISTS idx_{SUBTASKS}_task_id ON {SUBTASKS}(task_id)",
)


def _to_db(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "datetime":
        return value.isoformat() if isinstance(value, datetime) else str(value)
    if kind == "bool":
        return 1 if value else 0
    # Enum members (task status) are stored by value
    return getattr(value, "value", value)


def _from_db(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "datetime":
        return datetime.fromisoformat(value)
    if kind == "bool":
        return bool(value)
    return str(value)


class SQLiteGateway(RecordGateway):
    """
    Local-file record store, one table per collection.

    Each call opens its own connection and commits on success.
    """

    name = "sqlite"

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()
        logger.info("SQLiteGateway ready db=%s", db_path)

    @contextmanager
    def _conn(self, operation: str, collection: str) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise GatewayError(operation, collection, e) from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise GatewayError(operation, collection, e) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn("init", "schema") as conn:
            for statement in _DDL:
                conn.execute(statement)

    def _row_to_record(self, collection: str, row: sqlite3.Row) -> Record:
        columns = _SCHEMA[collection]
        return {name: _from_db(kind, row[name]) for name, kind in columns.items()}

    def _fetch(self, conn: sqlite3.Connection, collection: str, record_id: str) -> Optional[Record]:
        row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(collection, row) if row else None

    def _encode(self, collection: str, fields: Record) -> Dict[str, Any]:
        columns = _SCHEMA[collection]
        unknown = set(fields) - set(columns)
        if unknown:
            raise ValueError(f"unknown fields for {collection}: {sorted(unknown)}")
        return {name: _to_db(columns[name], value) for name, value in fields.items()}

    def list(self, collection: str, order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        check_collection(collection)
        order_sql = ""
        if order_by:
            if order_by not in _SCHEMA[collection]:
                raise ValueError(f"cannot order {collection} by {order_by!r}")
            order_sql = f"ORDER BY {order_by} {'DESC' if descending else 'ASC'}, rowid ASC"
        else:
            order_sql = f"ORDER BY rowid {'DESC' if descending else 'ASC'}"
        with self._conn("list", collection) as conn:
            rows = conn.execute(f"SELECT * FROM {collection} {order_sql}").fetchall()
            return [self._row_to_record(collection, r) for r in rows]

    def insert(self, collection: str, record: Record) -> Record:
        check_collection(collection)
        values = self._encode(collection, record)
        values.setdefault("id", uuid.uuid4().hex)
        names = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._conn("insert", collection) as conn:
            conn.execute(
                f"INSERT INTO {collection} ({names}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            stored = self._fetch(conn, collection, values["id"])
            assert stored is not None
            return stored

    def update(self, collection: str, record_id: str, fields: Record) -> Record:
        check_collection(collection)
        values = self._encode(collection, {k: v for k, v in fields.items() if k != "id"})
        with self._conn("update", collection) as conn:
            if values:
                assignments = ", ".join(f"{name} = ?" for name in values)
                cur = conn.execute(
                    f"UPDATE {collection} SET {assignments} WHERE id = ?",
                    (*values.values(), record_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(collection, record_id)
            stored = self._fetch(conn, collection, record_id)
            if stored is None:
                raise NotFoundError(collection, record_id)
            return stored

    def delete(self, collection: str, record_id: str) -> bool:
        check_collection(collection)
        with self._conn("delete", collection) as conn:
            cur = conn.execute(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
            return cur.rowcount > 0
