from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from .models import ListEntity, TodoEntity, UserEntity
from .ordering import due_bounds, split_sort
from .repositories import (
    RECENT_COMPLETION_WINDOW,
    ListQuery,
    ListRepository,
    TodoQuery,
    TodoRepository,
    UserRepository,
    completion_timestamp,
    empty_stats,
    new_id,
)
from .schemas import ListCreate, TodoFields

_USER_COLUMNS = (
    "id", "username", "email", "password_hash", "first_name", "last_name", "avatar",
    "is_active", "last_login", "login_attempts", "lock_until", "reset_token_hash",
    "reset_expires", "deleted_at", "created_at", "updated_at",
)
_LIST_COLUMNS = (
    "id", "user_id", "name", "description", "color", "is_public", "sort_order",
    "created_at", "updated_at",
)
_TODO_COLUMNS = (
    "id", "user_id", "list_id", "title", "description", "completed", "priority",
    "due_date", "completed_at", "tags", "estimated_hours", "sort_order",
    "created_at", "updated_at",
)

_USER_DATETIMES = {"last_login", "lock_until", "reset_expires", "deleted_at", "created_at", "updated_at"}
_USER_BOOLS = {"is_active"}
_LIST_DATETIMES = {"created_at", "updated_at"}
_LIST_BOOLS = {"is_public"}
_TODO_DATETIMES = {"due_date", "completed_at", "created_at", "updated_at"}
_TODO_BOOLS = {"completed"}

_PRIORITY_SQL = "CASE priority WHEN 'high' THEN 3 WHEN 'medium' THEN 2 ELSE 1 END"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    avatar TEXT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    last_login TEXT NULL,
    login_attempts INTEGER NOT NULL DEFAULT 0,
    lock_until TEXT NULL,
    reset_token_hash TEXT NULL,
    reset_expires TEXT NULL,
    deleted_at TEXT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS lists (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    color TEXT NOT NULL DEFAULT '#1976d2',
    is_public INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS todos (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    list_id TEXT NOT NULL REFERENCES lists(id),
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    completed INTEGER NOT NULL DEFAULT 0,
    priority TEXT NOT NULL DEFAULT 'medium',
    due_date TEXT NULL,
    completed_at TEXT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    estimated_hours REAL NULL,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_users_reset_token ON users(reset_token_hash);
CREATE INDEX IF NOT EXISTS idx_lists_user ON lists(user_id, sort_order);
CREATE INDEX IF NOT EXISTS idx_todos_user ON todos(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_todos_list ON todos(list_id, sort_order);
CREATE INDEX IF NOT EXISTS idx_todos_completed ON todos(user_id, completed);
CREATE INDEX IF NOT EXISTS idx_todos_due ON todos(user_id, due_date);
"""


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    # fixed width so that text comparison matches time order
    return value.isoformat(timespec="microseconds") if value is not None else None


def _like_pattern(term: str) -> str:
    """Substring LIKE pattern for ``term`` with the wildcard characters escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


def _to_db(column: str, value: Any, datetimes: set, bools: set) -> Any:
    if column in datetimes:
        return _dt_out(value)
    if column in bools:
        return 1 if value else 0
    if column == "tags":
        return json.dumps(list(value or []))
    return value


def _from_row(row: sqlite3.Row, columns: Sequence[str], datetimes: set, bools: set) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for column in columns:
        value = row[column]
        if column in datetimes:
            value = _dt_in(value)
        elif column in bools:
            value = bool(value)
        elif column == "tags":
            value = json.loads(value) if value else []
        out[column] = value
    return out


# PUBLIC_INTERFACE
def init_db(db_path: str) -> None:
    """Create the database file and tables if they do not exist."""
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(_SCHEMA)
        conn.commit()
    finally:
        conn.close()


class _SQLiteBase:
    table: str = ""
    columns: Sequence[str] = ()
    datetimes: set = set()
    bools: set = set()

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _entity(self, row: sqlite3.Row) -> Dict[str, Any]:
        return _from_row(row, self.columns, self.datetimes, self.bools)

    def _insert(self, conn: sqlite3.Connection, entity: Dict[str, Any]) -> None:
        cols = ", ".join(self.columns)
        marks = ", ".join("?" for _ in self.columns)
        conn.execute(
            f"INSERT INTO {self.table} ({cols}) VALUES ({marks})",
            [_to_db(c, entity[c], self.datetimes, self.bools) for c in self.columns],
        )

    def _set_fields(
        self,
        conn: sqlite3.Connection,
        row_id: str,
        fields: Dict[str, Any],
    ) -> None:
        assignments = {k: v for k, v in fields.items() if k in self.columns and k != "id"}
        assignments["updated_at"] = datetime.now()
        set_sql = ", ".join(f"{c} = ?" for c in assignments)
        params = [_to_db(c, v, self.datetimes, self.bools) for c, v in assignments.items()]
        conn.execute(f"UPDATE {self.table} SET {set_sql} WHERE id = ?", [*params, row_id])

    def _fetch_one(self, conn: sqlite3.Connection, where: str, params: Sequence[Any]) -> Optional[Dict[str, Any]]:
        row = conn.execute(f"SELECT * FROM {self.table} WHERE {where}", params).fetchone()
        return self._entity(row) if row else None


class SQLiteUserRepository(_SQLiteBase, UserRepository):
    """
    SQLite user store.
    """

    table = "users"
    columns = _USER_COLUMNS
    datetimes = _USER_DATETIMES
    bools = _USER_BOOLS

    def create(self, *, username, email, password_hash, first_name, last_name, avatar=None) -> UserEntity:
        now = datetime.now()
        entity = {
            "id": new_id(),
            "username": username,
            "email": email.lower(),
            "password_hash": password_hash,
            "first_name": first_name,
            "last_name": last_name,
            "avatar": avatar,
            "is_active": True,
            "last_login": None,
            "login_attempts": 0,
            "lock_until": None,
            "reset_token_hash": None,
            "reset_expires": None,
            "deleted_at": None,
            "created_at": now,
            "updated_at": now,
        }
        with self._conn() as conn:
            self._insert(conn, entity)
            return self._fetch_one(conn, "id = ?", (entity["id"],))  # type: ignore[return-value]

    def get(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            return self._fetch_one(conn, "id = ?", (user_id,))  # type: ignore[return-value]

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            return self._fetch_one(conn, "email = ?", (email.lower(),))  # type: ignore[return-value]

    def get_by_username(self, username: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            return self._fetch_one(conn, "username = ?", (username,))  # type: ignore[return-value]

    def find_by_reset_token(self, token_hash: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            return self._fetch_one(conn, "reset_token_hash = ?", (token_hash,))  # type: ignore[return-value]

    def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserEntity]:
        with self._conn() as conn:
            if self._fetch_one(conn, "id = ?", (user_id,)) is None:
                return None
            self._set_fields(conn, user_id, fields)
            return self._fetch_one(conn, "id = ?", (user_id,))  # type: ignore[return-value]


class SQLiteListRepository(_SQLiteBase, ListRepository):
    """
    SQLite list store.
    """

    table = "lists"
    columns = _LIST_COLUMNS
    datetimes = _LIST_DATETIMES
    bools = _LIST_BOOLS

    def create(self, user_id: str, data: ListCreate) -> ListEntity:
        now = datetime.now()
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(sort_order), 0) AS last FROM lists WHERE user_id = ?", (user_id,)
            ).fetchone()
            entity = {
                "id": new_id(),
                "user_id": user_id,
                "name": data.name,
                "description": data.description,
                "color": data.color,
                "is_public": data.is_public,
                "sort_order": int(row["last"]) + 1,
                "created_at": now,
                "updated_at": now,
            }
            self._insert(conn, entity)
            return self._fetch_one(conn, "id = ?", (entity["id"],))  # type: ignore[return-value]

    def get(self, user_id: str, list_id: str) -> Optional[ListEntity]:
        with self._conn() as conn:
            return self._fetch_one(conn, "id = ? AND user_id = ?", (list_id, user_id))  # type: ignore[return-value]

    def find_by_name(self, user_id: str, name: str, exclude_id: Optional[str] = None) -> Optional[ListEntity]:
        with self._conn() as conn:
            return self._fetch_one(  # type: ignore[return-value]
                conn,
                "user_id = ? AND lower(name) = lower(?) AND id != ?",
                (user_id, name.strip(), exclude_id or ""),
            )

    def update(self, user_id: str, list_id: str, fields: Dict[str, Any]) -> Optional[ListEntity]:
        with self._conn() as conn:
            if self._fetch_one(conn, "id = ? AND user_id = ?", (list_id, user_id)) is None:
                return None
            self._set_fields(conn, list_id, fields)
            return self._fetch_one(conn, "id = ?", (list_id,))  # type: ignore[return-value]

    def delete(self, user_id: str, list_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM lists WHERE id = ? AND user_id = ?", (list_id, user_id))
            return cur.rowcount > 0

    def list(self, user_id: str, query: Optional[ListQuery] = None) -> Tuple[List[ListEntity], int]:
        q = query or ListQuery()
        clauses = ["user_id = ?"]
        params: list = [user_id]

        if q.is_public is not None:
            clauses.append("is_public = ?")
            params.append(1 if q.is_public else 0)

        if q.search:
            clauses.append("(name LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\')")
            like = _like_pattern(q.search)
            params.extend([like, like])

        where_sql = f"WHERE {' AND '.join(clauses)}"
        field, descending = split_sort(q.sort)
        expr = "name COLLATE NOCASE" if field == "name" else field
        direction = "DESC" if descending else "ASC"
        order_sql = f"ORDER BY {expr} {direction}, created_at ASC"

        with self._conn() as conn:
            total = int(conn.execute(f"SELECT COUNT(*) AS cnt FROM lists {where_sql}", params).fetchone()["cnt"])
            rows = conn.execute(
                f"SELECT * FROM lists {where_sql} {order_sql} LIMIT ? OFFSET ?",
                [*params, max(q.limit, 0), max(q.offset, 0)],
            ).fetchall()
            return [self._entity(r) for r in rows], total  # type: ignore[misc]


class SQLiteTodoRepository(_SQLiteBase, TodoRepository):
    """
    Lightweight SQLite repository implementing the TodoRepository interface.
    """

    table = "todos"
    columns = _TODO_COLUMNS
    datetimes = _TODO_DATETIMES
    bools = _TODO_BOOLS

    def create(self, user_id: str, list_id: str, data: TodoFields) -> TodoEntity:
        now = datetime.now()
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(sort_order), 0) AS last FROM todos WHERE list_id = ?", (list_id,)
            ).fetchone()
            entity = {
                "id": new_id(),
                "user_id": user_id,
                "list_id": list_id,
                "title": data.title,
                "description": data.description,
                "completed": data.completed,
                "priority": data.priority,
                "due_date": data.due_date,
                "completed_at": now if data.completed else None,
                "tags": list(data.tags),
                "estimated_hours": data.estimated_hours,
                "sort_order": int(row["last"]) + 1,
                "created_at": now,
                "updated_at": now,
            }
            self._insert(conn, entity)
            return self._fetch_one(conn, "id = ?", (entity["id"],))  # type: ignore[return-value]

    def get(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        with self._conn() as conn:
            return self._fetch_one(conn, "id = ? AND user_id = ?", (todo_id, user_id))  # type: ignore[return-value]

    def update(self, user_id: str, todo_id: str, fields: Dict[str, Any]) -> Optional[TodoEntity]:
        with self._conn() as conn:
            current = self._fetch_one(conn, "id = ? AND user_id = ?", (todo_id, user_id))
            if current is None:
                return None
            changes = dict(fields)
            if "completed" in changes:
                changes["completed_at"] = completion_timestamp(
                    current["completed"], current["completed_at"], changes["completed"], datetime.now()
                )
            self._set_fields(conn, todo_id, changes)
            return self._fetch_one(conn, "id = ?", (todo_id,))  # type: ignore[return-value]

    def delete(self, user_id: str, todo_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id))
            return cur.rowcount > 0

    def delete_by_list(self, user_id: str, list_id: str) -> int:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM todos WHERE list_id = ? AND user_id = ?", (list_id, user_id))
            return cur.rowcount

    def list(self, user_id: str, query: Optional[TodoQuery] = None) -> Tuple[List[TodoEntity], int]:
        q = query or TodoQuery()
        now = datetime.now()
        clauses = ["user_id = ?"]
        params: list = [user_id]

        if q.list_id is not None:
            clauses.append("list_id = ?")
            params.append(q.list_id)
        if q.completed is not None:
            clauses.append("completed = ?")
            params.append(1 if q.completed else 0)
        if q.priority is not None:
            clauses.append("priority = ?")
            params.append(q.priority)
        if q.tag is not None:
            # tags are stored as a JSON array of quoted strings
            clauses.append("instr(tags, ?) > 0")
            params.append(json.dumps(q.tag))

        if q.search:
            # Substring search on title, description and each tag
            clauses.append(
                "(title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\'"
                " OR EXISTS (SELECT 1 FROM json_each(todos.tags) WHERE json_each.value LIKE ? ESCAPE '\\'))"
            )
            like = _like_pattern(q.search)
            params.extend([like, like, like])

        if q.due is not None:
            start, end = due_bounds(q.due, now)
            if q.due == "overdue":
                clauses.append("due_date IS NOT NULL AND completed = 0 AND due_date < ?")
                params.append(_dt_out(end))
            else:
                clauses.append("due_date IS NOT NULL AND due_date >= ? AND due_date <= ?")
                params.extend([_dt_out(start), _dt_out(end)])
        if q.due_from is not None:
            clauses.append("due_date IS NOT NULL AND due_date >= ?")
            params.append(_dt_out(q.due_from))
        if q.due_to is not None:
            clauses.append("due_date IS NOT NULL AND due_date <= ?")
            params.append(_dt_out(q.due_to))

        where_sql = f"WHERE {' AND '.join(clauses)}"

        field, descending = split_sort(q.sort)
        direction = "DESC" if descending else "ASC"
        if field == "priority":
            expr = _PRIORITY_SQL
        elif field == "title":
            expr = "title COLLATE NOCASE"
        else:
            expr = field
        order_sql = f"ORDER BY ({field} IS NULL) ASC, {expr} {direction}, created_at {direction}"

        with self._conn() as conn:
            total = int(conn.execute(f"SELECT COUNT(*) AS cnt FROM todos {where_sql}", params).fetchone()["cnt"])
            rows = conn.execute(
                f"SELECT * FROM todos {where_sql} {order_sql} LIMIT ? OFFSET ?",
                [*params, max(q.limit, 0), max(q.offset, 0)],
            ).fetchall()
            return [self._entity(r) for r in rows], total  # type: ignore[misc]

    def stats(self, user_id: str, list_id: Optional[str] = None) -> Dict[str, Any]:
        now = datetime.now()
        where = "user_id = :user_id"
        params: Dict[str, Any] = {
            "now": _dt_out(now),
            "recent": _dt_out(now - RECENT_COMPLETION_WINDOW),
            "user_id": user_id,
        }
        if list_id is not None:
            where += " AND list_id = :list_id"
            params["list_id"] = list_id
        with self._conn() as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(completed), 0) AS completed,
                    COALESCE(SUM(CASE WHEN completed = 0 THEN 1 ELSE 0 END), 0) AS pending,
                    COALESCE(SUM(CASE WHEN priority = 'high' THEN 1 ELSE 0 END), 0) AS high_priority,
                    COALESCE(SUM(CASE WHEN priority = 'medium' THEN 1 ELSE 0 END), 0) AS medium_priority,
                    COALESCE(SUM(CASE WHEN priority = 'low' THEN 1 ELSE 0 END), 0) AS low_priority,
                    COALESCE(SUM(CASE WHEN due_date IS NOT NULL AND completed = 0 AND due_date < :now
                        THEN 1 ELSE 0 END), 0) AS overdue,
                    COALESCE(SUM(CASE WHEN completed = 1 AND completed_at >= :recent
                        THEN 1 ELSE 0 END), 0) AS recently_completed,
                    COALESCE(SUM(estimated_hours), 0) AS total_estimated_hours
                FROM todos WHERE {where}
                """,
                params,
            ).fetchone()
        result = empty_stats()
        for key in result:
            result[key] = row[key]
        result["total_estimated_hours"] = float(result["total_estimated_hours"])
        return result

    def reorder(self, user_id: str, todo_id: str, new_order: int) -> Optional[TodoEntity]:
        with self._conn() as conn:
            todo = self._fetch_one(conn, "id = ? AND user_id = ?", (todo_id, user_id))
            if todo is None:
                return None
            old_order = todo["sort_order"]
            now = _dt_out(datetime.now())
            if new_order > old_order:
                conn.execute(
                    """
                    UPDATE todos SET sort_order = sort_order - 1, updated_at = ?
                    WHERE list_id = ? AND id != ? AND sort_order > ? AND sort_order <= ?
                    """,
                    (now, todo["list_id"], todo_id, old_order, new_order),
                )
            elif new_order < old_order:
                conn.execute(
                    """
                    UPDATE todos SET sort_order = sort_order + 1, updated_at = ?
                    WHERE list_id = ? AND id != ? AND sort_order >= ? AND sort_order < ?
                    """,
                    (now, todo["list_id"], todo_id, new_order, old_order),
                )
            self._set_fields(conn, todo_id, {"sort_order": new_order})
            return self._fetch_one(conn, "id = ?", (todo_id,))  # type: ignore[return-value]
