from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import Request

from .logging_config import get_logger
from .models import ListEntity, TodoEntity, UserEntity, is_overdue
from .ordering import due_bounds, sort_records, sort_todos
from .schemas import ListCreate, TodoFields
from .settings import Settings

logger = get_logger(__name__)

RECENT_COMPLETION_WINDOW = timedelta(days=7)


@dataclass(frozen=True)
class TodoQuery:
    """
    Query parameters for listing todos.
    """
    limit: int = 50
    offset: int = 0
    list_id: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    due: Optional[str] = None  # overdue, today, week
    due_from: Optional[datetime] = None
    due_to: Optional[datetime] = None
    sort: str = "-created_at"  # any of ordering.TODO_SORT_FIELDS, '-' prefix for descending


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todo lists.
    """
    limit: int = 50
    offset: int = 0
    search: Optional[str] = None
    is_public: Optional[bool] = None
    sort: str = "sort_order"


def new_id() -> str:
    return uuid.uuid4().hex


def completion_timestamp(
    was_completed: bool,
    completed_at: Optional[datetime],
    now_completed: bool,
    now: datetime,
) -> Optional[datetime]:
    """completed_at after a completion change: set on False->True, cleared on ->False."""
    if now_completed and not was_completed:
        return now
    if not now_completed:
        return None
    return completed_at


def empty_stats() -> Dict[str, Any]:
    return {
        "total": 0,
        "completed": 0,
        "pending": 0,
        "high_priority": 0,
        "medium_priority": 0,
        "low_priority": 0,
        "overdue": 0,
        "recently_completed": 0,
        "total_estimated_hours": 0.0,
    }


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract repository contract for user accounts."""

    @abstractmethod
    def create(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        avatar: Optional[str] = None,
    ) -> UserEntity:
        """Create and return a new active user."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserEntity]:
        """Return a user by id, or None if not found."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return the user with this (case-insensitive) email, or None."""

    @abstractmethod
    def get_by_username(self, username: str) -> Optional[UserEntity]:
        """Return the user with this exact username, or None."""

    @abstractmethod
    def find_by_reset_token(self, token_hash: str) -> Optional[UserEntity]:
        """Return the user holding this password-reset token hash, or None."""

    @abstractmethod
    def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserEntity]:
        """Set the given fields and bump updated_at. Return the updated user or None."""

    def find_by_login(self, identifier: str) -> Optional[UserEntity]:
        """Resolve a login identifier that may be an email or a username."""
        return self.get_by_email(identifier.strip().lower()) or self.get_by_username(identifier.strip())


# PUBLIC_INTERFACE
class ListRepository(ABC):
    """Abstract repository contract for todo lists. Every operation is scoped to the owner."""

    @abstractmethod
    def create(self, user_id: str, data: ListCreate) -> ListEntity:
        """Create a list appended after the owner's existing lists."""

    @abstractmethod
    def get(self, user_id: str, list_id: str) -> Optional[ListEntity]:
        """Return the owner's list by id, or None."""

    @abstractmethod
    def find_by_name(self, user_id: str, name: str, exclude_id: Optional[str] = None) -> Optional[ListEntity]:
        """Return the owner's list with this name ignoring case, or None."""

    @abstractmethod
    def update(self, user_id: str, list_id: str, fields: Dict[str, Any]) -> Optional[ListEntity]:
        """Set the given fields and bump updated_at. Return the updated list or None."""

    @abstractmethod
    def delete(self, user_id: str, list_id: str) -> bool:
        """Delete a list. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, user_id: str, query: Optional[ListQuery] = None) -> Tuple[List[ListEntity], int]:
        """
        Return a slice of the owner's lists and the total count matching filters.
        - Substring search across name and description (case-insensitive)
        - Filter by is_public
        - Sorting by sort_order/name/created_at/updated_at (asc/desc)
        """


# PUBLIC_INTERFACE
class TodoRepository(ABC):
    """Abstract repository contract for todo storage backends."""

    @abstractmethod
    def create(self, user_id: str, list_id: str, data: TodoFields) -> TodoEntity:
        """Create a todo appended at the end of its list."""

    @abstractmethod
    def get(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        """Return the owner's todo by id, or None."""

    @abstractmethod
    def update(self, user_id: str, todo_id: str, fields: Dict[str, Any]) -> Optional[TodoEntity]:
        """
        Update the given fields of a todo. A change of ``completed`` maintains
        completed_at. Return the updated todo or None if not found.
        """

    @abstractmethod
    def delete(self, user_id: str, todo_id: str) -> bool:
        """Delete a todo. Return True if deleted, False if not found."""

    @abstractmethod
    def delete_by_list(self, user_id: str, list_id: str) -> int:
        """Delete every todo of a list and return how many were removed."""

    @abstractmethod
    def list(self, user_id: str, query: Optional[TodoQuery] = None) -> Tuple[List[TodoEntity], int]:
        """
        Return a slice of the owner's todos and the total count matching filters.
        - Supports limit/offset
        - Filter by list, completed, priority, tag, due window and due range
        - Substring search across title, description and tags (case-insensitive)
        - Sorting by any ordering.TODO_SORT_FIELDS (asc/desc), null due dates last
        """

    @abstractmethod
    def stats(self, user_id: str, list_id: Optional[str] = None) -> Dict[str, Any]:
        """Counts by completion, priority and overdue state for the owner (or one list)."""

    @abstractmethod
    def reorder(self, user_id: str, todo_id: str, new_order: int) -> Optional[TodoEntity]:
        """
        Move a todo to ``new_order`` within its list, shifting the todos between
        the old and the new position by one. Return the moved todo or None.
        """


class InMemoryUserRepository(UserRepository):
    """
    Thread-safe in-memory user store.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, UserEntity] = {}

    def create(self, *, username, email, password_hash, first_name, last_name, avatar=None) -> UserEntity:
        now = datetime.now()
        entity: UserEntity = {
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
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def get(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._items.get(user_id)
            return None if item is None else item.copy()

    def _first(self, predicate) -> Optional[UserEntity]:
        with self._lock:
            for item in self._items.values():
                if predicate(item):
                    return item.copy()
        return None

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        e = email.lower()
        return self._first(lambda u: u["email"] == e)

    def get_by_username(self, username: str) -> Optional[UserEntity]:
        return self._first(lambda u: u["username"] == username)

    def find_by_reset_token(self, token_hash: str) -> Optional[UserEntity]:
        return self._first(lambda u: u["reset_token_hash"] == token_hash)

    def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserEntity]:
        with self._lock:
            existing = self._items.get(user_id)
            if existing is None:
                return None
            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            updated["updated_at"] = datetime.now()
            self._items[user_id] = updated
            return updated.copy()


class InMemoryListRepository(ListRepository):
    """
    Thread-safe in-memory list store.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, ListEntity] = {}

    def create(self, user_id: str, data: ListCreate) -> ListEntity:
        now = datetime.now()
        with self._lock:
            orders = [lst["sort_order"] for lst in self._items.values() if lst["user_id"] == user_id]
            entity: ListEntity = {
                "id": new_id(),
                "user_id": user_id,
                "name": data.name,
                "description": data.description,
                "color": data.color,
                "is_public": data.is_public,
                "sort_order": max(orders, default=0) + 1,
                "created_at": now,
                "updated_at": now,
            }
            self._items[entity["id"]] = entity
            return entity.copy()

    def get(self, user_id: str, list_id: str) -> Optional[ListEntity]:
        with self._lock:
            item = self._items.get(list_id)
            if item is None or item["user_id"] != user_id:
                return None
            return item.copy()

    def find_by_name(self, user_id: str, name: str, exclude_id: Optional[str] = None) -> Optional[ListEntity]:
        target = name.strip().casefold()
        with self._lock:
            for item in self._items.values():
                if item["user_id"] == user_id and item["name"].casefold() == target and item["id"] != exclude_id:
                    return item.copy()
        return None

    def update(self, user_id: str, list_id: str, fields: Dict[str, Any]) -> Optional[ListEntity]:
        with self._lock:
            existing = self._items.get(list_id)
            if existing is None or existing["user_id"] != user_id:
                return None
            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            updated["updated_at"] = datetime.now()
            self._items[list_id] = updated
            return updated.copy()

    def delete(self, user_id: str, list_id: str) -> bool:
        with self._lock:
            existing = self._items.get(list_id)
            if existing is None or existing["user_id"] != user_id:
                return False
            del self._items[list_id]
            return True

    def list(self, user_id: str, query: Optional[ListQuery] = None) -> Tuple[List[ListEntity], int]:
        q = query or ListQuery()
        with self._lock:
            items: List[ListEntity] = [lst for lst in self._items.values() if lst["user_id"] == user_id]

            if q.is_public is not None:
                items = [lst for lst in items if lst["is_public"] == q.is_public]

            if q.search:
                s = q.search.lower()
                items = [lst for lst in items if s in lst["name"].lower() or s in lst["description"].lower()]

            total = len(items)
            items_sorted = sort_records(items, q.sort)  # type: ignore[arg-type]

            start = max(q.offset, 0)
            end = start + max(q.limit, 0)
            return [lst.copy() for lst in items_sorted[start:end]], total  # type: ignore[misc]


class InMemoryTodoRepository(TodoRepository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TodoEntity] = {}

    def _now(self) -> datetime:
        return datetime.now()

    def _owned(self, user_id: str) -> List[TodoEntity]:
        return [t for t in self._items.values() if t["user_id"] == user_id]

    def create(self, user_id: str, list_id: str, data: TodoFields) -> TodoEntity:
        now = self._now()
        with self._lock:
            orders = [t["sort_order"] for t in self._items.values() if t["list_id"] == list_id]
            entity: TodoEntity = {
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
                "sort_order": max(orders, default=0) + 1,
                "created_at": now,
                "updated_at": now,
            }
            self._items[entity["id"]] = entity
            return self._copy(entity)

    @staticmethod
    def _copy(todo: TodoEntity) -> TodoEntity:
        c = todo.copy()
        c["tags"] = list(todo["tags"])
        return c

    def get(self, user_id: str, todo_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._items.get(todo_id)
            if item is None or item["user_id"] != user_id:
                return None
            return self._copy(item)

    def update(self, user_id: str, todo_id: str, fields: Dict[str, Any]) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None or existing["user_id"] != user_id:
                return None

            now = self._now()
            updated = self._copy(existing)
            updated.update(fields)  # type: ignore[typeddict-item]
            if "completed" in fields:
                updated["completed_at"] = completion_timestamp(
                    existing["completed"], existing["completed_at"], fields["completed"], now
                )
            updated["updated_at"] = now

            self._items[todo_id] = updated
            return self._copy(updated)

    def delete(self, user_id: str, todo_id: str) -> bool:
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None or existing["user_id"] != user_id:
                return False
            del self._items[todo_id]
            return True

    def delete_by_list(self, user_id: str, list_id: str) -> int:
        with self._lock:
            doomed = [t["id"] for t in self._owned(user_id) if t["list_id"] == list_id]
            for todo_id in doomed:
                del self._items[todo_id]
            return len(doomed)

    def list(self, user_id: str, query: Optional[TodoQuery] = None) -> Tuple[List[TodoEntity], int]:
        q = query or TodoQuery()
        now = self._now()
        with self._lock:
            items: Iterable[TodoEntity] = self._owned(user_id)

            # Filtering
            if q.list_id is not None:
                items = [t for t in items if t["list_id"] == q.list_id]
            if q.completed is not None:
                items = [t for t in items if t["completed"] == q.completed]
            if q.priority is not None:
                items = [t for t in items if t["priority"] == q.priority]
            if q.tag is not None:
                items = [t for t in items if q.tag in t["tags"]]

            if q.search:
                s = q.search.lower()

                def matches(t: TodoEntity) -> bool:
                    return (
                        s in t["title"].lower()
                        or s in (t["description"] or "").lower()
                        or any(s in tag.lower() for tag in t["tags"])
                    )

                items = [t for t in items if matches(t)]

            if q.due is not None:
                start, end = due_bounds(q.due, now)
                if q.due == "overdue":
                    items = [t for t in items if is_overdue(t, now)]
                else:
                    items = [t for t in items if t["due_date"] is not None and start <= t["due_date"] <= end]  # type: ignore[operator]
            if q.due_from is not None:
                items = [t for t in items if t["due_date"] is not None and t["due_date"] >= q.due_from]
            if q.due_to is not None:
                items = [t for t in items if t["due_date"] is not None and t["due_date"] <= q.due_to]

            items = list(items)
            total = len(items)

            # Sorting
            items_sorted = sort_todos(items, q.sort)

            # Pagination
            start_at = max(q.offset, 0)
            page = items_sorted[start_at:start_at + max(q.limit, 0)]

            # Return copies to avoid external mutation
            return [self._copy(t) for t in page], total

    def stats(self, user_id: str, list_id: Optional[str] = None) -> Dict[str, Any]:
        now = self._now()
        recent_cutoff = now - RECENT_COMPLETION_WINDOW
        result = empty_stats()
        with self._lock:
            for t in self._owned(user_id):
                if list_id is not None and t["list_id"] != list_id:
                    continue
                result["total"] += 1
                if t["completed"]:
                    result["completed"] += 1
                    if t["completed_at"] is not None and t["completed_at"] >= recent_cutoff:
                        result["recently_completed"] += 1
                else:
                    result["pending"] += 1
                result[f"{t['priority']}_priority"] += 1
                if is_overdue(t, now):
                    result["overdue"] += 1
                result["total_estimated_hours"] += t["estimated_hours"] or 0
        return result

    def reorder(self, user_id: str, todo_id: str, new_order: int) -> Optional[TodoEntity]:
        with self._lock:
            todo = self._items.get(todo_id)
            if todo is None or todo["user_id"] != user_id:
                return None
            old_order = todo["sort_order"]
            now = self._now()
            for sibling in self._items.values():
                if sibling["list_id"] != todo["list_id"] or sibling["id"] == todo_id:
                    continue
                if new_order > old_order and old_order < sibling["sort_order"] <= new_order:
                    sibling["sort_order"] -= 1
                    sibling["updated_at"] = now
                elif new_order < old_order and new_order <= sibling["sort_order"] < old_order:
                    sibling["sort_order"] += 1
                    sibling["updated_at"] = now
            todo["sort_order"] = new_order
            todo["updated_at"] = now
            return self._copy(todo)


# PUBLIC_INTERFACE
@dataclass
class Store:
    """The repositories backing the todo API."""

    users: UserRepository
    lists: ListRepository
    todos: TodoRepository


# PUBLIC_INTERFACE
def build_store(settings: Settings) -> Store:
    """
    Factory to return the configured repositories based on settings.
    - memory: InMemory* repositories
    - sqlite: SQLite* repositories sharing one database file
    """
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteListRepository, SQLiteTodoRepository, SQLiteUserRepository, init_db

        init_db(settings.sqlite_db_path)
        logger.info("store_ready", backend="sqlite", path=settings.sqlite_db_path)
        return Store(
            users=SQLiteUserRepository(settings.sqlite_db_path),
            lists=SQLiteListRepository(settings.sqlite_db_path),
            todos=SQLiteTodoRepository(settings.sqlite_db_path),
        )
    logger.info("store_ready", backend="memory")
    return Store(
        users=InMemoryUserRepository(),
        lists=InMemoryListRepository(),
        todos=InMemoryTodoRepository(),
    )


# PUBLIC_INTERFACE
def get_store(request: Request) -> Store:
    """FastAPI dependency returning the store attached to the running app."""
    return request.app.state.store
