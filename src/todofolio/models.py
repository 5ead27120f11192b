from __future__ import annotations

from datetime import datetime
from typing import List, Optional, TypedDict

PRIORITY_WEIGHT = {"high": 3, "medium": 2, "low": 1}


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    Stored user account.

    Fields:
    - id: uuid hex string
    - username / email: unique; email stored lower-cased
    - password_hash: PBKDF2 hash, never returned by the API
    - login_attempts / lock_until: failed-login lockout bookkeeping
    - reset_token_hash / reset_expires: pending password reset, if any
    - deleted_at: set when the account is soft deleted
    """

    id: str
    username: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    avatar: Optional[str]
    is_active: bool
    last_login: Optional[datetime]
    login_attempts: int
    lock_until: Optional[datetime]
    reset_token_hash: Optional[str]
    reset_expires: Optional[datetime]
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class ListEntity(TypedDict):
    """
    A user-owned todo list (category).

    Fields:
    - name: 1..100 chars, unique per user ignoring case
    - color: '#RRGGBB'
    - sort_order: display position among the owner's lists, starting at 1
    """

    id: str
    user_id: str
    name: str
    description: str
    color: str
    is_public: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A todo item belonging to one list of one user.

    Fields:
    - completed_at: set when completed flips to True, cleared when it flips back
    - tags: up to 10 unique tags
    - sort_order: position within the list, starting at 1
    """

    id: str
    user_id: str
    list_id: str
    title: str
    description: str
    completed: bool
    priority: str
    due_date: Optional[datetime]
    completed_at: Optional[datetime]
    tags: List[str]
    estimated_hours: Optional[float]
    sort_order: int
    created_at: datetime
    updated_at: datetime


def is_locked(user: UserEntity, now: datetime) -> bool:
    return user["lock_until"] is not None and user["lock_until"] > now


def is_overdue(todo: TodoEntity, now: datetime) -> bool:
    return todo["due_date"] is not None and not todo["completed"] and todo["due_date"] < now
