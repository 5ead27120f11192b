"""
Sorting and filtering helpers shared by the in-memory stores and the
dashboard view.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import PRIORITY_WEIGHT, TodoEntity

TODO_SORT_FIELDS = {"created_at", "updated_at", "due_date", "title", "priority", "sort_order"}
LIST_SORT_FIELDS = {"sort_order", "name", "created_at", "updated_at"}

DUE_FILTERS = {"overdue", "today", "week"}
DASHBOARD_STATUSES = {"all", "completed", "pending"}
DASHBOARD_SORTS = {"created", "priority", "title"}


# PUBLIC_INTERFACE
def normalize_sort(sort: Optional[str], order: Optional[str], allowed: Iterable[str], default: str) -> str:
    """
    Normalize a '[-]field' sort expression.

    ``order`` ('asc' or 'desc') overrides the direction carried by ``sort``.
    Unknown fields fall back to ``default``.

    Raises:
        ValueError: if ``order`` is given but is not 'asc' or 'desc'.
    """
    allowed = set(allowed)
    normalized = (sort or default).strip()
    field = normalized.lstrip("-")
    if field not in allowed:
        normalized = default
        field = default.lstrip("-")
    if order:
        ord_norm = order.strip().lower()
        if ord_norm not in {"asc", "desc"}:
            raise ValueError("order must be 'asc' or 'desc'")
        normalized = f"-{field}" if ord_norm == "desc" else field
    return normalized


def split_sort(sort: str) -> Tuple[str, bool]:
    """Return (field, descending) for a '[-]field' expression."""
    descending = sort.startswith("-")
    return (sort[1:] if descending else sort), descending


def natural_key(value: Any) -> Tuple[int, Any]:
    """Sort key that orders numbers before strings before anything else."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, str):
        return (1, value.casefold())
    if isinstance(value, datetime):
        return (1, value.isoformat())
    return (2, json.dumps(value, sort_keys=True, default=str))


# PUBLIC_INTERFACE
def sort_records(
    items: Sequence[Dict[str, Any]],
    sort: str,
    key: Optional[Callable[[Dict[str, Any]], Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Sort dict records by a '[-]field' expression; records missing the field
    (or holding None) always come last.
    """
    field, descending = split_sort(sort)
    present = [r for r in items if r.get(field) is not None]
    missing = [r for r in items if r.get(field) is None]
    sort_key = key or (lambda r: natural_key(r[field]))
    return sorted(present, key=sort_key, reverse=descending) + missing


# PUBLIC_INTERFACE
def sort_todos(items: Sequence[TodoEntity], sort: str) -> List[TodoEntity]:
    """Sort todos; priority uses its weight, titles ignore case, ties fall back to created_at."""
    field, _ = split_sort(sort)
    if field == "priority":
        key: Callable[[Dict[str, Any]], Any] = lambda t: (PRIORITY_WEIGHT.get(t["priority"], 2), t["created_at"])
    elif field == "title":
        key = lambda t: (t["title"].casefold(), t["created_at"])
    else:
        key = lambda t: (t[field], t["created_at"])
    return sort_records(items, sort, key)  # type: ignore[arg-type,return-value]


# PUBLIC_INTERFACE
def due_bounds(due: str, now: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Due-date window for the named filter.

    - overdue: before now (callers also exclude completed todos)
    - today: from 00:00 to the end of the current day
    - week: from now until seven days from now
    """
    if due == "overdue":
        return None, now
    if due == "today":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1) - timedelta(microseconds=1)
    if due == "week":
        return now, now + timedelta(days=7)
    raise ValueError(f"Unknown due filter: {due}")


# PUBLIC_INTERFACE
def dashboard_view(todos: Iterable[TodoEntity], status: str = "all", sort_by: str = "created") -> List[TodoEntity]:
    """
    Arrange todos the way the dashboard shows them.

    status: 'completed' keeps completed todos, 'pending' keeps the rest,
    'all' keeps everything.
    sort_by: 'priority' (high first), 'title' (alphabetical) or 'created'
    (newest first, the default).
    """
    items = list(todos)
    if status == "completed":
        items = [t for t in items if t["completed"]]
    elif status == "pending":
        items = [t for t in items if not t["completed"]]

    if sort_by == "priority":
        return sorted(items, key=lambda t: PRIORITY_WEIGHT.get(t["priority"], 2), reverse=True)
    if sort_by == "title":
        return sorted(items, key=lambda t: t["title"].casefold())
    return sorted(items, key=lambda t: t["created_at"], reverse=True)
