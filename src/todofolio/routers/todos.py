from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ..auth import get_current_user
from ..errors import NotFoundError, ValidationError
from ..logging_config import get_logger
from ..models import TodoEntity, UserEntity, is_overdue
from ..ordering import TODO_SORT_FIELDS, dashboard_view, normalize_sort
from ..repositories import Store, TodoQuery, get_store
from ..schemas import (
    Envelope,
    Page,
    Priority,
    ReorderRequest,
    TodoCreate,
    TodoFields,
    TodoOut,
    TodoUpdate,
    ToggleRequest,
    UserTodoStats,
    coerce_due_date,
)
from ..utils import pagination_envelope, percentage, success_envelope

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/todos",
    tags=["todos"],
)

# upper bound used when a view needs every todo of a user
_ALL = 1_000_000


def todo_out(todo: TodoEntity, now: Optional[datetime] = None) -> TodoOut:
    """Build the API view of a stored todo."""
    return TodoOut(**todo, is_overdue=is_overdue(todo, now or datetime.now()))  # type: ignore[arg-type]


@dataclass
class TodoFilterParams:
    """Raw todo listing parameters, see ``todo_filter_params``."""

    limit: int = 50
    offset: int = 0
    completed: Optional[bool] = None
    priority: Optional[str] = None
    tag: Optional[str] = None
    q: Optional[str] = None
    due: Optional[str] = None
    due_from: Optional[str] = None
    due_to: Optional[str] = None
    sort: Optional[str] = None
    order: Optional[str] = None

    def to_query(self, default_sort: str, list_id: Optional[str] = None) -> TodoQuery:
        """
        Validate and normalize into a TodoQuery.

        Raises:
            ValidationError: bad order direction or unparsable due range.
        """
        try:
            sort = normalize_sort(self.sort, self.order, TODO_SORT_FIELDS, default_sort)
            due_from = coerce_due_date(self.due_from)
            due_to = coerce_due_date(self.due_to)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return TodoQuery(
            limit=self.limit,
            offset=self.offset,
            list_id=list_id,
            completed=self.completed,
            priority=self.priority,
            tag=self.tag,
            search=self.q or None,
            due=self.due,
            due_from=due_from,
            due_to=due_to,
            sort=sort,
        )


# PUBLIC_INTERFACE
def todo_filter_params(
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    priority: Optional[Priority] = Query(None, description="Filter by priority"),
    tag: Optional[str] = Query(None, description="Filter by tag"),
    q: Optional[str] = Query(None, description="Search text for title/description/tags"),
    due: Optional[Literal["overdue", "today", "week"]] = Query(None, description="Due date window"),
    due_from: Optional[str] = Query(None, description="Due on or after this ISO8601 date/time"),
    due_to: Optional[str] = Query(None, description="Due on or before this ISO8601 date/time"),
    sort: Optional[str] = Query(None, description="Sort field, '-' prefix for descending"),
    order: Optional[str] = Query(None, description="Override sort direction: 'asc' or 'desc'"),
) -> TodoFilterParams:
    """
    Query parameters shared by every todo listing endpoint.

    - limit: max number of items to return (0..1000)
    - offset: number of items to skip (>=0)
    - completed / priority / tag: exact filters
    - q: case-insensitive search across title, description and tags
    - due: overdue, today or week
    - due_from / due_to: inclusive due date range
    - sort: created_at, updated_at, due_date, title, priority or sort_order; '-' prefix for descending
    - order: asc or desc (if provided, it overrides the direction in sort)
    """
    return TodoFilterParams(
        limit=limit,
        offset=offset,
        completed=completed,
        priority=priority,
        tag=tag.strip() if tag else None,
        q=q.strip() if q else None,
        due=due,
        due_from=due_from,
        due_to=due_to,
        sort=sort,
        order=order,
    )


def todo_page(store: Store, user_id: str, query: TodoQuery) -> Dict[str, Any]:
    items, total = store.todos.list(user_id, query)
    now = datetime.now()
    return pagination_envelope(
        items=[todo_out(it, now) for it in items],
        total=total,
        limit=query.limit,
        offset=query.offset,
    )


def _owned_todo(store: Store, user_id: str, todo_id: str) -> TodoEntity:
    todo = store.todos.get(user_id, todo_id)
    if todo is None:
        raise NotFoundError("Todo")
    return todo


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[Page[TodoOut]],
    summary="List Todos",
    description=(
        "List the caller's todos with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- list_id: only todos of this list\n"
        "- completed, priority, tag: exact filters\n"
        "- q: search query for title/description/tags (substring match)\n"
        "- due: overdue, today or week; due_from/due_to: due date range\n"
        "- sort: created_at, updated_at, due_date, title, priority, sort_order ('-' prefix for descending)\n"
        "- order: asc or desc (if provided, it overrides the direction in sort)\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
        401: {"description": "Missing or invalid token"},
    },
)
def list_todos(
    list_id: Optional[str] = Query(None, description="Filter by list"),
    params: TodoFilterParams = Depends(todo_filter_params),
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    List todos with pagination and filters.
    """
    query = params.to_query("-created_at", list_id=list_id)
    page = todo_page(store, user["id"], query)
    return success_envelope(page, "Todos retrieved successfully", sort=query.sort)


# PUBLIC_INTERFACE
@router.get(
    "/dashboard",
    response_model=Envelope[List[TodoOut]],
    summary="Dashboard View",
    description=(
        "All of the caller's todos arranged for the dashboard.\n\n"
        "- status: all, completed or pending\n"
        "- sort_by: priority (high first), title (alphabetical) or created (newest first)"
    ),
)
def dashboard(
    status_filter: Literal["all", "completed", "pending"] = Query("all", alias="status"),
    sort_by: Literal["created", "priority", "title"] = Query("created"),
    list_id: Optional[str] = Query(None, description="Restrict to one list"),
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    items, _ = store.todos.list(user["id"], TodoQuery(limit=_ALL, list_id=list_id))
    view = dashboard_view(items, status_filter, sort_by)
    now = datetime.now()
    return success_envelope(
        [todo_out(t, now) for t in view],
        "Todos retrieved successfully",
        count=len(view),
        status=status_filter,
        sort_by=sort_by,
    )


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=Envelope[UserTodoStats],
    summary="Todo Statistics",
    description="Counts by completion, priority and overdue state across all of the caller's todos.",
)
def todo_stats(
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    stats = store.todos.stats(user["id"])
    stats["completion_percentage"] = percentage(stats["completed"], stats["total"])
    return success_envelope(UserTodoStats(**stats), "Todo statistics retrieved successfully")


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=Envelope[TodoOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new Todo item in one of the caller's lists and return the created resource.",
    responses={
        201: {"description": "Todo created successfully"},
        404: {"description": "List not found"},
        422: {"description": "Validation error"},
    },
)
def create_todo(
    payload: TodoCreate,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    Create a new Todo.
    """
    if store.lists.get(user["id"], payload.list_id) is None:
        raise NotFoundError("List")
    created = store.todos.create(user["id"], payload.list_id, payload)
    logger.info("todo_created", todo_id=created["id"], list_id=created["list_id"], user_id=user["id"])
    return success_envelope(todo_out(created), "Todo created successfully")


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=Envelope[TodoOut],
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={
        200: {"description": "Todo found"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(
    todo_id: str,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    Retrieve a single Todo item by its ID.
    """
    return success_envelope(todo_out(_owned_todo(store, user["id"], todo_id)), "Todo retrieved successfully")


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=Envelope[TodoOut],
    summary="Replace Todo",
    description=(
        "Replace an existing Todo item. Any fields omitted will be set to their default/null "
        "equivalent as per the schema."
    ),
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def put_todo(
    todo_id: str,
    payload: TodoFields,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    Full update (replace) of every writable field; the todo stays in its list.
    """
    updated = store.todos.update(user["id"], todo_id, payload.model_dump())
    if updated is None:
        raise NotFoundError("Todo")
    logger.info("todo_replaced", todo_id=todo_id, user_id=user["id"])
    return success_envelope(todo_out(updated), "Todo updated successfully")


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=Envelope[TodoOut],
    summary="Update Todo",
    description="Partially update fields of a Todo item. An explicit null due_date clears it.",
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def patch_todo(
    todo_id: str,
    payload: TodoUpdate,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    Partial update of a Todo item.
    """
    changes = payload.changes()
    if not changes:
        return success_envelope(todo_out(_owned_todo(store, user["id"], todo_id)), "No changes applied")
    updated = store.todos.update(user["id"], todo_id, changes)
    if updated is None:
        raise NotFoundError("Todo")
    logger.info("todo_updated", todo_id=todo_id, fields=sorted(changes), user_id=user["id"])
    return success_envelope(todo_out(updated), "Todo updated successfully")


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}/toggle",
    response_model=Envelope[TodoOut],
    summary="Toggle Todo",
    description="Set the completion state, or flip it when no body (or no 'completed') is sent.",
)
def toggle_todo(
    todo_id: str,
    payload: Optional[ToggleRequest] = Body(None),
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    todo = _owned_todo(store, user["id"], todo_id)
    target = payload.completed if payload is not None and payload.completed is not None else not todo["completed"]
    updated = store.todos.update(user["id"], todo_id, {"completed": target})
    if updated is None:
        raise NotFoundError("Todo")
    message = "Todo marked as completed" if target else "Todo marked as pending"
    return success_envelope(todo_out(updated), message)


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}/reorder",
    response_model=Envelope[TodoOut],
    summary="Reorder Todo",
    description="Move a todo to a new 1-based position within its list; todos in between shift by one.",
)
def reorder_todo(
    todo_id: str,
    payload: ReorderRequest,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    moved = store.todos.reorder(user["id"], todo_id, payload.new_order)
    if moved is None:
        raise NotFoundError("Todo")
    logger.info("todo_reordered", todo_id=todo_id, new_order=payload.new_order)
    return success_envelope(todo_out(moved), "Todo reordered successfully")


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Delete Todo",
    description="Delete a Todo item by ID.",
    responses={
        200: {"description": "Todo deleted"},
        404: {"description": "Todo not found"},
    },
)
def delete_todo(
    todo_id: str,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    Delete a Todo. Returns the deleted id, 404 if not found.
    """
    if not store.todos.delete(user["id"], todo_id):
        raise NotFoundError("Todo")
    logger.info("todo_deleted", todo_id=todo_id, user_id=user["id"])
    return success_envelope({"id": todo_id}, "Todo deleted successfully")
