from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ..auth import get_current_user
from ..errors import ConflictError, NotFoundError, ValidationError
from ..logging_config import get_logger
from ..models import ListEntity, UserEntity
from ..ordering import LIST_SORT_FIELDS, normalize_sort
from ..repositories import ListQuery, Store, TodoQuery, get_store
from ..schemas import (
    DuplicateListRequest,
    Envelope,
    ListCreate,
    ListOut,
    ListUpdate,
    Page,
    TodoFields,
    TodoOut,
    TodoStats,
)
from ..utils import pagination_envelope, percentage, success_envelope
from .todos import TodoFilterParams, todo_filter_params, todo_page

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/lists",
    tags=["lists"],
)

_ALL = 1_000_000


def _list_out(store: Store, lst: ListEntity) -> ListOut:
    stats = store.todos.stats(lst["user_id"], lst["id"])
    return ListOut(
        **lst,  # type: ignore[arg-type]
        todo_count=stats["total"],
        completed_todo_count=stats["completed"],
        completion_percentage=percentage(stats["completed"], stats["total"]),
    )


def _owned_list(store: Store, user_id: str, list_id: str) -> ListEntity:
    lst = store.lists.get(user_id, list_id)
    if lst is None:
        raise NotFoundError("List")
    return lst


def _ensure_unique_name(store: Store, user_id: str, name: str, exclude_id: Optional[str] = None) -> None:
    if store.lists.find_by_name(user_id, name, exclude_id) is not None:
        raise ConflictError("A list with this name already exists")


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[Page[ListOut]],
    summary="List Lists",
    description=(
        "List the caller's todo lists.\n\n"
        "- q: substring search over name and description\n"
        "- is_public: filter by visibility\n"
        "- sort: sort_order, name, created_at or updated_at ('-' prefix for descending)\n"
        "- order: asc or desc (if provided, it overrides the direction in sort)"
    ),
    responses={400: {"description": "Invalid query parameters"}},
)
def list_lists(
    limit: int = Query(50, ge=0, le=1000),
    offset: int = Query(0, ge=0),
    q: Optional[str] = Query(None, description="Search text for name/description"),
    is_public: Optional[bool] = Query(None),
    sort: Optional[str] = Query(None, description="Sort field, '-' prefix for descending"),
    order: Optional[str] = Query(None, description="Override sort direction: 'asc' or 'desc'"),
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    try:
        normalized_sort = normalize_sort(sort, order, LIST_SORT_FIELDS, "sort_order")
    except ValueError as e:
        raise ValidationError(str(e)) from e
    query = ListQuery(
        limit=limit,
        offset=offset,
        search=q.strip() if q and q.strip() else None,
        is_public=is_public,
        sort=normalized_sort,
    )
    items, total = store.lists.list(user["id"], query)
    page = pagination_envelope([_list_out(store, it) for it in items], total, limit, offset)
    return success_envelope(page, "Lists retrieved successfully", sort=normalized_sort)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=Envelope[ListOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create List",
    responses={409: {"description": "A list with this name already exists"}},
)
def create_list(
    payload: ListCreate,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    _ensure_unique_name(store, user["id"], payload.name)
    created = store.lists.create(user["id"], payload)
    logger.info("list_created", list_id=created["id"], user_id=user["id"])
    return success_envelope(_list_out(store, created), "List created successfully")


# PUBLIC_INTERFACE
@router.get(
    "/{list_id}",
    response_model=Envelope[ListOut],
    summary="Get List",
    responses={404: {"description": "List not found"}},
)
def get_list(
    list_id: str,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    return success_envelope(_list_out(store, _owned_list(store, user["id"], list_id)), "List retrieved successfully")


# PUBLIC_INTERFACE
@router.put(
    "/{list_id}",
    response_model=Envelope[ListOut],
    summary="Replace List",
    description="Replace every writable field of a list; omitted fields fall back to their defaults.",
    responses={404: {"description": "List not found"}, 409: {"description": "Duplicate name"}},
)
def put_list(
    list_id: str,
    payload: ListCreate,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    _owned_list(store, user["id"], list_id)
    _ensure_unique_name(store, user["id"], payload.name, exclude_id=list_id)
    updated = store.lists.update(user["id"], list_id, payload.model_dump())
    if updated is None:
        raise NotFoundError("List")
    return success_envelope(_list_out(store, updated), "List updated successfully")


# PUBLIC_INTERFACE
@router.patch(
    "/{list_id}",
    response_model=Envelope[ListOut],
    summary="Update List",
    description="Partially update a list. Only provided fields are changed.",
    responses={404: {"description": "List not found"}, 409: {"description": "Duplicate name"}},
)
def patch_list(
    list_id: str,
    payload: ListUpdate,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    current = _owned_list(store, user["id"], list_id)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        return success_envelope(_list_out(store, current), "No changes applied")
    if "name" in changes:
        _ensure_unique_name(store, user["id"], changes["name"], exclude_id=list_id)
    updated = store.lists.update(user["id"], list_id, changes)
    if updated is None:
        raise NotFoundError("List")
    logger.info("list_updated", list_id=list_id, fields=sorted(changes))
    return success_envelope(_list_out(store, updated), "List updated successfully")


# PUBLIC_INTERFACE
@router.delete(
    "/{list_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Delete List",
    description="Delete a list together with all of its todos.",
    responses={404: {"description": "List not found"}},
)
def delete_list(
    list_id: str,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    _owned_list(store, user["id"], list_id)
    deleted_todos = store.todos.delete_by_list(user["id"], list_id)
    store.lists.delete(user["id"], list_id)
    logger.info("list_deleted", list_id=list_id, deleted_todos=deleted_todos, user_id=user["id"])
    return success_envelope(
        {"id": list_id, "deleted_todos": deleted_todos},
        "List and associated todos deleted successfully",
    )


# PUBLIC_INTERFACE
@router.get(
    "/{list_id}/stats",
    response_model=Envelope[TodoStats],
    summary="List Statistics",
    description="Counts by completion, priority and overdue state for the todos of one list.",
)
def list_stats(
    list_id: str,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    lst = _owned_list(store, user["id"], list_id)
    stats = store.todos.stats(user["id"], lst["id"])
    stats["completion_percentage"] = percentage(stats["completed"], stats["total"])
    return success_envelope(TodoStats(**stats), "List statistics retrieved successfully", list_id=lst["id"])


# PUBLIC_INTERFACE
@router.post(
    "/{list_id}/duplicate",
    response_model=Envelope[ListOut],
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate List",
    description=(
        "Copy a list and its todos. The copy is private, its todos start uncompleted, "
        "and its name defaults to '<name> (Copy)'."
    ),
    responses={404: {"description": "List not found"}, 409: {"description": "Duplicate name"}},
)
def duplicate_list(
    list_id: str,
    payload: Optional[DuplicateListRequest] = Body(None),
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    source = _owned_list(store, user["id"], list_id)
    name = payload.name if payload is not None and payload.name else f"{source['name'][:93]} (Copy)"
    _ensure_unique_name(store, user["id"], name)

    duplicate = store.lists.create(
        user["id"],
        ListCreate(name=name, description=source["description"], color=source["color"], is_public=False),
    )
    todos, _ = store.todos.list(user["id"], TodoQuery(limit=_ALL, list_id=list_id, sort="sort_order"))
    for todo in todos:
        store.todos.create(
            user["id"],
            duplicate["id"],
            TodoFields(
                title=todo["title"],
                description=todo["description"],
                completed=False,
                priority=todo["priority"],
                due_date=todo["due_date"],
                tags=todo["tags"],
                estimated_hours=todo["estimated_hours"],
            ),
        )
    logger.info("list_duplicated", source_id=list_id, list_id=duplicate["id"], todos=len(todos))
    return success_envelope(_list_out(store, duplicate), "List duplicated successfully")


# PUBLIC_INTERFACE
@router.patch(
    "/{list_id}/share",
    response_model=Envelope[ListOut],
    summary="Toggle Sharing",
    description="Flip the list between public and private.",
)
def toggle_share(
    list_id: str,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    lst = _owned_list(store, user["id"], list_id)
    updated = store.lists.update(user["id"], list_id, {"is_public": not lst["is_public"]})
    if updated is None:
        raise NotFoundError("List")
    message = "List is now public" if updated["is_public"] else "List is now private"
    return success_envelope(_list_out(store, updated), message)


# PUBLIC_INTERFACE
@router.get(
    "/{list_id}/todos",
    response_model=Envelope[Page[TodoOut]],
    summary="List Todos of a List",
    description="Todos of one list with the same filters as /api/todos; default sort is sort_order ascending.",
)
def list_todos_of_list(
    list_id: str,
    params: TodoFilterParams = Depends(todo_filter_params),
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    _owned_list(store, user["id"], list_id)
    query = params.to_query("sort_order", list_id=list_id)
    page = todo_page(store, user["id"], query)
    return success_envelope(page, "Todos retrieved successfully", sort=query.sort, list_id=list_id)
