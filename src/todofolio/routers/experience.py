from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status

from ..errors import ValidationError
from ..logging_config import get_logger
from ..portfolio import PortfolioStore, get_portfolio_store
from ..schemas import Envelope, ExperienceIn
from ..utils import success_envelope

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/experience",
    tags=["experience"],
)

_COLLECTION = "experience"
_DEFAULT_SORT = "start_date"


def extra_filters(request: Request, known: Iterable[str]) -> Dict[str, str]:
    """Query parameters not consumed by the endpoint, passed on as json-server style filters."""
    reserved = set(known)
    return {k: v for k, v in request.query_params.items() if k not in reserved}


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[List[Dict[str, Any]]],
    summary="List Experience",
    description=(
        "Work experience entries, most recent first by default.\n\n"
        "- sort / order: any field, asc or desc (default start_date desc)\n"
        "- limit / offset: pagination\n"
        "- any other parameter filters by equality (e.g. current=true); '<field>_like' matches a pattern"
    ),
)
def list_experience(
    request: Request,
    sort: Optional[str] = Query(None, description="Field to sort by"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(None, ge=0, le=1000),
    offset: int = Query(0, ge=0),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    filters = extra_filters(request, ("sort", "order", "limit", "offset"))
    field = sort or _DEFAULT_SORT
    direction = order if sort else "desc"
    items, total = store.list(_COLLECTION, filters=filters, sort=field, order=direction, limit=limit, offset=offset)
    logger.info("experience_listed", count=len(items), filters=sorted(filters))
    return success_envelope(
        items,
        "Work experience retrieved successfully",
        count=len(items),
        total=total,
        sort={"field": field, "order": direction},
        filters=filters or None,
    )


# PUBLIC_INTERFACE
@router.get(
    "/search",
    response_model=Envelope[List[Dict[str, Any]]],
    summary="Search Experience",
    description="Full-text search across every field of the experience entries.",
    responses={400: {"description": "Search query is required"}},
)
def search_experience(
    q: Optional[str] = Query(None, description="Search text"),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    if not q or not q.strip():
        raise ValidationError("Search query is required")
    items, _ = store.list(_COLLECTION, search=q.strip())
    return success_envelope(items, f"Found {len(items)} experience entries", query=q.strip(), count=len(items))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=Envelope[Dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
    summary="Create Experience",
)
def create_experience(payload: ExperienceIn, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    data = payload.model_dump(mode="json")
    data.pop("id", None)
    created = store.create(_COLLECTION, data)
    return success_envelope(created, "Work experience created successfully", action="created")


# PUBLIC_INTERFACE
@router.get(
    "/{experience_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Get Experience",
    responses={404: {"description": "Experience not found"}},
)
def get_experience(experience_id: int, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    return success_envelope(store.get(_COLLECTION, experience_id), "Work experience retrieved successfully")


# PUBLIC_INTERFACE
@router.put(
    "/{experience_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Replace Experience",
)
def put_experience(
    experience_id: int,
    payload: ExperienceIn,
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    data = payload.model_dump(mode="json")
    data.pop("id", None)
    updated = store.replace(_COLLECTION, experience_id, data)
    return success_envelope(updated, "Work experience updated successfully", action="updated")


# PUBLIC_INTERFACE
@router.patch(
    "/{experience_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Update Experience",
)
def patch_experience(
    experience_id: int,
    payload: Dict[str, Any] = Body(..., examples=[{"current": False, "end_date": "2024-06-30"}]),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    changes = {k: v for k, v in payload.items() if k != "id"}
    if not changes:
        raise ValidationError("At least one field must be provided")
    updated = store.patch(_COLLECTION, experience_id, changes)
    return success_envelope(
        updated,
        "Work experience updated successfully",
        fields_updated=sorted(changes),
        action="patched",
    )


# PUBLIC_INTERFACE
@router.delete(
    "/{experience_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Delete Experience",
)
def delete_experience(experience_id: int, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    store.delete(_COLLECTION, experience_id)
    return success_envelope({"id": experience_id}, "Work experience deleted successfully", action="deleted")
