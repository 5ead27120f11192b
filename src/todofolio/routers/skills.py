from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ..errors import ValidationError
from ..portfolio import PortfolioStore, get_portfolio_store
from ..schemas import Envelope
from ..utils import success_envelope
from .experience import extra_filters

router = APIRouter(
    prefix="/api/v1/skills",
    tags=["skills"],
)

_COLLECTION = "skills"


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[List[Dict[str, Any]]],
    summary="List Skill Categories",
    description="Skill categories, each holding its skills. Filter with category=<name>.",
)
def list_skills(
    request: Request,
    category: Optional[str] = Query(None),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    filters = extra_filters(request, ("category",))
    if category:
        filters["category"] = category
    items, _ = store.list(_COLLECTION, filters=filters)
    return success_envelope(items, "Skills retrieved successfully", count=len(items), filters=filters or None)


# PUBLIC_INTERFACE
@router.get(
    "/search",
    response_model=Envelope[List[Dict[str, Any]]],
    summary="Search Skills",
    responses={400: {"description": "Search query is required"}},
)
def search_skills(
    q: Optional[str] = Query(None, description="Search text"),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    if not q or not q.strip():
        raise ValidationError("Search query is required")
    items, _ = store.list(_COLLECTION, search=q.strip())
    return success_envelope(items, f"Found {len(items)} skill categories", query=q.strip(), count=len(items))


# PUBLIC_INTERFACE
@router.get(
    "/{skill_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Get Skill Category",
    responses={404: {"description": "Skill category not found"}},
)
def get_skill(skill_id: int, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    category = store.get(_COLLECTION, skill_id)
    return success_envelope(
        category,
        "Skill category retrieved successfully",
        skills_count=len(category.get("skills") or []),
    )
