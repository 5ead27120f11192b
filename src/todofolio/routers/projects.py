from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ..logging_config import get_logger
from ..portfolio import PortfolioStore, get_portfolio_store
from ..schemas import Envelope
from ..utils import success_envelope
from .experience import extra_filters

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/projects",
    tags=["projects"],
)

_COLLECTION = "projects"


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[List[Dict[str, Any]]],
    summary="List Projects",
    description=(
        "Portfolio projects.\n\n"
        "- category / status: exact filters\n"
        "- technology: projects whose technologies match the text\n"
        "- featured: true or false"
    ),
)
def list_projects(
    request: Request,
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    technology: Optional[str] = Query(None, description="Technology name or pattern"),
    featured: Optional[bool] = Query(None),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    filters = extra_filters(request, ("category", "status", "technology", "featured"))
    if category:
        filters["category"] = category
    if status:
        filters["status"] = status
    if technology:
        filters["technologies_like"] = technology
    if featured is not None:
        filters["featured"] = "true" if featured else "false"
    items, _ = store.list(_COLLECTION, filters=filters)
    logger.info("projects_listed", count=len(items), filters=sorted(filters))
    return success_envelope(items, "Projects retrieved successfully", count=len(items), filters=filters or None)


# PUBLIC_INTERFACE
@router.get(
    "/featured",
    response_model=Envelope[List[Dict[str, Any]]],
    summary="Featured Projects",
)
def featured_projects(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    items, _ = store.list(_COLLECTION, filters={"featured": "true"})
    return success_envelope(items, "Featured projects retrieved successfully", count=len(items), type="featured")


# PUBLIC_INTERFACE
@router.get(
    "/{project_id}",
    response_model=Envelope[Dict[str, Any]],
    summary="Get Project",
    responses={404: {"description": "Project not found"}},
)
def get_project(project_id: int, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    return success_envelope(store.get(_COLLECTION, project_id), "Project retrieved successfully")
