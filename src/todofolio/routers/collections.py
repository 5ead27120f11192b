"""
Read-only routers for the simple portfolio collections.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from ..portfolio import PortfolioStore, get_portfolio_store, resource_name
from ..schemas import Envelope
from ..utils import success_envelope


# PUBLIC_INTERFACE
def build_collection_router(collection: str, default_sort: str, label: str) -> APIRouter:
    """
    Build GET /api/v1/<collection> (newest first by ``default_sort``) and
    GET /api/v1/<collection>/{item_id}.
    """
    router = APIRouter(prefix=f"/api/v1/{collection}", tags=[collection])
    singular = resource_name(collection)

    @router.get(
        "",
        response_model=Envelope[List[Dict[str, Any]]],
        summary=f"List {label}",
        name=f"list_{collection}",
    )
    def list_items(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
        items, _ = store.list(collection, sort=default_sort, order="desc")
        return success_envelope(
            items,
            f"{label} retrieved successfully",
            count=len(items),
            sort={"field": default_sort, "order": "desc"},
        )

    @router.get(
        "/{item_id}",
        response_model=Envelope[Dict[str, Any]],
        summary=f"Get {singular}",
        name=f"get_{collection}",
        responses={404: {"description": f"{singular} not found"}},
    )
    def get_item(item_id: int, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
        return success_envelope(store.get(collection, item_id), f"{singular} retrieved successfully")

    return router


education_router = build_collection_router("education", "graduation_year", "Education entries")
certifications_router = build_collection_router("certifications", "issue_date", "Certifications")
testimonials_router = build_collection_router("testimonials", "date", "Testimonials")
