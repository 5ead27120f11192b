from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ..errors import ValidationError
from ..logging_config import get_logger
from ..portfolio import SINGLETON_ID, PortfolioStore, get_portfolio_store
from ..schemas import Envelope, ProfileIn
from ..utils import success_envelope

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/profile",
    tags=["profile"],
)

contact_router = APIRouter(
    prefix="/api/v1/contact",
    tags=["contact"],
)

SUMMARY_FIELDS = (
    "id",
    "name",
    "title",
    "email",
    "location",
    "availability",
    "social_links",
    "highlights",
    "remote_work",
    "relocation",
)

CONTACT_FIELDS = (
    "name",
    "email",
    "phone",
    "location",
    "timezone",
    "social_links",
    "working_hours",
    "response_time",
    "preferred_contact_method",
)


def _require_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in data.items() if k != "id"}
    if not changes:
        raise ValidationError("At least one field must be provided")
    return changes


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[Dict[str, Any]],
    summary="Get Profile",
    description="The complete portfolio profile.",
    responses={503: {"description": "Portfolio store unavailable"}},
)
def get_profile(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    profile = store.get("profile", SINGLETON_ID)
    logger.info("profile_fetched", profile_id=profile.get("id"))
    return success_envelope(profile, "Profile retrieved successfully")


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=Envelope[Dict[str, Any]],
    summary="Replace Profile",
    description="Replace the whole profile document. The id is always 1.",
)
def put_profile(payload: ProfileIn, store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    data = payload.model_dump(mode="json")
    data.pop("id", None)
    profile = store.replace("profile", SINGLETON_ID, data)
    return success_envelope(profile, "Profile updated successfully", fields_updated=sorted(data))


# PUBLIC_INTERFACE
@router.patch(
    "",
    response_model=Envelope[Dict[str, Any]],
    summary="Update Profile",
    description="Merge the given fields into the profile.",
)
def patch_profile(
    payload: Dict[str, Any] = Body(..., examples=[{"availability": "Open to consulting"}]),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    changes = _require_fields(payload)
    profile = store.patch("profile", SINGLETON_ID, changes)
    return success_envelope(profile, "Profile updated successfully", fields_updated=sorted(changes))


# PUBLIC_INTERFACE
@router.get(
    "/summary",
    response_model=Envelope[Dict[str, Any]],
    summary="Profile Summary",
    description="The headline fields of the profile.",
)
def get_profile_summary(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    profile = store.get("profile", SINGLETON_ID)
    summary = {k: profile.get(k) for k in SUMMARY_FIELDS}
    return success_envelope(summary, "Profile summary retrieved successfully", type="summary")


# PUBLIC_INTERFACE
@router.get(
    "/contact",
    response_model=Envelope[Dict[str, Any]],
    summary="Profile Contact Details",
    description="The contact related fields of the profile.",
)
def get_profile_contact(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    profile = store.get("profile", SINGLETON_ID)
    contact = {k: profile.get(k) for k in CONTACT_FIELDS}
    return success_envelope(contact, "Contact information retrieved successfully", type="contact")


# PUBLIC_INTERFACE
@contact_router.get(
    "",
    response_model=Envelope[Dict[str, Any]],
    summary="Get Contact Information",
)
def get_contact(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    return success_envelope(store.get("contact", SINGLETON_ID), "Contact information retrieved successfully")


# PUBLIC_INTERFACE
@contact_router.patch(
    "",
    response_model=Envelope[Dict[str, Any]],
    summary="Update Contact Information",
)
def patch_contact(
    payload: Dict[str, Any] = Body(..., examples=[{"response_time": "Within 48 hours"}]),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    changes = _require_fields(payload)
    contact = store.patch("contact", SINGLETON_ID, changes)
    logger.info("contact_updated", fields=sorted(changes))
    return success_envelope(contact, "Contact information updated successfully", fields_updated=sorted(changes))
