from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..auth import get_app_settings, get_current_user
from ..errors import NotFoundError, ValidationError
from ..logging_config import get_logger
from ..models import UserEntity
from ..repositories import Store, get_store
from ..schemas import ChangePasswordRequest, Envelope, ProfileUpdate, UserOut
from ..security import hash_password, verify_password
from ..settings import Settings
from ..utils import success_envelope

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)


# PUBLIC_INTERFACE
@router.get(
    "/profile",
    response_model=Envelope[UserOut],
    summary="Get My Profile",
)
def get_profile(user: UserEntity = Depends(get_current_user)) -> Dict[str, Any]:
    return success_envelope(UserOut.from_entity(user), "Profile retrieved successfully")


# PUBLIC_INTERFACE
@router.put(
    "/profile",
    response_model=Envelope[UserOut],
    summary="Update My Profile",
    description="Change first_name, last_name or avatar. At least one field is required; avatar may be null.",
)
def update_profile(
    payload: ProfileUpdate,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    changes = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k == "avatar"
    }
    if not changes:
        raise ValidationError("At least one field must be provided")
    updated = store.users.update(user["id"], changes)
    if updated is None:
        raise NotFoundError("User")
    logger.info("profile_updated", user_id=user["id"], fields=sorted(changes))
    return success_envelope(UserOut.from_entity(updated), "Profile updated successfully")


# PUBLIC_INTERFACE
@router.put(
    "/change-password",
    response_model=Envelope[Dict[str, Any]],
    summary="Change Password",
    responses={400: {"description": "Current password is wrong or the new one equals it"}},
)
def change_password(
    payload: ChangePasswordRequest,
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    if not verify_password(payload.current_password, user["password_hash"]):
        raise ValidationError("Current password is incorrect")
    if payload.new_password == payload.current_password:
        raise ValidationError("New password must be different from current password")
    store.users.update(
        user["id"],
        {"password_hash": hash_password(payload.new_password, settings.password_hash_iterations)},
    )
    logger.info("password_changed", user_id=user["id"])
    return success_envelope(None, "Password changed successfully")


# PUBLIC_INTERFACE
@router.delete(
    "/account",
    response_model=Envelope[Dict[str, Any]],
    summary="Delete My Account",
    description="Soft delete: the account is deactivated and can no longer log in.",
)
def delete_account(
    user: UserEntity = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    store.users.update(user["id"], {"is_active": False, "deleted_at": datetime.now()})
    logger.info("account_deleted", user_id=user["id"])
    return success_envelope({"id": user["id"]}, "Account deleted successfully")
