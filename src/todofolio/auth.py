from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import LockedError, UnauthorizedError
from .logging_config import get_logger
from .models import UserEntity, is_locked
from .repositories import Store, get_store
from .security import decode_access_token, extract_bearer_token
from .settings import Settings

logger = get_logger(__name__)

# Registers the bearer scheme in OpenAPI; the header itself is parsed strictly below.
_bearer = HTTPBearer(auto_error=False)


# PUBLIC_INTERFACE
def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the running app was built with."""
    return request.app.state.settings


# PUBLIC_INTERFACE
def get_current_user(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> UserEntity:
    """
    Resolve the authenticated user from an 'Authorization: Bearer <token>' header.

    Raises:
        UnauthorizedError: missing, expired or invalid token; unknown or inactive user.
        LockedError: the account is locked after too many failed logins.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise UnauthorizedError("No token provided")

    claims = decode_access_token(token, settings)
    user = store.users.get(claims["sub"])
    if user is None:
        logger.warning("auth_unknown_user", user_id=claims["sub"])
        raise UnauthorizedError("User not found")
    if not user["is_active"]:
        raise UnauthorizedError("User account is inactive")
    if is_locked(user, datetime.now()):
        raise LockedError()

    request.state.user_id = user["id"]
    return user
