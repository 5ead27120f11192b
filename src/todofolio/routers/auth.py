from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from ..auth import get_app_settings, get_current_user
from ..errors import ConflictError, LockedError, UnauthorizedError, ValidationError
from ..logging_config import get_logger
from ..models import UserEntity, is_locked
from ..repositories import Store, get_store
from ..schemas import (
    AuthPayload,
    Envelope,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPayload,
    UserOut,
)
from ..security import create_access_token, generate_reset_token, hash_password, hash_token, verify_password
from ..settings import Settings
from ..utils import success_envelope

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def _record_failed_login(store: Store, user: UserEntity, settings: Settings, now: datetime) -> None:
    """
    Count a failed password check; lock the account once the limit is reached.
    A lock that has already expired restarts the count at 1.
    """
    if user["lock_until"] is not None and user["lock_until"] <= now:
        store.users.update(user["id"], {"login_attempts": 1, "lock_until": None})
        return
    attempts = user["login_attempts"] + 1
    changes: Dict[str, Any] = {"login_attempts": attempts}
    if attempts >= settings.max_login_attempts and not is_locked(user, now):
        changes["lock_until"] = now + timedelta(minutes=settings.lockout_minutes)
        logger.warning("account_locked", user_id=user["id"], attempts=attempts)
    store.users.update(user["id"], changes)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=Envelope[AuthPayload],
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an account and return it with a signed access token.",
    responses={409: {"description": "Email or username already taken"}},
)
def register(
    payload: RegisterRequest,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    if store.users.get_by_email(payload.email) is not None:
        raise ConflictError("User with this email already exists")
    if store.users.get_by_username(payload.username) is not None:
        raise ConflictError("Username is already taken")

    user = store.users.create(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password, settings.password_hash_iterations),
        first_name=payload.first_name,
        last_name=payload.last_name,
        avatar=payload.avatar,
    )
    logger.info("user_registered", user_id=user["id"], username=user["username"])
    token = create_access_token(user["id"], settings)
    return success_envelope(AuthPayload(user=UserOut.from_entity(user), token=token), "User registered successfully")


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=Envelope[AuthPayload],
    summary="Login",
    description=(
        "Authenticate with a username or an email and a password.\n\n"
        "Repeated failures lock the account for a while (423)."
    ),
    responses={
        401: {"description": "Invalid credentials or inactive account"},
        423: {"description": "Account locked"},
    },
)
def login(
    payload: LoginRequest,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    now = datetime.now()
    user = store.users.find_by_login(payload.username_or_email)
    if user is None or user["deleted_at"] is not None:
        logger.info("login_failed", reason="unknown_user")
        raise UnauthorizedError("Invalid credentials")
    if is_locked(user, now):
        raise LockedError()
    if not user["is_active"]:
        raise UnauthorizedError("Account is deactivated")
    if not verify_password(payload.password, user["password_hash"]):
        _record_failed_login(store, user, settings, now)
        logger.info("login_failed", reason="bad_password", user_id=user["id"])
        raise UnauthorizedError("Invalid credentials")

    user = store.users.update(user["id"], {"login_attempts": 0, "lock_until": None, "last_login": now})
    if user is None:
        raise UnauthorizedError("User not found")
    logger.info("login_succeeded", user_id=user["id"])
    token = create_access_token(user["id"], settings)
    return success_envelope(AuthPayload(user=UserOut.from_entity(user), token=token), "Login successful")


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=Envelope[Dict[str, Any]],
    summary="Logout",
    description="Acknowledge a logout. Tokens are stateless; the client discards its copy.",
)
def logout(user: UserEntity = Depends(get_current_user)) -> Dict[str, Any]:
    logger.info("logout", user_id=user["id"])
    return success_envelope(None, "Logout successful")


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=Envelope[TokenPayload],
    summary="Refresh Token",
    description="Issue a fresh access token for the authenticated user.",
)
def refresh(
    user: UserEntity = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    token = create_access_token(user["id"], settings)
    return success_envelope(TokenPayload(token=token, user=UserOut.from_entity(user)), "Token refreshed successfully")


# PUBLIC_INTERFACE
@router.post(
    "/forgot-password",
    response_model=Envelope[Dict[str, Any]],
    summary="Forgot Password",
    description=(
        "Start a password reset. The response is the same whether or not the email is known. "
        "In development the reset token is returned in data.reset_token."
    ),
)
def forgot_password(
    payload: ForgotPasswordRequest,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    message = "If an account with that email exists, a password reset link has been sent"
    user = store.users.get_by_email(payload.email)
    if user is None or not user["is_active"]:
        return success_envelope(None, message)

    raw, hashed = generate_reset_token()
    expires = datetime.now() + timedelta(minutes=settings.password_reset_ttl_minutes)
    store.users.update(user["id"], {"reset_token_hash": hashed, "reset_expires": expires})
    logger.info("password_reset_requested", user_id=user["id"])
    data = {"reset_token": raw, "expires_at": expires.isoformat()} if settings.is_development else None
    return success_envelope(data, message)


# PUBLIC_INTERFACE
@router.post(
    "/reset-password",
    response_model=Envelope[TokenPayload],
    summary="Reset Password",
    description="Set a new password with a reset token; returns a fresh access token.",
    responses={400: {"description": "Invalid or expired reset token"}},
)
def reset_password(
    payload: ResetPasswordRequest,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    user = store.users.find_by_reset_token(hash_token(payload.token))
    now = datetime.now()
    if user is None or user["reset_expires"] is None or user["reset_expires"] < now:
        raise ValidationError("Invalid or expired reset token")

    user = store.users.update(
        user["id"],
        {
            "password_hash": hash_password(payload.new_password, settings.password_hash_iterations),
            "reset_token_hash": None,
            "reset_expires": None,
            "login_attempts": 0,
            "lock_until": None,
        },
    )
    if user is None:
        raise UnauthorizedError("User not found")
    logger.info("password_reset", user_id=user["id"])
    token = create_access_token(user["id"], settings)
    return success_envelope(TokenPayload(token=token, user=UserOut.from_entity(user)), "Password reset successful")
