from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt

from .errors import UnauthorizedError
from .logging_config import get_logger
from .settings import Settings

logger = get_logger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

_HASH_SCHEME = "pbkdf2_sha256"


# PUBLIC_INTERFACE
def parse_duration(value: str) -> timedelta:
    """
    Parse a lifetime such as '30s', '15m', '12h', '7d' or a bare number of
    seconds into a timedelta.

    Raises:
        ValueError: if the value is not in one of the supported forms.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit.lower()])


# PUBLIC_INTERFACE
def create_access_token(user_id: str, settings: Settings, extra: Optional[Dict[str, Any]] = None) -> str:
    """
    Sign a JWT for ``user_id``.

    The token carries sub, iat, exp, iss and aud claims; ``extra`` claims are
    merged in before signing.
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + parse_duration(settings.jwt_expires_in),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    logger.debug("jwt_issued", user_id=user_id)
    return token


# PUBLIC_INTERFACE
def decode_access_token(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Verify signature, expiry, issuer and audience of ``token``.

    Raises:
        UnauthorizedError: "Token has expired" or "Invalid or malformed token".
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.warning("jwt_expired")
        raise UnauthorizedError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.warning("jwt_invalid", reason=str(exc))
        raise UnauthorizedError("Invalid or malformed token") from exc


# PUBLIC_INTERFACE
def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Return the token from an 'Authorization: Bearer <token>' value, else None."""
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


# PUBLIC_INTERFACE
def hash_password(password: str, iterations: int) -> str:
    """Hash a password for storage as 'pbkdf2_sha256$<iterations>$<salt>$<hex digest>'."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"{_HASH_SCHEME}${iterations}${salt}${digest.hex()}"


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a hash produced by ``hash_password``."""
    try:
        scheme, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    try:
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), int(iterations))
        return hmac.compare_digest(digest.hex(), expected)
    except (ValueError, OverflowError, TypeError):
        # corrupt iteration count, salt or digest
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# PUBLIC_INTERFACE
def generate_reset_token() -> Tuple[str, str]:
    """Return a (raw token, sha256 hex of token) pair; only the hash is stored."""
    raw = secrets.token_hex(32)
    return raw, hash_token(raw)
