"""
Exception hierarchy for API failures.

Every error carries an HTTP status code and a machine readable ``code``;
the handlers registered in ``main`` render them into the standard error
envelope.
"""

from __future__ import annotations

from typing import Any, Optional


class APIError(Exception):
    """Base class for all errors surfaced to API clients."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(APIError):
    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(APIError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized access", details: Any = None) -> None:
        super().__init__(message, details=details)


class ForbiddenError(APIError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden access") -> None:
        super().__init__(message)


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(APIError):
    status_code = 409
    code = "CONFLICT"


class LockedError(APIError):
    status_code = 423
    code = "ACCOUNT_LOCKED"

    def __init__(
        self,
        message: str = "Account is temporarily locked due to too many failed login attempts",
    ) -> None:
        super().__init__(message)


class ServiceUnavailableError(APIError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(message)
