from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import structlog

from . import __version__


def _meta(extra: Dict[str, Any]) -> Dict[str, Any]:
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    meta: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "request_id": request_id,
    }
    meta.update(extra)
    return meta


# PUBLIC_INTERFACE
def success_envelope(data: Any = None, message: str = "Success", **meta: Any) -> Dict[str, Any]:
    """
    Build the standard success envelope.

    Args:
        data: Response payload.
        message: Human readable summary of the outcome.
        **meta: Extra keys merged into ``meta`` (counts, sort info, ...).

    Returns:
        Dict with keys: success, message, data, meta.
    """
    return {"success": True, "message": message, "data": data, "meta": _meta(meta)}


# PUBLIC_INTERFACE
def error_envelope(
    message: str,
    code: str,
    details: Any = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the standard error envelope used by the exception handlers."""
    meta = _meta({})
    if request_id is not None:
        meta["request_id"] = request_id
    return {
        "success": False,
        "message": message,
        "error": {"code": code, "details": details},
        "meta": meta,
    }


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    offset: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    # Ensure items is materialized as a list (in case an iterator is passed)
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
    }


def percentage(part: int, whole: int) -> int:
    """Rounded percentage of ``part`` in ``whole``; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    # half-up, not banker's rounding
    return int(part * 100 / whole + 0.5)
