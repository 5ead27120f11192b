"""
Portfolio content store.

Portfolio data is organised the way json-server organises a ``db.json``
document: named collections of records with integer ids. Two backends are
provided, a local JSON document and a remote json-server instance.
"""

from __future__ import annotations

import copy
import json
import os
import re
import time
from abc import ABC, abstractmethod
from importlib import resources
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

import httpx
from fastapi import Request

from .errors import NotFoundError, ServiceUnavailableError, ValidationError
from .logging_config import get_logger
from .ordering import sort_records
from .settings import Settings

logger = get_logger(__name__)

COLLECTIONS = (
    "profile",
    "contact",
    "experience",
    "projects",
    "skills",
    "education",
    "certifications",
    "testimonials",
)

# singleton records (profile, contact) live under this id
SINGLETON_ID = 1

SLOW_RESPONSE_SECONDS = 1.0

_RESOURCE_NAMES = {
    "profile": "Profile",
    "contact": "Contact information",
    "experience": "Experience",
    "projects": "Project",
    "skills": "Skill category",
    "education": "Education entry",
    "certifications": "Certification",
    "testimonials": "Testimonial",
}


def resource_name(collection: str) -> str:
    return _RESOURCE_NAMES.get(collection, "Requested resource")


def _as_query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _text_values(value: Any) -> List[str]:
    if isinstance(value, dict):
        out: List[str] = []
        for v in value.values():
            out.extend(_text_values(v))
        return out
    if isinstance(value, list):
        out = []
        for v in value:
            out.extend(_text_values(v))
        return out
    if value is None:
        return []
    return [_as_query_value(value)]


def matches_filter(record: Dict[str, Any], key: str, expected: str) -> bool:
    """
    json-server filter semantics for one query parameter.

    ``field=value`` compares the string form of the field; ``field_like=pattern``
    is a case-insensitive regex search over the field (or any element of a
    list field).
    """
    if key.endswith("_like"):
        field = key[: -len("_like")]
        try:
            pattern = re.compile(expected, re.IGNORECASE)
        except re.error:
            pattern = re.compile(re.escape(expected), re.IGNORECASE)
        return any(pattern.search(text) for text in _text_values(record.get(field)))
    value = record.get(key)
    if isinstance(value, list):
        return expected in [_as_query_value(v) for v in value]
    return _as_query_value(value) == expected


def matches_search(record: Dict[str, Any], query: str) -> bool:
    """Full-text match: ``query`` is a case-insensitive substring of any value."""
    needle = query.lower()
    return any(needle in text.lower() for text in _text_values(record))


# PUBLIC_INTERFACE
class PortfolioStore(ABC):
    """Abstract contract for portfolio collections."""

    @abstractmethod
    def list(
        self,
        collection: str,
        *,
        filters: Optional[Dict[str, str]] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        order: str = "asc",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return the matching records of a collection and the total before slicing."""

    @abstractmethod
    def get(self, collection: str, item_id: int) -> Dict[str, Any]:
        """Return one record. Raises NotFoundError if it does not exist."""

    @abstractmethod
    def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a record with the next free id and return it."""

    @abstractmethod
    def replace(self, collection: str, item_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a record entirely, keeping its id."""

    @abstractmethod
    def patch(self, collection: str, item_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the given fields into a record."""

    @abstractmethod
    def delete(self, collection: str, item_id: int) -> None:
        """Remove a record. Raises NotFoundError if it does not exist."""

    @abstractmethod
    def health(self) -> Dict[str, Any]:
        """Report backend status. Raises ServiceUnavailableError when unreachable."""

    def close(self) -> None:
        """Release backend resources."""


class JsonFileStore(PortfolioStore):
    """
    Portfolio collections held in memory and loaded from a JSON document.

    With a ``path`` the document is read from (and written back to) that
    file; without one the packaged seed document is used and changes live
    only as long as the process.
    """

    def __init__(self, path: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> None:
        self._lock = RLock()
        self._path = path or None
        if data is not None:
            self._data = copy.deepcopy(data)
        elif self._path and os.path.exists(self._path):
            with open(self._path, "r", encoding="utf-8") as fh:
                self._data = json.load(fh)
        else:
            self._data = load_seed()
        for name in COLLECTIONS:
            self._data.setdefault(name, [])

    def _collection(self, collection: str) -> List[Dict[str, Any]]:
        if collection not in self._data:
            raise NotFoundError(resource_name(collection))
        return self._data[collection]

    def _index(self, records: List[Dict[str, Any]], collection: str, item_id: int) -> int:
        for i, record in enumerate(records):
            if record.get("id") == item_id:
                return i
        raise NotFoundError(resource_name(collection))

    def _save(self, data: Dict[str, Any]) -> None:
        if not self._path:
            return
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp_path, self._path)

    def _commit(self, collection: str, records: List[Dict[str, Any]]) -> None:
        """Make ``records`` the new contents of ``collection``; memory changes only after the write succeeds."""
        data = {**self._data, collection: records}
        self._save(data)
        self._data = data

    def list(self, collection, *, filters=None, search=None, sort=None, order="asc", limit=None, offset=0):
        with self._lock:
            records = self._collection(collection)
            for key, expected in (filters or {}).items():
                records = [r for r in records if matches_filter(r, key, expected)]
            if search:
                records = [r for r in records if matches_search(r, search)]
            if sort:
                records = sort_records(records, f"-{sort}" if order == "desc" else sort)
            total = len(records)
            start = max(offset, 0)
            end = None if limit is None else start + max(limit, 0)
            return copy.deepcopy(records[start:end]), total

    def get(self, collection, item_id):
        with self._lock:
            records = self._collection(collection)
            return copy.deepcopy(records[self._index(records, collection, item_id)])

    def create(self, collection, data):
        with self._lock:
            records = list(self._collection(collection))
            record = dict(data)
            record["id"] = max((r.get("id", 0) for r in records), default=0) + 1
            records.append(record)
            self._commit(collection, records)
            logger.info("portfolio_record_created", collection=collection, id=record["id"])
            return copy.deepcopy(record)

    def replace(self, collection, item_id, data):
        with self._lock:
            records = list(self._collection(collection))
            i = self._index(records, collection, item_id)
            record = dict(data)
            record["id"] = item_id
            records[i] = record
            self._commit(collection, records)
            logger.info("portfolio_record_replaced", collection=collection, id=item_id)
            return copy.deepcopy(record)

    def patch(self, collection, item_id, data):
        with self._lock:
            records = list(self._collection(collection))
            i = self._index(records, collection, item_id)
            record = {**records[i], **data, "id": item_id}
            records[i] = record
            self._commit(collection, records)
            logger.info("portfolio_record_patched", collection=collection, id=item_id, fields=sorted(data))
            return copy.deepcopy(record)

    def delete(self, collection, item_id):
        with self._lock:
            records = list(self._collection(collection))
            del records[self._index(records, collection, item_id)]
            self._commit(collection, records)
            logger.info("portfolio_record_deleted", collection=collection, id=item_id)

    def health(self):
        with self._lock:
            return {
                "status": "healthy",
                "backend": "file",
                "path": self._path,
                "collections": {name: len(self._data.get(name, [])) for name in COLLECTIONS},
            }


class JsonServerStore(PortfolioStore):
    """
    Portfolio collections served by a json-server instance over HTTP.

    Transport failures and error statuses are mapped onto the API error
    hierarchy so routes can let them propagate.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            event_hooks={"request": [self._on_request], "response": [self._on_response]},
            transport=transport,
        )

    @staticmethod
    def _on_request(request: httpx.Request) -> None:
        request.extensions["started_at"] = time.perf_counter()
        logger.debug("json_server_request", method=request.method, url=str(request.url))

    @staticmethod
    def _on_response(response: httpx.Response) -> None:
        request = response.request
        started = request.extensions.get("started_at", time.perf_counter())
        duration = time.perf_counter() - started
        logger.debug(
            "json_server_response",
            method=request.method,
            url=str(request.url),
            status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        if duration > SLOW_RESPONSE_SECONDS:
            logger.warning("json_server_slow_response", url=str(request.url), duration_ms=round(duration * 1000, 2))

    def _request(self, method: str, path: str, resource: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.ConnectError as exc:
            logger.error("json_server_unreachable", url=self.base_url, error=str(exc))
            raise ServiceUnavailableError("JSON Server is not available") from exc
        except httpx.TimeoutException as exc:
            logger.error("json_server_timeout", url=self.base_url, error=str(exc))
            raise ServiceUnavailableError("JSON Server request timeout") from exc
        except httpx.RequestError as exc:
            logger.error("json_server_request_failed", url=self.base_url, error=str(exc))
            raise ServiceUnavailableError("JSON Server is not available") from exc

        if response.is_success:
            return response
        status = response.status_code
        logger.error("json_server_error_response", method=method, path=path, status=status)
        if status == 404:
            raise NotFoundError(resource)
        if status == 400:
            message = "Invalid request"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("message"):
                message = str(body["message"])
            raise ValidationError(message)
        if status == 500:
            raise ServiceUnavailableError("JSON Server internal error")
        raise ServiceUnavailableError(f"JSON Server error ({status})")

    def list(self, collection, *, filters=None, search=None, sort=None, order="asc", limit=None, offset=0):
        params: Dict[str, Any] = dict(filters or {})
        if search:
            params["q"] = search
        if sort:
            params["_sort"] = sort
            params["_order"] = order
        if limit is not None:
            params["_start"] = max(offset, 0)
            params["_limit"] = max(limit, 0)
        elif offset:
            params["_start"] = offset
        response = self._request("GET", f"/{collection}", resource_name(collection), params=params)
        items = response.json()
        total = int(response.headers.get("X-Total-Count", len(items)))
        return items, total

    def get(self, collection, item_id):
        return self._request("GET", f"/{collection}/{item_id}", resource_name(collection)).json()

    def create(self, collection, data):
        record = self._request("POST", f"/{collection}", resource_name(collection), json=data).json()
        logger.info("portfolio_record_created", collection=collection, id=record.get("id"))
        return record

    def replace(self, collection, item_id, data):
        body = {**data, "id": item_id}
        record = self._request("PUT", f"/{collection}/{item_id}", resource_name(collection), json=body).json()
        logger.info("portfolio_record_replaced", collection=collection, id=item_id)
        return record

    def patch(self, collection, item_id, data):
        record = self._request("PATCH", f"/{collection}/{item_id}", resource_name(collection), json=data).json()
        logger.info("portfolio_record_patched", collection=collection, id=item_id, fields=sorted(data))
        return record

    def delete(self, collection, item_id):
        self._request("DELETE", f"/{collection}/{item_id}", resource_name(collection))
        logger.info("portfolio_record_deleted", collection=collection, id=item_id)

    def health(self):
        started = time.perf_counter()
        response = self._request("GET", "/db", "Database")
        return {
            "status": "healthy",
            "backend": "json-server",
            "url": self.base_url,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "data_size": len(response.content),
        }

    def close(self) -> None:
        self._client.close()


def load_seed() -> Dict[str, Any]:
    """Load the portfolio document shipped with the package."""
    text = resources.files("todofolio").joinpath("data/portfolio.json").read_text(encoding="utf-8")
    return json.loads(text)


# PUBLIC_INTERFACE
def build_portfolio_store(settings: Settings) -> PortfolioStore:
    """
    Factory returning the configured portfolio backend.
    - file: JsonFileStore over PORTFOLIO_DATA_PATH or the packaged seed
    - json-server: JsonServerStore against JSON_SERVER_URL
    """
    if settings.portfolio_backend == "json-server":
        logger.info("portfolio_store_ready", backend="json-server", url=settings.json_server_url)
        return JsonServerStore(settings.json_server_url, settings.json_server_timeout)
    logger.info("portfolio_store_ready", backend="file", path=settings.portfolio_data_path or None)
    return JsonFileStore(settings.portfolio_data_path or None)


# PUBLIC_INTERFACE
def get_portfolio_store(request: Request) -> PortfolioStore:
    """FastAPI dependency returning the portfolio store attached to the running app."""
    return request.app.state.portfolio
