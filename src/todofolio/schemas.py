from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")

Priority = Literal["low", "medium", "high"]

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
_NAME_RE = re.compile(r"^[A-Za-z\s]+$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&]).{8,}$")
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_TAG_RE = re.compile(r"^[A-Za-z0-9\s-]+$")

MAX_TAGS = 10


def coerce_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Normalize due_date input (or a due-range query value) into a naive local datetime.
    - If value is a string, attempt to parse via datetime.fromisoformat; if time is missing, set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - Offset-aware datetimes are converted to local time and made naive.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        # Promote a date to a datetime at midnight
        parsed = datetime(value.year, value.month, value.day, 0, 0, 0)
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(
                    "Invalid due_date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e
            parsed = datetime(d.year, d.month, d.day, 0, 0, 0)
    else:
        raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _check_password(v: str) -> str:
    if not _PASSWORD_RE.match(v):
        raise ValueError(
            "Password must contain at least 8 characters with uppercase, lowercase, number and special character"
        )
    return v


def _check_person_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (2 <= len(s) <= 50):
        raise ValueError("name length must be between 2 and 50 characters")
    if not _NAME_RE.match(s):
        raise ValueError("name can only contain letters and spaces")
    return s


def _check_avatar(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not _URL_RE.match(s):
        raise ValueError("Avatar must be a valid URL")
    return s


def _normalize_tags(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    seen: List[str] = []
    for raw in v:
        tag = raw.strip()
        if not tag:
            continue
        if len(tag) > 50:
            raise ValueError("Tag cannot exceed 50 characters")
        if not _TAG_RE.match(tag):
            raise ValueError("Tags can only contain letters, numbers, spaces, and hyphens")
        if tag not in seen:
            seen.append(tag)
    if len(seen) > MAX_TAGS:
        raise ValueError(f"A todo can have at most {MAX_TAGS} tags")
    return seen


def _check_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


def _check_list_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 100):
        raise ValueError("name length must be between 1 and 100 characters")
    return s


def _check_color(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not _COLOR_RE.match(v):
        raise ValueError("Color must be a valid hex color code (e.g., #1976d2)")
    return v


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ResponseMeta(BaseModel):
    """Metadata attached to every response; endpoints may add extra keys."""

    model_config = ConfigDict(extra="allow")

    timestamp: str = Field(..., description="ISO8601 UTC time the response was built")
    version: str = Field(..., description="API version")
    request_id: Optional[str] = Field(default=None, description="Correlation id, echoed in X-Request-ID")


# PUBLIC_INTERFACE
class Envelope(BaseModel, Generic[T]):
    """Uniform response envelope: {success, message, data, meta}."""

    success: bool = Field(..., description="True for successful responses")
    message: str = Field(..., description="Human readable outcome")
    data: Optional[T] = Field(default=None, description="Response payload")
    meta: ResponseMeta


# PUBLIC_INTERFACE
class Page(BaseModel, Generic[T]):
    """
    Envelope for paginated list data.
    """

    items: List[T] = Field(..., description="Items of the current page")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


# ---------------------------------------------------------------------------
# Users and authentication
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class RegisterRequest(BaseModel):
    """
    Schema for registering a new account.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "john_doe",
                "email": "john.doe@example.com",
                "password": "Secret@123",
                "confirm_password": "Secret@123",
                "first_name": "John",
                "last_name": "Doe",
            }
        }
    )

    username: str = Field(..., min_length=3, max_length=30, description="Letters, digits and underscores")
    email: str = Field(..., description="Email address; stored lower-cased")
    password: str = Field(..., description="At least 8 chars with upper, lower, digit and special character")
    confirm_password: str = Field(..., description="Must equal password")
    first_name: str = Field(..., description="2..50 letters and spaces")
    last_name: str = Field(..., description="2..50 letters and spaces")
    avatar: Optional[str] = Field(default=None, description="Avatar image URL")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        s = v.strip()
        if not (3 <= len(s) <= 30) or not _USERNAME_RE.match(s):
            raise ValueError("Username must be 3-30 characters of letters, numbers, and underscores")
        return s

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        s = v.strip().lower()
        if not _EMAIL_RE.match(s):
            raise ValueError("Please provide a valid email address")
        return s

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return _check_person_name(v)  # type: ignore[return-value]

    @field_validator("avatar")
    @classmethod
    def validate_avatar(cls, v: Optional[str]) -> Optional[str]:
        return _check_avatar(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    """Credentials for logging in with either the username or the email."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"username_or_email": "john_doe", "password": "Secret@123"}}
    )

    username_or_email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# PUBLIC_INTERFACE
class UserOut(BaseModel):
    """
    Public view of a user account.
    """

    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    avatar: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, user: Dict[str, Any]) -> "UserOut":
        return cls.model_validate({**user, "full_name": f"{user['first_name']} {user['last_name']}"})


class AuthPayload(BaseModel):
    user: UserOut
    token: str


class TokenPayload(BaseModel):
    token: str
    user: Optional[UserOut] = None


# PUBLIC_INTERFACE
class ProfileUpdate(BaseModel):
    """Partial update of the caller's own profile; at least one field is required."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: Optional[str]) -> Optional[str]:
        return _check_person_name(v)

    @field_validator("avatar")
    @classmethod
    def validate_avatar(cls, v: Optional[str]) -> Optional[str]:
        return _check_avatar(v)

    @model_validator(mode="after")
    def not_empty(self) -> "ProfileUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_new_password:
            raise ValueError("New passwords do not match")
        return self


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        s = v.strip().lower()
        if not _EMAIL_RE.match(s):
            raise ValueError("Please provide a valid email address")
        return s


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str
    confirm_new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password != self.confirm_new_password:
            raise ValueError("Passwords do not match")
        return self


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class ListCreate(BaseModel):
    """
    Schema for creating (or fully replacing) a todo list.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Work Tasks",
                "description": "Professional work-related tasks",
                "color": "#1976d2",
                "is_public": False,
            }
        }
    )

    name: str = Field(..., min_length=1, max_length=100, description="List name, unique per user")
    description: str = Field(default="", max_length=500)
    color: str = Field(default="#1976d2", description="Hex color code")
    is_public: bool = Field(default=False)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_list_name(v)  # type: ignore[return-value]

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        return _check_color(v)  # type: ignore[return-value]


# PUBLIC_INTERFACE
class ListUpdate(BaseModel):
    """
    Schema for partially updating a list. Only provided fields are changed.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = None
    is_public: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _check_list_name(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _check_color(v)


class ListOut(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    color: str
    is_public: bool
    sort_order: int
    todo_count: int = 0
    completed_todo_count: int = 0
    completion_percentage: int = 0
    created_at: datetime
    updated_at: datetime


class DuplicateListRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _check_list_name(v)


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class TodoFields(BaseModel):
    """
    Writable fields of a todo. Used as the body of a full replace (PUT).
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Complete quarterly report",
                "description": "Finish Q4 performance analysis",
                "completed": False,
                "priority": "high",
                "due_date": "2025-02-01",
                "tags": ["report", "quarterly"],
                "estimated_hours": 4,
            }
        }
    )

    title: str = Field(..., description="Short title for the todo item", min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000, description="Detailed description")
    completed: bool = Field(default=False, description="Completion status flag")
    priority: Priority = Field(default="medium", description="low, medium or high")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )
    tags: List[str] = Field(default_factory=list, description="Up to 10 tags")
    estimated_hours: Optional[float] = Field(default=None, ge=0, le=1000)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _check_title(v)  # type: ignore[return-value]

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        """
        Normalize due_date from str/date/datetime to datetime.
        """
        return coerce_due_date(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        return _normalize_tags(v)  # type: ignore[return-value]


# PUBLIC_INTERFACE
class TodoCreate(TodoFields):
    """
    Schema for creating a new todo inside one of the caller's lists.
    """

    list_id: str = Field(..., min_length=1, description="Id of the owning list")


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing todo.
    All fields are optional; only provided fields will be updated. An explicit
    null due_date or estimated_hours clears the value.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"title": "Complete Q4 report", "completed": True, "priority": "medium"}}
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0, le=1000)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _check_title(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return coerce_due_date(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _normalize_tags(v)

    def changes(self) -> Dict[str, Any]:
        """Fields the client actually sent; nulls are kept only where clearing is allowed."""
        sent = self.model_dump(include=self.model_fields_set)
        return {
            k: v for k, v in sent.items()
            if v is not None or k in {"due_date", "estimated_hours"}
        }


class ToggleRequest(BaseModel):
    completed: Optional[bool] = Field(default=None, description="Target state; omitted flips the current one")


class ReorderRequest(BaseModel):
    new_order: int = Field(..., ge=1, description="New 1-based position within the list")


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a todo item.
    """

    id: str
    user_id: str
    list_id: str
    title: str
    description: str
    completed: bool
    priority: Priority
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    estimated_hours: Optional[float] = None
    sort_order: int
    is_overdue: bool = False
    created_at: datetime
    updated_at: datetime


class TodoStats(BaseModel):
    total: int = 0
    completed: int = 0
    pending: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
    overdue: int = 0
    completion_percentage: int = 0


class UserTodoStats(TodoStats):
    recently_completed: int = 0
    total_estimated_hours: float = 0


# ---------------------------------------------------------------------------
# Portfolio
# ---------------------------------------------------------------------------


class SocialLinks(BaseModel):
    model_config = ConfigDict(extra="allow")

    linkedin: Optional[str] = None
    github: Optional[str] = None
    twitter: Optional[str] = None
    website: Optional[str] = None


# PUBLIC_INTERFACE
class ProfileIn(BaseModel):
    """
    Full profile document (PUT). Unknown keys are kept as-is.
    """

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "name": "Sri Ramanujam",
                "title": "Solution Architect",
                "email": "sri@example.com",
                "location": "San Francisco, CA, USA",
                "remote_work": True,
            }
        },
    )

    name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    email: str
    tagline: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    timezone: Optional[str] = None
    availability: Optional[str] = None
    summary: Optional[str] = None
    avatar: Optional[str] = None
    resume: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    highlights: List[str] = Field(default_factory=list)
    working_hours: Optional[str] = None
    response_time: Optional[str] = None
    preferred_contact_method: Optional[Literal["email", "phone", "linkedin"]] = None
    remote_work: Optional[bool] = None
    relocation: Optional[bool] = None
    languages: List[Any] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        s = v.strip()
        if not _EMAIL_RE.match(s):
            raise ValueError("Please provide a valid email address")
        return s


# PUBLIC_INTERFACE
class ExperienceIn(BaseModel):
    """
    A work experience entry (POST/PUT). Unknown keys are kept as-is.
    """

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "company": "Tech Innovations Inc.",
                "position": "Solution Architect",
                "start_date": "2020-01-01",
                "end_date": None,
                "current": True,
                "technologies": ["Python", "AWS"],
            }
        },
    )

    company: str = Field(..., min_length=1)
    position: str = Field(..., min_length=1)
    start_date: str = Field(..., description="ISO8601 date")
    end_date: Optional[str] = None
    current: bool = False
    location: Optional[str] = None
    description: Optional[str] = None
    achievements: List[str] = Field(default_factory=list)
    technologies: List[str] = Field(default_factory=list)

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_dates(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            date.fromisoformat(v.strip()[:10])
        except ValueError as e:
            raise ValueError("Dates must be ISO8601 (YYYY-MM-DD)") from e
        return v.strip()
