"""
API request and response models for Roster REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in directory/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

Separation of concerns: directory/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.codes import CODE_LENGTH

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is proven by the code round trip, not by the regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
# [0-9] rather than \d: \d also matches non-ASCII digits.
CODE_PATTERN = rf"^[0-9]{{{CODE_LENGTH}}}$"
PHONE_PATTERN = r"^\+?[0-9][0-9 \-]{5,18}[0-9]$"
URL_PATTERN = r"^https?://\S+$"


def _normalize_email(value: Any) -> Any:
    """Trim and lowercase before the pattern check so "A@B.io " and "a@b.io" are one identity."""
    return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class StatusEnum(str, Enum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


class UserSortEnum(str, Enum):
    created_at = "created_at"
    updated_at = "updated_at"
    full_name = "full_name"


class RoleSortEnum(str, Enum):
    created_at = "created_at"
    updated_at = "updated_at"
    name = "name"


class SortOrderEnum(str, Enum):
    asc = "asc"
    desc = "desc"


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class ApiResponse(BaseModel):
    """Success envelope: {"success": true, "message": ..., "data": ...}."""

    success: bool = True
    message: str = "OK"
    data: Optional[Any] = None


def ok(data: Any = None, message: str = "OK") -> dict:
    """Wrap a route result in the success envelope."""
    return ApiResponse(message=message, data=data).model_dump()


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
    cache: str = "ok"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SendCodeRequest(BaseModel):
    """Request body for POST /api/v1/auth/send-code."""

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class VerifyCodeRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-code."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    code: str = Field(pattern=CODE_PATTERN, description="6-digit verification code")

    normalize_email = field_validator("email", mode="before")(_normalize_email)


# ---------------------------------------------------------------------------
# Users -- request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    full_name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    avatar_url: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)
    status: StatusEnum = StatusEnum.active

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    avatar_url: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)


class UserStatusUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}/status."""

    status: StatusEnum


# ---------------------------------------------------------------------------
# Roles -- request models
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    """Request body for POST /api/v1/roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permissions: dict[str, list[str]] = Field(default_factory=dict)


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/roles/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permissions: Optional[dict[str, list[str]]] = None


# ---------------------------------------------------------------------------
# Settings -- request models
# ---------------------------------------------------------------------------


class SettingUpdate(BaseModel):
    """Request body for PUT /api/v1/settings/{key}.

    value is a small object tagging its scalar type, e.g. {"text": "Roster"}.
    """

    value: Optional[dict[str, Any]] = None
    description: Optional[str] = Field(default=None, max_length=1000)
