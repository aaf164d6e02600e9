"""
directory/models.py -- Domain dataclasses for the Roster credential store.

Pattern: Data class (pure data container, zero logic). DirectoryStore and the
services do the work; these own the domain shape.

Identity note: user_id (the subject id) and email (the identity address) are
two distinct, independently indexed fields. The subject id is generated once
and never changes; the address is the external login handle.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field

PROFILE_STATUSES = ("active", "inactive", "suspended")
LOGIN_STATUSES = ("success", "failed", "blocked")


@dataclass
class Profile:
    """One registered person."""

    user_id: str  # subject id, UUID4, immutable
    email: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    phone: str | None = None
    status: str = "active"  # "active" | "inactive" | "suspended"
    id: str | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Role:
    """A named permission bundle.

    permissions maps a resource category to its allowed action strings, e.g.
    {"users": ["users:read", "users:update"]}. Always a dict, possibly empty.
    """

    name: str
    description: str | None = None
    permissions: dict[str, list[str]] = field(default_factory=dict)
    id: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class RoleAssignment:
    """Grants one role to one profile. Unique per (user_id, role_id)."""

    user_id: str  # subject id of the profile
    role_id: str
    id: str | None = None
    assigned_at: str = ""


@dataclass
class LoginLog:
    """Append-only login attempt record. Never updated or deleted.

    identity is the address that attempted to log in. user_id is the subject
    id when the attempt resolved to a profile, None otherwise.
    """

    identity: str
    status: str  # "success" | "failed" | "blocked"
    ip_address: str | None = None
    user_agent: str | None = None
    failure_reason: str | None = None
    user_id: str | None = None
    id: str | None = None
    login_at: str = ""


@dataclass
class Setting:
    """A dotted-key setting whose value is a small typed JSON object.

    value tags its scalar type: {"text": "..."}, {"boolean": true} or
    {"number": 587}.
    """

    key: str  # e.g. "system.name"
    value: dict
    description: str | None = None
    id: str | None = None
    updated_at: str = ""

    @property
    def category(self) -> str:
        return self.key.split(".", 1)[0]
