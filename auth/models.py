"""
auth/models.py -- Value objects passed between the auth services and routes.

Pattern: Data class (pure data container, zero logic). Mirrors the approach in
directory/models.py -- dataclasses own domain shape; services do the work.

Layer rule: no imports from api/, cache/, directory/, or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Subject:
    """The authenticated caller, as recovered from a valid bearer token.

    user_id is the subject id (the "userId" claim), profile_id the internal
    profile row id (the "sub" claim), email the identity address.
    """

    user_id: str
    profile_id: str
    email: str | None


@dataclass
class LoginResult:
    """Outcome of a successful code verification."""

    access_token: str
    user: dict = field(default_factory=dict)  # {id, user_id, email, full_name, avatar_url, status}
