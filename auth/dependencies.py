"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Clients authenticate with an `Authorization: Bearer <token>` header carrying the
JWT minted by /auth/verify-code or /auth/refresh. There are no cookies and no
API keys.

try_get_current_subject() is the soft variant (returns None on failure).
get_current_subject() wraps it and raises Unauthorized if unauthenticated.

A token is only honoured while its profile still exists and is active: a
suspended or deleted account loses access on its next request, not when the
token expires.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Subject
from auth.tokens import decode_access_token
from core.errors import Unauthorized


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_subject(request: Request) -> Subject | None:
    """Authenticate the request via its bearer token.

    Returns the Subject on success, None on any failure. Never raises.
    """
    token = _bearer_token(request)
    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    profile = request.app.state.store.get_profile_by_user_id(payload["userId"])
    if profile is None or profile.status != "active":
        return None
    return Subject(user_id=profile.user_id, profile_id=profile.id, email=profile.email)


def get_current_subject(request: Request) -> Subject:
    """Require authentication. Raises Unauthorized (401) if not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(subject: Subject = Depends(get_current_subject)): ...
    """
    subject = try_get_current_subject(request)
    if subject is None:
        raise Unauthorized("Authentication required.")
    return subject
