"""
api/routes/v1/users.py -- User (profile) administration REST endpoints.

Routes:
  GET    /api/v1/users                        -- paginated list with search/filter/sort
  GET    /api/v1/users/stats                  -- counts by status, recent sign-ups
  GET    /api/v1/users/{id}                   -- one user with roles
  POST   /api/v1/users                        -- create (409 on duplicate email/phone)
  PUT    /api/v1/users/{id}                   -- update name/phone/avatar
  PUT    /api/v1/users/{id}/status            -- activate / deactivate / suspend
  DELETE /api/v1/users/{id}                   -- delete profile and its role assignments
  GET    /api/v1/users/{id}/roles             -- roles held
  POST   /api/v1/users/{id}/roles/{role_id}   -- grant role
  DELETE /api/v1/users/{id}/roles/{role_id}   -- revoke role
  GET    /api/v1/users/{id}/login-logs        -- login history, newest first

Every route requires a bearer token. /users/stats is declared before
/users/{id} so the literal path wins.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import SortOrderEnum, StatusEnum, UserCreate, UserSortEnum, UserStatusUpdate, UserUpdate, ok
from auth.dependencies import get_current_subject
from directory.service import MAX_PAGE_SIZE, DirectoryService

router = APIRouter(prefix="/users", dependencies=[Depends(get_current_subject)])


def _directory(request: Request) -> DirectoryService:
    return request.app.state.directory


@router.get("")
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=255),
    status: Optional[StatusEnum] = None,
    sort_by: UserSortEnum = UserSortEnum.created_at,
    sort_order: SortOrderEnum = SortOrderEnum.desc,
) -> dict:
    """List users. search matches name, phone or email, case-insensitively."""
    return ok(
        _directory(request).list_users(
            page=page,
            limit=limit,
            search=search,
            status=status.value if status else None,
            sort_by=sort_by.value,
            sort_order=sort_order.value,
        )
    )


@router.get("/stats")
def user_stats(request: Request) -> dict:
    return ok(_directory(request).get_user_stats())


@router.get("/{user_id}")
def get_user(request: Request, user_id: str) -> dict:
    return ok(_directory(request).get_user(user_id))


@router.post("", status_code=201)
def create_user(request: Request, body: UserCreate) -> dict:
    user = _directory(request).create_user(
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
        avatar_url=body.avatar_url,
        status=body.status.value,
    )
    return ok(user, "User created")


@router.put("/{user_id}")
def update_user(request: Request, user_id: str, body: UserUpdate) -> dict:
    user = _directory(request).update_user(
        user_id,
        full_name=body.full_name,
        phone=body.phone,
        avatar_url=body.avatar_url,
    )
    return ok(user, "User updated")


@router.put("/{user_id}/status")
def update_user_status(request: Request, user_id: str, body: UserStatusUpdate) -> dict:
    return ok(_directory(request).update_user_status(user_id, body.status.value), "Status updated")


@router.delete("/{user_id}")
def delete_user(request: Request, user_id: str) -> dict:
    _directory(request).delete_user(user_id)
    return ok(message="User deleted")


@router.get("/{user_id}/roles")
def get_user_roles(request: Request, user_id: str) -> dict:
    return ok(_directory(request).get_user_roles(user_id))


@router.post("/{user_id}/roles/{role_id}")
def assign_role(request: Request, user_id: str, role_id: str) -> dict:
    _directory(request).assign_role(user_id, role_id)
    return ok(message="Role assigned")


@router.delete("/{user_id}/roles/{role_id}")
def remove_role(request: Request, user_id: str, role_id: str) -> dict:
    _directory(request).remove_role(user_id, role_id)
    return ok(message="Role removed")


@router.get("/{user_id}/login-logs")
def get_user_login_logs(
    request: Request,
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
) -> dict:
    return ok(_directory(request).get_user_login_logs(user_id, page=page, limit=limit))
