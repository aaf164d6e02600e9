"""
api/routes/v1/roles.py -- Role administration REST endpoints.

Routes:
  GET    /api/v1/roles                          -- paginated list, each with user_count
  GET    /api/v1/roles/stats                    -- total roles, five most assigned
  GET    /api/v1/roles/permissions/available    -- permission catalog for the role editor
  GET    /api/v1/roles/{id}                     -- one role
  POST   /api/v1/roles                          -- create (409 on duplicate name)
  PUT    /api/v1/roles/{id}                     -- update name/description/permissions
  DELETE /api/v1/roles/{id}                     -- delete (409 while assigned)
  GET    /api/v1/roles/{id}/users               -- members, newest assignment first

Every route requires a bearer token. Literal paths are declared before /{id}.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import RoleCreate, RoleSortEnum, RoleUpdate, SortOrderEnum, ok
from auth.dependencies import get_current_subject
from directory.service import MAX_PAGE_SIZE, DirectoryService

router = APIRouter(prefix="/roles", dependencies=[Depends(get_current_subject)])


def _directory(request: Request) -> DirectoryService:
    return request.app.state.directory


@router.get("")
def list_roles(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=255),
    sort_by: RoleSortEnum = RoleSortEnum.created_at,
    sort_order: SortOrderEnum = SortOrderEnum.desc,
) -> dict:
    return ok(
        _directory(request).list_roles(
            page=page,
            limit=limit,
            search=search,
            sort_by=sort_by.value,
            sort_order=sort_order.value,
        )
    )


@router.get("/stats")
def role_stats(request: Request) -> dict:
    return ok(_directory(request).get_role_stats())


@router.get("/permissions/available")
def available_permissions(request: Request) -> dict:
    return ok(_directory(request).available_permissions())


@router.get("/{role_id}")
def get_role(request: Request, role_id: str) -> dict:
    return ok(_directory(request).get_role(role_id))


@router.post("", status_code=201)
def create_role(request: Request, body: RoleCreate) -> dict:
    role = _directory(request).create_role(body.name, body.description, body.permissions)
    return ok(role, "Role created")


@router.put("/{role_id}")
def update_role(request: Request, role_id: str, body: RoleUpdate) -> dict:
    role = _directory(request).update_role(
        role_id,
        name=body.name,
        description=body.description,
        permissions=body.permissions,
    )
    return ok(role, "Role updated")


@router.delete("/{role_id}")
def delete_role(request: Request, role_id: str) -> dict:
    _directory(request).delete_role(role_id)
    return ok(message="Role deleted")


@router.get("/{role_id}/users")
def get_role_users(
    request: Request,
    role_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
) -> dict:
    return ok(_directory(request).get_role_users(role_id, page=page, limit=limit))
