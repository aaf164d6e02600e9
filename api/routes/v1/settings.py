"""
api/routes/v1/settings.py -- System settings REST endpoints.

Routes:
  GET /api/v1/settings                  -- all settings grouped by category (?category= to narrow)
  GET /api/v1/settings/categories/list  -- sorted category names
  GET /api/v1/settings/system/info      -- system/security/features groups plus server info
  GET /api/v1/settings/{key}            -- one setting by dotted key
  PUT /api/v1/settings/{key}            -- update value and/or description

Every route requires a bearer token. Literal paths are declared before /{key}.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import SettingUpdate, ok
from auth.dependencies import get_current_subject
from directory.service import DirectoryService

router = APIRouter(prefix="/settings", dependencies=[Depends(get_current_subject)])


def _directory(request: Request) -> DirectoryService:
    return request.app.state.directory


@router.get("")
def get_settings(request: Request, category: Optional[str] = Query(None, max_length=100)) -> dict:
    return ok(_directory(request).get_settings(category))


@router.get("/categories/list")
def get_categories(request: Request) -> dict:
    return ok(_directory(request).get_categories())


@router.get("/system/info")
def get_system_info(request: Request) -> dict:
    return ok(_directory(request).get_system_info())


@router.get("/{key}")
def get_setting(request: Request, key: str) -> dict:
    return ok(_directory(request).get_setting(key))


@router.put("/{key}")
def update_setting(request: Request, key: str, body: SettingUpdate) -> dict:
    setting = _directory(request).update_setting(key, value=body.value, description=body.description)
    return ok(setting, "Setting updated")
