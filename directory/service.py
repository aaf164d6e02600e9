"""
directory/service.py -- Administration use cases for users, roles and settings.

DirectoryService sits between the HTTP routes and DirectoryStore. It turns
missing rows into NotFound, uniqueness collisions into Conflict and bad
arguments into ValidationFailed, and shapes records into the plain dicts the
API returns. Routes stay thin: parse, call one method, wrap the result.

Uniqueness is checked before writing so the common case gets a precise message;
a racing writer that slips past the check still trips the database UNIQUE
constraint, whose IntegrityError is converted to the same Conflict.

Layer rule: may import from core/ and directory/. No imports from api/, auth/,
cache/, or mail/.
"""

from __future__ import annotations

import logging
import math
import platform
import time
import uuid
from dataclasses import asdict

from sqlalchemy.exc import IntegrityError

from core.errors import Conflict, NotFound, ValidationFailed
from core.redact import mask_email
from directory.defaults import DEFAULT_SETTINGS, PERMISSION_CATALOG
from directory.models import PROFILE_STATUSES, Profile, Role, Setting
from directory.store import DirectoryStore, days_ago_iso

logger = logging.getLogger("roster.directory")

MAX_PAGE_SIZE = 100
RECENT_USER_DAYS = 7


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


def role_view(role: Role) -> dict:
    return asdict(role)


def profile_view(profile: Profile, roles: list[Role] | None = None) -> dict:
    """Public shape of a profile, with its roles attached when given."""
    data = asdict(profile)
    if roles is not None:
        data["roles"] = [role_view(r) for r in roles]
    return data


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def _check_page(page: int, limit: int) -> None:
    errors = {}
    if page < 1:
        errors["page"] = "must be >= 1"
    if not 1 <= limit <= MAX_PAGE_SIZE:
        errors["limit"] = f"must be between 1 and {MAX_PAGE_SIZE}"
    if errors:
        raise ValidationFailed("Invalid pagination parameters", fields=errors)


def _check_status(status: str) -> None:
    if status not in PROFILE_STATUSES:
        raise ValidationFailed(
            "Invalid status",
            fields={"status": f"must be one of: {', '.join(PROFILE_STATUSES)}"},
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class DirectoryService:
    """User, role and settings administration over a DirectoryStore."""

    def __init__(self, store: DirectoryStore, defaults: list[tuple[str, dict, str]] | None = None) -> None:
        self.store = store
        self._defaults = DEFAULT_SETTINGS if defaults is None else defaults
        self._started = time.monotonic()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def _require_profile(self, profile_id: str) -> Profile:
        profile = self.store.get_profile(profile_id)
        if profile is None:
            raise NotFound("User not found", detail=profile_id)
        return profile

    def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> dict:
        _check_page(page, limit)
        if status:
            _check_status(status)
        profiles, total = self.store.list_profiles(
            offset=(page - 1) * limit,
            limit=limit,
            search=search.strip() if search else None,
            status=status,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        roles = self.store.get_roles_for_users([p.user_id for p in profiles])
        return {
            "users": [profile_view(p, roles[p.user_id]) for p in profiles],
            "pagination": _pagination(page, limit, total),
        }

    def get_user(self, profile_id: str) -> dict:
        profile = self._require_profile(profile_id)
        return profile_view(profile, self.store.get_roles_for_user(profile.user_id))

    def create_user(
        self,
        email: str,
        full_name: str | None = None,
        phone: str | None = None,
        avatar_url: str | None = None,
        status: str = "active",
    ) -> dict:
        """Create a profile with a fresh subject id. Conflict if email or phone is taken."""
        _check_status(status)
        email = normalize_email(email)
        if self.store.get_profile_by_email(email) is not None:
            raise Conflict("Email already in use", detail=email)
        if phone and self.store.get_profile_by_phone(phone) is not None:
            raise Conflict("Phone number already in use", detail=phone)
        try:
            profile = self.store.create_profile(
                Profile(
                    user_id=str(uuid.uuid4()),
                    email=email,
                    full_name=full_name,
                    phone=phone,
                    avatar_url=avatar_url,
                    status=status,
                )
            )
        except IntegrityError as exc:
            raise Conflict("Email already in use", detail=email) from exc
        logger.info("Created user %s (%s)", profile.id, mask_email(email))
        return profile_view(profile, [])

    def update_user(
        self,
        profile_id: str,
        full_name: str | None = None,
        phone: str | None = None,
        avatar_url: str | None = None,
    ) -> dict:
        """Update the given fields; None means "leave unchanged"."""
        profile = self._require_profile(profile_id)
        if phone and phone != profile.phone:
            owner = self.store.get_profile_by_phone(phone)
            if owner is not None and owner.id != profile_id:
                raise Conflict("Phone number already in use", detail=phone)
        fields = {
            k: v
            for k, v in (("full_name", full_name), ("phone", phone), ("avatar_url", avatar_url))
            if v is not None
        }
        if fields:
            self.store.update_profile(profile_id, **fields)
        return self.get_user(profile_id)

    def update_user_status(self, profile_id: str, status: str) -> dict:
        _check_status(status)
        self._require_profile(profile_id)
        self.store.update_profile(profile_id, status=status)
        logger.info("User %s status -> %s", profile_id, status)
        return self.get_user(profile_id)

    def delete_user(self, profile_id: str) -> None:
        """Delete the profile and its role assignments. Login logs are kept."""
        if not self.store.delete_profile(profile_id):
            raise NotFound("User not found", detail=profile_id)
        logger.info("Deleted user %s", profile_id)

    def get_user_roles(self, profile_id: str) -> list[dict]:
        profile = self._require_profile(profile_id)
        return [role_view(r) for r in self.store.get_roles_for_user(profile.user_id)]

    def assign_role(self, profile_id: str, role_id: str) -> None:
        profile = self._require_profile(profile_id)
        if self.store.get_role(role_id) is None:
            raise NotFound("Role not found", detail=role_id)
        if self.store.get_assignment(profile.user_id, role_id) is not None:
            raise Conflict("User already has this role")
        try:
            self.store.create_assignment(profile.user_id, role_id)
        except IntegrityError as exc:
            raise Conflict("User already has this role") from exc

    def remove_role(self, profile_id: str, role_id: str) -> None:
        profile = self._require_profile(profile_id)
        if not self.store.delete_assignment(profile.user_id, role_id):
            raise NotFound("Role assignment not found", detail=role_id)

    def get_user_login_logs(self, profile_id: str, page: int = 1, limit: int = 20) -> dict:
        """Login history for a profile, matched by subject id or by its email, newest first."""
        _check_page(page, limit)
        profile = self._require_profile(profile_id)
        logs, total = self.store.list_login_logs(
            user_id=profile.user_id,
            identity=profile.email,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {
            "logs": [asdict(log) for log in logs],
            "pagination": _pagination(page, limit, total),
        }

    def get_user_stats(self) -> dict:
        return {
            "total_users": self.store.count_profiles(),
            "active_users": self.store.count_profiles(status="active"),
            "inactive_users": self.store.count_profiles(status="inactive"),
            "suspended_users": self.store.count_profiles(status="suspended"),
            "recent_users": self.store.count_profiles(created_since=days_ago_iso(RECENT_USER_DAYS)),
        }

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def _require_role(self, role_id: str) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFound("Role not found", detail=role_id)
        return role

    def list_roles(
        self,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> dict:
        _check_page(page, limit)
        roles, total = self.store.list_roles(
            offset=(page - 1) * limit,
            limit=limit,
            search=search.strip() if search else None,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        counts = self.store.count_assignments_by_role([r.id for r in roles])
        return {
            "roles": [{**role_view(r), "user_count": counts[r.id]} for r in roles],
            "pagination": _pagination(page, limit, total),
        }

    def get_role(self, role_id: str) -> dict:
        role = self._require_role(role_id)
        return {**role_view(role), "user_count": self.store.count_role_assignments(role_id)}

    def create_role(self, name: str, description: str | None = None, permissions: dict | None = None) -> dict:
        name = name.strip()
        if not name:
            raise ValidationFailed("Role name is required", fields={"name": "must not be empty"})
        if self.store.get_role_by_name(name) is not None:
            raise Conflict("Role name already exists", detail=name)
        try:
            role = self.store.create_role(Role(name=name, description=description, permissions=permissions or {}))
        except IntegrityError as exc:
            raise Conflict("Role name already exists", detail=name) from exc
        logger.info("Created role %s (%s)", role.id, name)
        return role_view(role)

    def update_role(
        self,
        role_id: str,
        name: str | None = None,
        description: str | None = None,
        permissions: dict | None = None,
    ) -> dict:
        role = self._require_role(role_id)
        fields: dict = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed("Role name is required", fields={"name": "must not be empty"})
            if name != role.name:
                existing = self.store.get_role_by_name(name)
                if existing is not None and existing.id != role_id:
                    raise Conflict("Role name already exists", detail=name)
            fields["name"] = name
        if description is not None:
            fields["description"] = description
        if permissions is not None:
            fields["permissions"] = permissions
        if fields:
            try:
                self.store.update_role(role_id, **fields)
            except IntegrityError as exc:
                raise Conflict("Role name already exists", detail=name) from exc
        return role_view(self._require_role(role_id))

    def delete_role(self, role_id: str) -> None:
        """Delete a role. Refused while any profile still holds it."""
        self._require_role(role_id)
        in_use = self.store.count_role_assignments(role_id)
        if in_use > 0:
            raise Conflict(f"Cannot delete role: {in_use} user(s) still assigned")
        self.store.delete_role(role_id)
        logger.info("Deleted role %s", role_id)

    def get_role_users(self, role_id: str, page: int = 1, limit: int = 20) -> dict:
        _check_page(page, limit)
        self._require_role(role_id)
        members, total = self.store.list_role_members(role_id, offset=(page - 1) * limit, limit=limit)
        return {
            "users": [{**profile_view(p), "assigned_at": assigned_at} for p, assigned_at in members],
            "pagination": _pagination(page, limit, total),
        }

    def available_permissions(self) -> dict:
        return PERMISSION_CATALOG

    def get_role_stats(self) -> dict:
        return {
            "total_roles": self.store.count_roles(),
            "popular_roles": self.store.popular_roles(limit=5),
        }

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def seed_default_settings(self) -> int:
        """Create every default setting that does not exist yet. Returns how many were created."""
        created = 0
        for key, value, description in self._defaults:
            if self.store.create_setting_if_absent(Setting(key=key, value=value, description=description)):
                created += 1
        if created:
            logger.info("Seeded %d default setting(s)", created)
        return created

    def get_settings(self, category: str | None = None) -> dict:
        """Settings grouped as {category: {subkey: {value, description, updated_at}}}."""
        grouped: dict[str, dict] = {}
        for setting in self.store.list_settings(category):
            _, _, subkey = setting.key.partition(".")
            grouped.setdefault(setting.category, {})[subkey or setting.key] = {
                "value": setting.value,
                "description": setting.description,
                "updated_at": setting.updated_at,
            }
        return grouped

    def get_setting(self, key: str) -> dict:
        setting = self.store.get_setting(key)
        if setting is None:
            raise NotFound("Setting not found", detail=key)
        return asdict(setting)

    def update_setting(self, key: str, value: dict | None = None, description: str | None = None) -> dict:
        if self.store.get_setting(key) is None:
            raise NotFound("Setting not found", detail=key)
        if value is not None and not isinstance(value, dict):
            raise ValidationFailed("Setting value must be an object", fields={"value": "must be an object"})
        fields: dict = {}
        if value is not None:
            fields["value"] = value
        if description is not None:
            fields["description"] = description
        if fields:
            self.store.update_setting(key, **fields)
            logger.info("Updated setting %s", key)
        return self.get_setting(key)

    def get_categories(self) -> list[str]:
        return sorted({s.category for s in self.store.list_settings()})

    def get_system_info(self) -> dict:
        return {
            "system": self.get_settings("system").get("system", {}),
            "security": self.get_settings("security").get("security", {}),
            "features": self.get_settings("features").get("features", {}),
            "server": {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "uptime": round(time.monotonic() - self._started, 3),
            },
        }
