"""
tests/test_directory_service.py -- Unit tests for DirectoryService (directory/service.py).

Covers the domain-error mapping (NotFound, Conflict, ValidationFailed), the
shapes returned to the API, the role-delete guard, settings grouping and
default-settings seeding.
"""

from __future__ import annotations

import pytest

from conftest import make_profile
from core.errors import Conflict, NotFound, ValidationFailed
from directory.defaults import DEFAULT_SETTINGS, PERMISSION_CATALOG
from directory.models import LoginLog
from directory.service import DirectoryService


@pytest.fixture
def directory(store) -> DirectoryService:
    return DirectoryService(store)


class TestUsers:
    def test_create_normalizes_email(self, directory) -> None:
        user = directory.create_user(email="  Alice@Example.COM ", full_name="Alice")
        assert user["email"] == "alice@example.com"
        assert user["roles"] == []
        assert user["user_id"] and user["user_id"] != user["id"]

    def test_duplicate_email_conflicts(self, directory) -> None:
        directory.create_user(email="a@example.com", full_name="A")
        with pytest.raises(Conflict):
            directory.create_user(email="A@example.com", full_name="A2")

    def test_duplicate_phone_conflicts(self, directory) -> None:
        directory.create_user(email="a@example.com", full_name="A", phone="+15550001")
        with pytest.raises(Conflict):
            directory.create_user(email="b@example.com", full_name="B", phone="+15550001")

    def test_update_phone_conflict_only_for_other_owner(self, directory) -> None:
        a = directory.create_user(email="a@example.com", full_name="A", phone="+15550001")
        b = directory.create_user(email="b@example.com", full_name="B")
        # Re-saving your own number is fine.
        assert directory.update_user(a["id"], phone="+15550001")["phone"] == "+15550001"
        with pytest.raises(Conflict):
            directory.update_user(b["id"], phone="+15550001")

    def test_update_leaves_omitted_fields(self, directory) -> None:
        a = directory.create_user(email="a@example.com", full_name="A", phone="+15550001")
        updated = directory.update_user(a["id"], full_name="Alice")
        assert updated["full_name"] == "Alice"
        assert updated["phone"] == "+15550001"

    def test_invalid_status(self, directory) -> None:
        a = directory.create_user(email="a@example.com", full_name="A")
        with pytest.raises(ValidationFailed):
            directory.update_user_status(a["id"], "banned")
        assert directory.update_user_status(a["id"], "suspended")["status"] == "suspended"

    def test_missing_user(self, directory) -> None:
        with pytest.raises(NotFound):
            directory.get_user("nope")
        with pytest.raises(NotFound):
            directory.delete_user("nope")

    def test_list_pagination_shape(self, directory) -> None:
        for i in range(5):
            directory.create_user(email=f"u{i}@example.com", full_name=f"U{i}")
        page = directory.list_users(page=2, limit=2)
        assert len(page["users"]) == 2
        assert page["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}

    def test_list_rejects_bad_limit(self, directory) -> None:
        with pytest.raises(ValidationFailed):
            directory.list_users(limit=101)

    def test_stats(self, directory, store) -> None:
        directory.create_user(email="a@example.com", full_name="A")
        directory.create_user(email="b@example.com", full_name="B", status="inactive")
        directory.create_user(email="c@example.com", full_name="C", status="suspended")
        stats = directory.get_user_stats()
        assert stats == {
            "total_users": 3,
            "active_users": 1,
            "inactive_users": 1,
            "suspended_users": 1,
            "recent_users": 3,
        }

    def test_login_logs_match_subject_or_email(self, directory, store) -> None:
        p = make_profile(store, "a@example.com")
        store.create_login_log(LoginLog(identity="a@example.com", status="failed"))
        store.create_login_log(LoginLog(identity="a@example.com", status="success", user_id=p.user_id))
        store.create_login_log(LoginLog(identity="b@example.com", status="failed"))

        logs = directory.get_user_login_logs(p.id)
        assert logs["pagination"]["total"] == 2
        assert {log["status"] for log in logs["logs"]} == {"failed", "success"}


class TestRoleAssignment:
    def test_assign_and_remove(self, directory) -> None:
        user = directory.create_user(email="a@example.com", full_name="A")
        role = directory.create_role("editor")

        directory.assign_role(user["id"], role["id"])
        assert [r["name"] for r in directory.get_user_roles(user["id"])] == ["editor"]
        assert [r["name"] for r in directory.get_user(user["id"])["roles"]] == ["editor"]

        with pytest.raises(Conflict):
            directory.assign_role(user["id"], role["id"])

        directory.remove_role(user["id"], role["id"])
        assert directory.get_user_roles(user["id"]) == []
        with pytest.raises(NotFound):
            directory.remove_role(user["id"], role["id"])

    def test_assign_unknown_role_or_user(self, directory) -> None:
        user = directory.create_user(email="a@example.com", full_name="A")
        role = directory.create_role("editor")
        with pytest.raises(NotFound):
            directory.assign_role(user["id"], "missing-role")
        with pytest.raises(NotFound):
            directory.assign_role("missing-user", role["id"])


class TestRoles:
    def test_duplicate_name(self, directory) -> None:
        directory.create_role("editor")
        with pytest.raises(Conflict):
            directory.create_role("editor")

    def test_rename_to_existing_name(self, directory) -> None:
        directory.create_role("editor")
        viewer = directory.create_role("viewer")
        with pytest.raises(Conflict):
            directory.update_role(viewer["id"], name="editor")
        assert directory.update_role(viewer["id"], name="viewer")["name"] == "viewer"

    def test_update_permissions(self, directory) -> None:
        role = directory.create_role("editor", permissions={"users": ["users:read"]})
        updated = directory.update_role(role["id"], permissions={"roles": ["roles:read"]})
        assert updated["permissions"] == {"roles": ["roles:read"]}

    def test_delete_refused_while_assigned(self, directory) -> None:
        role = directory.create_role("editor")
        for i in range(2):
            user = directory.create_user(email=f"u{i}@example.com", full_name="U")
            directory.assign_role(user["id"], role["id"])

        with pytest.raises(Conflict) as exc_info:
            directory.delete_role(role["id"])

        assert exc_info.value.message == "Cannot delete role: 2 user(s) still assigned"
        assert directory.get_role(role["id"])["user_count"] == 2

    def test_delete_unassigned(self, directory) -> None:
        role = directory.create_role("editor")
        directory.delete_role(role["id"])
        with pytest.raises(NotFound):
            directory.get_role(role["id"])

    def test_list_includes_user_count(self, directory) -> None:
        role = directory.create_role("editor")
        directory.create_role("viewer")
        user = directory.create_user(email="a@example.com", full_name="A")
        directory.assign_role(user["id"], role["id"])

        counts = {r["name"]: r["user_count"] for r in directory.list_roles()["roles"]}
        assert counts == {"editor": 1, "viewer": 0}

    def test_role_users(self, directory) -> None:
        role = directory.create_role("editor")
        user = directory.create_user(email="a@example.com", full_name="A")
        directory.assign_role(user["id"], role["id"])

        members = directory.get_role_users(role["id"])
        assert members["pagination"]["total"] == 1
        assert members["users"][0]["email"] == "a@example.com"
        assert members["users"][0]["assigned_at"]

    def test_stats_top_five(self, directory) -> None:
        user = directory.create_user(email="a@example.com", full_name="A")
        for i in range(7):
            role = directory.create_role(f"r{i}")
            directory.assign_role(user["id"], role["id"])
        stats = directory.get_role_stats()
        assert stats["total_roles"] == 7
        assert len(stats["popular_roles"]) == 5

    def test_permission_catalog(self, directory) -> None:
        catalog = directory.available_permissions()
        assert set(catalog) == {"users", "roles", "settings", "logs"}
        assert catalog is PERMISSION_CATALOG


class TestSettings:
    def test_seed_is_idempotent(self, directory) -> None:
        assert directory.seed_default_settings() == len(DEFAULT_SETTINGS)
        assert directory.seed_default_settings() == 0

    def test_seed_never_overwrites(self, directory) -> None:
        directory.seed_default_settings()
        directory.update_setting("system.name", value={"text": "Acme"})
        directory.seed_default_settings()
        assert directory.get_setting("system.name")["value"] == {"text": "Acme"}

    def test_seed_fills_only_missing(self, store) -> None:
        partial = DirectoryService(store, defaults=DEFAULT_SETTINGS[:3])
        assert partial.seed_default_settings() == 3
        assert DirectoryService(store).seed_default_settings() == len(DEFAULT_SETTINGS) - 3

    def test_grouped(self, directory) -> None:
        directory.seed_default_settings()
        grouped = directory.get_settings()
        assert set(grouped) == {"system", "email", "security", "features"}
        assert grouped["email"]["smtp_port"]["value"] == {"number": 587}
        assert set(directory.get_settings("security")) == {"security"}

    def test_categories_sorted(self, directory) -> None:
        directory.seed_default_settings()
        assert directory.get_categories() == ["email", "features", "security", "system"]

    def test_update_validation(self, directory) -> None:
        directory.seed_default_settings()
        with pytest.raises(NotFound):
            directory.update_setting("nope.key", value={"text": "x"})
        with pytest.raises(ValidationFailed):
            directory.update_setting("system.name", value="plain string")  # type: ignore[arg-type]

    def test_system_info(self, directory) -> None:
        directory.seed_default_settings()
        info = directory.get_system_info()
        assert set(info) == {"system", "security", "features", "server"}
        assert info["system"]["name"]["value"] == {"text": "Roster"}
        assert info["server"]["python_version"]
        assert info["server"]["uptime"] >= 0
