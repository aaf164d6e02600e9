"""
directory/store.py -- SQLAlchemy Core persistence layer for the Roster directory.

Pattern: Repository + Data Mapper. DirectoryStore is the repository (one clean
interface per entity); the _row_to_* functions are the mappers that translate
raw rows into the dataclasses in directory/models.py. Services and routes never
touch SQL directly.

Tables:
  profiles      -- identity profiles; user_id (subject id) and email are each UNIQUE
  roles         -- named permission bundles; permissions stored as a JSON object
  user_roles    -- role assignments; UNIQUE(user_id, role_id)
  login_logs    -- append-only login audit trail
  settings      -- dotted-key settings; value stored as a JSON object

Security: all queries use bound parameters. Sort columns are looked up in
whitelists, never interpolated from request input.

Uniqueness: the store lets sqlalchemy.exc.IntegrityError propagate on UNIQUE
violations. The service layer checks first and turns both the check and any
racing IntegrityError into a Conflict.

Layer rule: no imports from api/, auth/, cache/, or mail/.

Usage:
    store = DirectoryStore()                                 # SQLite default
    store = DirectoryStore("postgresql://user:pw@host/db")   # PostgreSQL
    profile = store.create_profile(Profile(user_id=str(uuid4()), email="a@b.io"))
    store.get_profile_by_email("a@b.io")
    store.close()
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    Index,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from directory.models import LoginLog, Profile, Role, RoleAssignment, Setting

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'roster.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_profiles = Table(
    "profiles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, unique=True),
    Column("email", String(255), unique=True),
    Column("full_name", String(255)),
    Column("avatar_url", Text),
    Column("phone", String(20)),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_profiles_status", "status"),
    Index("ix_profiles_phone", "phone"),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("permissions", Text, nullable=False, server_default="{}"),  # JSON object
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False),
    Column("role_id", String(36), nullable=False),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    Index("ix_user_roles_role_id", "role_id"),
)

_login_logs = Table(
    "login_logs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("identity", String(255), nullable=False),
    Column("user_id", String(36)),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("status", String(50), nullable=False, server_default="success"),
    Column("failure_reason", Text),
    Column("login_at", String(32), nullable=False),
    Index("ix_login_logs_user_id", "user_id"),
    Index("ix_login_logs_identity", "identity"),
    Index("ix_login_logs_login_at", "login_at"),
)

_settings = Table(
    "settings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("key", String(255), nullable=False, unique=True),
    Column("value", Text, nullable=False),  # JSON object
    Column("description", Text),
    Column("updated_at", String(32), nullable=False),
)

# Whitelisted sort columns. Anything else falls back to created_at.
_PROFILE_SORT = {
    "created_at": _profiles.c.created_at,
    "updated_at": _profiles.c.updated_at,
    "full_name": _profiles.c.full_name,
}
_ROLE_SORT = {
    "created_at": _roles.c.created_at,
    "updated_at": _roles.c.updated_at,
    "name": _roles.c.name,
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _order(column, sort_order: str):
    return column.asc() if sort_order.lower() == "asc" else column.desc()


def _search_filter(term: str, *columns):
    """Case-insensitive substring match across columns; LIKE wildcards in term are escaped."""
    needle = term.lower()
    return or_(*(func.lower(c).contains(needle, autoescape=True) for c in columns))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DirectoryStore:
    """Repository for profiles, roles, assignments, login logs and settings."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # TestClient and uvicorn run sync handlers in a thread pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(self, profile: Profile) -> Profile:
        """Insert a profile and return it with id and timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the subject id or email is
        already taken.
        """
        now = _now_iso()
        profile_id = profile.id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _profiles.insert().values(
                    id=profile_id,
                    user_id=profile.user_id,
                    email=profile.email,
                    full_name=profile.full_name,
                    avatar_url=profile.avatar_url,
                    phone=profile.phone,
                    status=profile.status,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_profile(profile_id)

    def get_profile(self, profile_id: str) -> Profile | None:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.id == profile_id)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def get_profile_by_user_id(self, user_id: str) -> Profile | None:
        """Look up a profile by subject id."""
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.user_id == user_id)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def get_profile_by_email(self, email: str) -> Profile | None:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.email == email)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def get_profile_by_phone(self, phone: str) -> Profile | None:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.phone == phone)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def list_profiles(
        self,
        offset: int = 0,
        limit: int = 20,
        search: str | None = None,
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Profile], int]:
        """Return one page of profiles and the total number matching the filters."""
        conditions = []
        if search:
            conditions.append(_search_filter(search, _profiles.c.full_name, _profiles.c.phone, _profiles.c.email))
        if status:
            conditions.append(_profiles.c.status == status)
        sort_col = _PROFILE_SORT.get(sort_by, _profiles.c.created_at)

        query = _profiles.select().where(*conditions).order_by(_order(sort_col, sort_order), _profiles.c.id)
        count_query = select(func.count()).select_from(_profiles).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(query.offset(offset).limit(limit)).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_profile(r) for r in rows], total

    def update_profile(self, profile_id: str, **fields) -> bool:
        """Update mutable fields (full_name, phone, avatar_url, status).

        Returns True if a row was updated, False if profile_id was not found.
        """
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_profiles.update().where(_profiles.c.id == profile_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_profile(self, profile_id: str) -> bool:
        """Delete a profile and its role assignments in one transaction.

        Login logs are kept: the audit trail outlives the profile.
        """
        with self.engine.begin() as conn:
            row = conn.execute(select(_profiles.c.user_id).where(_profiles.c.id == profile_id)).fetchone()
            if row is None:
                return False
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == row.user_id))
            conn.execute(_profiles.delete().where(_profiles.c.id == profile_id))
        return True

    def count_profiles(self, status: str | None = None, created_since: str | None = None) -> int:
        query = select(func.count()).select_from(_profiles)
        if status:
            query = query.where(_profiles.c.status == status)
        if created_since:
            query = query.where(_profiles.c.created_at > created_since)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> Role:
        """Insert a role. Raises IntegrityError if the name is already taken."""
        now = _now_iso()
        role_id = role.id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _roles.insert().values(
                    id=role_id,
                    name=role.name,
                    description=role.description,
                    permissions=json.dumps(role.permissions or {}),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_role(role_id)

    def get_role(self, role_id: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(
        self,
        offset: int = 0,
        limit: int = 20,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Role], int]:
        conditions = []
        if search:
            conditions.append(_search_filter(search, _roles.c.name, _roles.c.description))
        sort_col = _ROLE_SORT.get(sort_by, _roles.c.created_at)

        query = _roles.select().where(*conditions).order_by(_order(sort_col, sort_order), _roles.c.id)
        count_query = select(func.count()).select_from(_roles).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(query.offset(offset).limit(limit)).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_role(r) for r in rows], total

    def update_role(self, role_id: str, **fields) -> bool:
        """Update name, description or permissions. permissions is passed as a dict."""
        if "permissions" in fields:
            fields["permissions"] = json.dumps(fields["permissions"] or {})
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, role_id: str) -> bool:
        """Delete a role row. Callers must check count_role_assignments() first."""
        with self.engine.connect() as conn:
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    def count_roles(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_roles)).scalar() or 0

    def popular_roles(self, limit: int = 5) -> list[dict]:
        """Return the roles with the most assignments, most assigned first."""
        user_count = func.count(_user_roles.c.id).label("user_count")
        query = (
            select(_roles.c.id, _roles.c.name, user_count)
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .group_by(_roles.c.id, _roles.c.name)
            .order_by(user_count.desc(), _roles.c.name)
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [{"id": r.id, "name": r.name, "user_count": int(r.user_count)} for r in rows]

    # ------------------------------------------------------------------
    # Role assignments
    # ------------------------------------------------------------------

    def create_assignment(self, user_id: str, role_id: str) -> RoleAssignment:
        """Grant role_id to the profile with subject id user_id.

        Raises IntegrityError if the pair already exists.
        """
        assignment = RoleAssignment(user_id=user_id, role_id=role_id, id=_new_id(), assigned_at=_now_iso())
        with self.engine.connect() as conn:
            conn.execute(
                _user_roles.insert().values(
                    id=assignment.id,
                    user_id=assignment.user_id,
                    role_id=assignment.role_id,
                    assigned_at=assignment.assigned_at,
                )
            )
            conn.commit()
        return assignment

    def get_assignment(self, user_id: str, role_id: str) -> RoleAssignment | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _user_roles.select().where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            ).fetchone()
        return _row_to_assignment(row) if row is not None else None

    def delete_assignment(self, user_id: str, role_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_roles.delete().where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            )
            conn.commit()
        return result.rowcount > 0

    def count_role_assignments(self, role_id: str) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(
                    select(func.count()).select_from(_user_roles).where(_user_roles.c.role_id == role_id)
                ).scalar()
                or 0
            )

    def count_assignments_by_role(self, role_ids: list[str]) -> dict[str, int]:
        """Return {role_id: assignment count} for the given roles (missing ids map to 0)."""
        if not role_ids:
            return {}
        query = (
            select(_user_roles.c.role_id, func.count().label("n"))
            .where(_user_roles.c.role_id.in_(role_ids))
            .group_by(_user_roles.c.role_id)
        )
        with self.engine.connect() as conn:
            counts = {r.role_id: int(r.n) for r in conn.execute(query)}
        return {rid: counts.get(rid, 0) for rid in role_ids}

    def get_roles_for_users(self, user_ids: list[str]) -> dict[str, list[Role]]:
        """Return {subject id: [Role, ...]} for a batch of profiles, roles ordered by name."""
        result: dict[str, list[Role]] = {uid: [] for uid in user_ids}
        if not user_ids:
            return result
        query = (
            select(_user_roles.c.user_id.label("owner_id"), _roles)
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(_user_roles.c.user_id.in_(user_ids))
            .order_by(_roles.c.name)
        )
        with self.engine.connect() as conn:
            for row in conn.execute(query):
                result[row.owner_id].append(_row_to_role(row))
        return result

    def get_roles_for_user(self, user_id: str) -> list[Role]:
        return self.get_roles_for_users([user_id])[user_id]

    def list_role_members(self, role_id: str, offset: int = 0, limit: int = 20) -> tuple[list[tuple[Profile, str]], int]:
        """Return (profile, assigned_at) pairs for a role, newest assignment first."""
        query = (
            select(_profiles, _user_roles.c.assigned_at)
            .select_from(_user_roles.join(_profiles, _profiles.c.user_id == _user_roles.c.user_id))
            .where(_user_roles.c.role_id == role_id)
            .order_by(_user_roles.c.assigned_at.desc(), _profiles.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query.offset(offset).limit(limit)).fetchall()
        return [(_row_to_profile(r), r.assigned_at) for r in rows], self.count_role_assignments(role_id)

    # ------------------------------------------------------------------
    # Login logs
    # ------------------------------------------------------------------

    def create_login_log(self, log: LoginLog) -> str:
        """Append one login attempt and return its id."""
        log_id = _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _login_logs.insert().values(
                    id=log_id,
                    identity=log.identity,
                    user_id=log.user_id,
                    ip_address=log.ip_address,
                    user_agent=log.user_agent,
                    status=log.status,
                    failure_reason=log.failure_reason,
                    login_at=log.login_at or _now_iso(),
                )
            )
            conn.commit()
        return log_id

    def list_login_logs(
        self,
        user_id: str | None = None,
        identity: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[LoginLog], int]:
        """Return login logs matching the subject id OR the identity address, newest first."""
        conditions = []
        if user_id:
            conditions.append(_login_logs.c.user_id == user_id)
        if identity:
            conditions.append(_login_logs.c.identity == identity)
        where = or_(*conditions) if conditions else None

        query = _login_logs.select()
        count_query = select(func.count()).select_from(_login_logs)
        if where is not None:
            query = query.where(where)
            count_query = count_query.where(where)
        query = query.order_by(_login_logs.c.login_at.desc(), _login_logs.c.id).offset(offset).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_login_log(r) for r in rows], total

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> Setting | None:
        with self.engine.connect() as conn:
            row = conn.execute(_settings.select().where(_settings.c.key == key)).fetchone()
        return _row_to_setting(row) if row is not None else None

    def list_settings(self, category: str | None = None) -> list[Setting]:
        """Return settings ordered by key, optionally only those under "<category>."."""
        query = _settings.select()
        if category:
            query = query.where(_settings.c.key.startswith(f"{category}.", autoescape=True))
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_settings.c.key)).fetchall()
        return [_row_to_setting(r) for r in rows]

    def create_setting_if_absent(self, setting: Setting) -> bool:
        """Insert setting unless its key exists. Returns True if a row was created.

        Never overwrites: an existing value wins, including under a concurrent
        insert that trips the UNIQUE(key) constraint.
        """
        if self.get_setting(setting.key) is not None:
            return False
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _settings.insert().values(
                        id=_new_id(),
                        key=setting.key,
                        value=json.dumps(setting.value),
                        description=setting.description,
                        updated_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError:
            return False
        return True

    def update_setting(self, key: str, **fields) -> bool:
        """Update value (dict) and/or description of an existing setting."""
        if "value" in fields:
            fields["value"] = json.dumps(fields["value"])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_settings.update().where(_settings.c.key == key).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


def days_ago_iso(days: int) -> str:
    """ISO timestamp for now minus days, comparable with the stored created_at strings."""
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_profile(row) -> Profile:
    return Profile(
        id=row.id,
        user_id=row.user_id,
        email=row.email,
        full_name=row.full_name,
        avatar_url=row.avatar_url,
        phone=row.phone,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        permissions=json.loads(row.permissions) if row.permissions else {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_assignment(row) -> RoleAssignment:
    return RoleAssignment(
        id=row.id,
        user_id=row.user_id,
        role_id=row.role_id,
        assigned_at=row.assigned_at,
    )


def _row_to_login_log(row) -> LoginLog:
    return LoginLog(
        id=row.id,
        identity=row.identity,
        user_id=row.user_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        status=row.status,
        failure_reason=row.failure_reason,
        login_at=row.login_at,
    )


def _row_to_setting(row) -> Setting:
    return Setting(
        id=row.id,
        key=row.key,
        value=json.loads(row.value),
        description=row.description,
        updated_at=row.updated_at,
    )
