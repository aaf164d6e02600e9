"""
directory/defaults.py -- Static catalogs: default settings and the permission list.

DEFAULT_SETTINGS is seeded create-if-absent at startup and by `main.py init-db`;
an operator's edited value is never overwritten. PERMISSION_CATALOG is what the
role editor offers; it is descriptive only (there is no enforcement engine).

Layer rule: pure data. No imports from the rest of the project.
"""

from __future__ import annotations

# (key, value, description). value tags its scalar type.
DEFAULT_SETTINGS: list[tuple[str, dict, str]] = [
    # System
    ("system.name", {"text": "Roster"}, "System name"),
    ("system.description", {"text": "User and role administration"}, "System description"),
    ("system.version", {"text": "1.0.0"}, "System version"),
    ("system.timezone", {"text": "UTC"}, "Default time zone"),
    ("system.language", {"text": "en-US"}, "Default language"),
    ("system.logo_url", {"text": ""}, "Logo URL"),
    # Email
    ("email.smtp_enabled", {"boolean": False}, "Enable SMTP delivery"),
    ("email.smtp_host", {"text": ""}, "SMTP server host"),
    ("email.smtp_port", {"number": 587}, "SMTP server port"),
    ("email.smtp_secure", {"boolean": False}, "Use implicit TLS for SMTP"),
    ("email.smtp_user", {"text": ""}, "SMTP username"),
    ("email.from_name", {"text": "Roster"}, "Sender display name"),
    ("email.from_address", {"text": ""}, "Sender address"),
    # Security
    ("security.code_expire_minutes", {"number": 5}, "Verification code lifetime (minutes)"),
    ("security.code_rate_limit", {"number": 5}, "Verification code sends allowed per hour"),
    ("security.jwt_expire_hours", {"number": 24}, "Access token lifetime (hours)"),
    ("security.refresh_token_expire_days", {"number": 30}, "Refresh token lifetime (days)"),
    ("security.max_login_attempts", {"number": 5}, "Failed logins allowed before lockout"),
    ("security.lockout_duration_minutes", {"number": 30}, "Lockout duration (minutes)"),
    # Features
    ("features.user_registration", {"boolean": True}, "Allow self-registration"),
    ("features.email_verification", {"boolean": True}, "Require email verification"),
    ("features.avatar_upload", {"boolean": True}, "Allow avatar upload"),
    ("features.dark_mode", {"boolean": True}, "Offer dark mode"),
    ("features.multi_language", {"boolean": False}, "Offer multiple languages"),
]

PERMISSION_CATALOG: dict[str, dict] = {
    "users": {
        "name": "User management",
        "permissions": ["users:read", "users:create", "users:update", "users:delete", "users:status"],
    },
    "roles": {
        "name": "Role management",
        "permissions": ["roles:read", "roles:create", "roles:update", "roles:delete", "roles:assign"],
    },
    "settings": {
        "name": "System settings",
        "permissions": ["settings:read", "settings:update"],
    },
    "logs": {
        "name": "Log management",
        "permissions": ["logs:read", "logs:export"],
    },
}
