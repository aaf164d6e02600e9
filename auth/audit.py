"""
auth/audit.py -- Append-only login audit trail.

Every verification attempt, successful or not, is written as one LoginLog row.
Writing the trail must never decide the outcome of a login: a broken audit
table is logged loudly on the dedicated "roster.audit" logger and counted, and
the login carries on.

Layer rule: may import from directory/. No imports from api/.
"""

from __future__ import annotations

import logging

from directory.models import LOGIN_STATUSES, LoginLog
from directory.store import DirectoryStore

audit_logger = logging.getLogger("roster.audit")


class AuditRecorder:
    """Best-effort writer for login attempts."""

    def __init__(self, store: DirectoryStore, logger: logging.Logger = audit_logger) -> None:
        self.store = store
        self.logger = logger
        self.failures = 0

    def record(
        self,
        identity: str,
        ip_address: str | None,
        user_agent: str | None,
        status: str,
        reason: str | None = None,
        user_id: str | None = None,
    ) -> bool:
        """Append one attempt. Returns False (never raises) if the write fails.

        An unknown status is a caller bug and raises ValueError.
        """
        if status not in LOGIN_STATUSES:
            raise ValueError(f"unknown login status {status!r}")
        try:
            self.store.create_login_log(
                LoginLog(
                    identity=identity,
                    status=status,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    failure_reason=reason,
                    user_id=user_id,
                )
            )
        except Exception:
            self.failures += 1
            self.logger.exception("Failed to record %s login attempt", status)
            return False
        return True
