"""
auth/login.py -- Redeem a verification code for a session token.

LoginVerifier.verify() is the whole login:
  - compare the submitted code with the cached one (mismatch: failed audit, 401)
  - consume the cached code; only the caller whose DEL removed the key proceeds
  - find the profile by address, creating it on first login
  - refuse profiles that are not active (blocked audit, 401)
  - record a success audit entry and mint the JWT

Single use: Redis DEL is atomic and reports how many keys it removed, so when
two requests present the same code concurrently exactly one sees 1. The other
is handled as if the code had already expired.

SessionRefresher re-signs a token for an already authenticated subject. It
touches neither the store nor the cache; the dependency that produced the
subject has already checked that the profile is active.

Layer rule: may import from core/, cache/, directory/, mail/ and auth/.
No imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Callable

from sqlalchemy.exc import IntegrityError

from auth.audit import AuditRecorder
from auth.models import LoginResult, Subject
from cache.store import CodeCache, code_key
from core.errors import Unauthorized
from core.redact import mask_email
from directory.models import Profile
from directory.store import DirectoryStore
from mail.sender import EmailSender

logger = logging.getLogger("roster.auth")

TokenFactory = Callable[[str, "str | None", str], str]

CODE_REJECTED = "code invalid or expired"


def user_projection(profile: Profile) -> dict:
    """The user object returned alongside a freshly minted token."""
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "email": profile.email,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "status": profile.status,
    }


class LoginVerifier:
    """Verifies email codes and issues session tokens."""

    def __init__(
        self,
        store: DirectoryStore,
        cache: CodeCache,
        audit: AuditRecorder,
        mailer: EmailSender,
        token_factory: TokenFactory,
    ) -> None:
        self.store = store
        self.cache = cache
        self.audit = audit
        self.mailer = mailer
        self.token_factory = token_factory

    def verify(self, email: str, code: str, ip_address: str | None, user_agent: str | None) -> LoginResult:
        """Exchange (email, code) for a LoginResult. Raises Unauthorized on any rejection."""
        key = code_key(email)
        stored = self.cache.get(key)
        # Bytes, since compare_digest raises TypeError on non-ASCII str.
        if stored is None or not secrets.compare_digest(stored.encode(), code.encode()):
            self._reject(email, ip_address, user_agent)

        # Lost the race to another request holding the same code.
        if self.cache.delete(key) != 1:
            self._reject(email, ip_address, user_agent)

        profile = self._find_or_create(email)

        if profile.status != "active":
            self.audit.record(
                email,
                ip_address,
                user_agent,
                "blocked",
                reason=f"account {profile.status}",
                user_id=profile.user_id,
            )
            logger.info("Login refused for %s: account %s", mask_email(email), profile.status)
            raise Unauthorized("Account is not active")

        self.audit.record(email, ip_address, user_agent, "success", user_id=profile.user_id)
        token = self.token_factory(profile.user_id, profile.email, profile.id)
        logger.info("Login succeeded for %s", mask_email(email))
        return LoginResult(access_token=token, user=user_projection(profile))

    def _reject(self, email: str, ip_address: str | None, user_agent: str | None) -> None:
        self.audit.record(email, ip_address, user_agent, "failed", reason=CODE_REJECTED)
        raise Unauthorized("Verification code is invalid or has expired")

    def _find_or_create(self, email: str) -> Profile:
        profile = self.store.get_profile_by_email(email)
        if profile is not None:
            return profile
        try:
            profile = self.store.create_profile(
                Profile(
                    user_id=str(uuid.uuid4()),
                    email=email,
                    full_name=email.split("@", 1)[0],
                    status="active",
                )
            )
        except IntegrityError:
            # Created concurrently by an admin or the CLI.
            existing = self.store.get_profile_by_email(email)
            if existing is None:
                raise
            return existing
        logger.info("Created profile %s on first login (%s)", profile.id, mask_email(email))
        self.mailer.send_welcome(email, profile.full_name)
        return profile


class SessionRefresher:
    """Re-issues a token with the same claims and a fresh expiry."""

    def __init__(self, token_factory: TokenFactory) -> None:
        self.token_factory = token_factory

    def refresh(self, subject: Subject) -> dict:
        return {"access_token": self.token_factory(subject.user_id, subject.email, subject.profile_id)}
