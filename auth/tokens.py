"""
auth/tokens.py -- JWT signing and verification for Roster sessions.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       three identity claims plus expiry:
         userId -- subject id (stable, never changes)
         email  -- identity address at the time of login
         sub    -- internal profile row id
       Verification returns None on any failure -- the dependency layer turns
       that into a 401.

  Claim completeness: a token that verifies but lacks userId or sub is treated
       exactly like a forged one. Downstream code can index the payload without
       defensive .get() calls.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup: dev mode (DEBUG=true) auto-generates a
       random key with a warning; production mode refuses to start without one.
       Short keys (<32 chars) are rejected with ValueError [M6].

Layer rule: no imports from api/, cache/, directory/, or mail/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("roster.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS = ("userId", "sub", "exp")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(subject_id: str, email: str | None, profile_id: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with the caller's identity and configurable expiry.

    Args:
        subject_id:     Subject id of the profile (the "userId" claim).
        email:          Identity address (the "email" claim).
        profile_id:     Internal profile id (the "sub" claim).
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "userId": subject_id,
        "email": email,
        "sub": profile_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid,
    expired or claim-incomplete token is treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected token: %s", exc)
        return None
    if any(not payload.get(claim) for claim in _REQUIRED_CLAIMS):
        return None
    return payload
