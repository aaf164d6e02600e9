"""
cache/store.py -- Redis-backed ephemeral store for verification codes.

Holds the two short-lived records of the email-code login flow:

  verify_code:<email>  -- the 6-digit code, expires after EMAIL_CODE_EXPIRY
  send_code:<email>    -- cooldown marker, presence alone blocks re-issuance

Nothing here is durable; expiry is delegated entirely to Redis TTLs. The
redis client is injected so tests can pass an in-memory stand-in with the
same method names.

Usage:
    cache = CodeCache.from_url("redis://localhost:6379/0")
    cache.set(code_key("a@b.io"), "123456", ttl=300)
    cache.get(code_key("a@b.io"))        # "123456" or None
    cache.delete(code_key("a@b.io"))     # 1 if this call removed it, else 0
    cache.close()
"""

from __future__ import annotations

import logging

import redis

logger = logging.getLogger("roster.cache")

_CODE_PREFIX = "verify_code:"
_COOLDOWN_PREFIX = "send_code:"


def code_key(email: str) -> str:
    return f"{_CODE_PREFIX}{email}"


def cooldown_key(email: str) -> str:
    return f"{_COOLDOWN_PREFIX}{email}"


class CodeCache:
    """Thin wrapper over a redis client with string values and per-key TTLs."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "CodeCache":
        """Build a CodeCache from a redis:// URL.

        decode_responses=True so get() returns str, matching the codes we store.
        """
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
            health_check_interval=30,
        )
        return cls(client)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        """Store value under key, replacing any existing entry, expiring after ttl seconds."""
        self._client.set(key, value, ex=ttl)

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))

    def delete(self, key: str) -> int:
        """Remove key and return how many keys this call removed (0 or 1).

        Redis executes DEL atomically, so when several callers race to delete
        the same key exactly one of them sees 1. The login verifier relies on
        this to make code consumption single-use.
        """
        return int(self._client.delete(key))

    def ttl(self, key: str) -> int:
        """Remaining lifetime in seconds; -2 if the key is absent, -1 if it has no expiry."""
        return int(self._client.ttl(key))

    def ping(self) -> bool:
        """Return True if the server answers. Used by the health endpoint."""
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            logger.warning("Cache ping failed: %s", exc)
            return False

    def close(self) -> None:
        self._client.close()
