"""
tests/test_tokens.py -- Unit tests for JWT signing and verification (auth/tokens.py).

Covers round trip, default expiry, and rejection of tampered, expired,
foreign-key and claim-incomplete tokens.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth import tokens
from auth.tokens import create_access_token, decode_access_token


def _encode(payload: dict, key: str | None = None) -> str:
    return jwt.encode(payload, key or tokens._settings.secret_key, algorithm="HS256")


class TestRoundTrip:
    def test_claims(self) -> None:
        token = create_access_token("subj", "a@b.io", "prof", expire_seconds=60)
        claims = decode_access_token(token)
        assert claims["userId"] == "subj"
        assert claims["email"] == "a@b.io"
        assert claims["sub"] == "prof"

    def test_default_expiry_uses_settings(self) -> None:
        before = datetime.now(timezone.utc)
        claims = decode_access_token(create_access_token("subj", "a@b.io", "prof"))
        exp = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        expected = before + timedelta(seconds=tokens._settings.token_expire_seconds)
        assert abs((exp - expected).total_seconds()) < 5


class TestRejection:
    def test_tampered_signature(self) -> None:
        token = create_access_token("subj", "a@b.io", "prof", expire_seconds=60)
        head, payload, sig = token.split(".")
        flipped = sig[:-2] + ("AA" if sig[-2:] != "AA" else "BB")
        assert decode_access_token(f"{head}.{payload}.{flipped}") is None

    def test_expired(self) -> None:
        past = datetime.now(timezone.utc) - timedelta(seconds=10)
        token = _encode({"userId": "subj", "email": "a@b.io", "sub": "prof", "exp": past})
        assert decode_access_token(token) is None

    def test_wrong_key(self) -> None:
        future = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = _encode({"userId": "subj", "sub": "prof", "exp": future}, key="x" * 40)
        assert decode_access_token(token) is None

    def test_missing_subject_claim(self) -> None:
        future = datetime.now(timezone.utc) + timedelta(minutes=5)
        assert decode_access_token(_encode({"email": "a@b.io", "sub": "prof", "exp": future})) is None

    def test_garbage(self) -> None:
        assert decode_access_token("not-a-jwt") is None
