"""
tests/test_codes.py -- Unit tests for verification-code issuance (auth/codes.py).

Covers:
  - generate_code(): 6 ASCII digits, within 100000-999999
  - issue(): code and cooldown marker stored with their TTLs, code mailed
  - cooldown: second request inside the window is RateLimited with the fixed
    retry_after, sends nothing and leaves the first code in place
  - delivery failure: DeliveryFailed propagates, cache writes are kept
  - re-issue after the cooldown replaces the earlier code
"""

from __future__ import annotations

import pytest

from auth.codes import CodeIssuer, generate_code
from cache.store import code_key, cooldown_key
from core.errors import DeliveryFailed, RateLimited

EMAIL = "new@example.com"


@pytest.fixture
def issuer(cache, mailer) -> CodeIssuer:
    return CodeIssuer(cache, mailer, code_ttl=300, cooldown_ttl=60)


class TestGenerateCode:
    def test_six_digits_in_range(self) -> None:
        for _ in range(500):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_codes_vary(self) -> None:
        assert len({generate_code() for _ in range(50)}) > 1


class TestIssue:
    def test_stores_code_and_marker_then_mails(self, issuer, cache, mailer) -> None:
        issuer.issue(EMAIL)

        stored = cache.get(code_key(EMAIL))
        assert stored is not None and len(stored) == 6
        assert cache.exists(cooldown_key(EMAIL))
        assert mailer.codes_for(EMAIL) == [stored]

    def test_ttls(self, issuer, cache) -> None:
        issuer.issue(EMAIL)
        assert 295 <= cache.ttl(code_key(EMAIL)) <= 300
        assert 55 <= cache.ttl(cooldown_key(EMAIL)) <= 60

    def test_cooldown_rejects_second_request(self, issuer, cache, mailer) -> None:
        issuer.issue(EMAIL)
        first = cache.get(code_key(EMAIL))

        with pytest.raises(RateLimited) as exc_info:
            issuer.issue(EMAIL)

        assert exc_info.value.retry_after == 60
        assert exc_info.value.status_code == 429
        assert len(mailer.codes_for(EMAIL)) == 1, "No email may be sent while cooling down"
        assert cache.get(code_key(EMAIL)) == first, "Stored code must be unchanged"

    def test_cooldown_is_per_address(self, issuer, mailer) -> None:
        issuer.issue(EMAIL)
        issuer.issue("other@example.com")
        assert len(mailer.codes_for("other@example.com")) == 1

    def test_delivery_failure_propagates_and_keeps_state(self, issuer, cache, mailer) -> None:
        mailer.fail_verification = True
        with pytest.raises(DeliveryFailed):
            issuer.issue(EMAIL)
        assert cache.get(code_key(EMAIL)) is not None
        assert cache.exists(cooldown_key(EMAIL)), "Cooldown still applies after a failed send"

    def test_reissue_after_cooldown_replaces_code(self, issuer, cache, fake_redis, mailer) -> None:
        issuer.issue(EMAIL)
        fake_redis.expire_now(cooldown_key(EMAIL))

        issuer.issue(EMAIL)

        codes = mailer.codes_for(EMAIL)
        assert len(codes) == 2
        assert cache.get(code_key(EMAIL)) == codes[-1]
