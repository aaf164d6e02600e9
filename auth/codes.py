"""
auth/codes.py -- Issue six-digit email verification codes.

Issuance order is fixed:
  1. refuse while the cooldown marker exists (RateLimited, fixed retry window)
  2. draw a fresh code
  3. store the code under verify_code:<email> with the code TTL
  4. store the cooldown marker under send_code:<email> with the cooldown TTL
  5. email the code

A delivery failure in step 5 propagates as DeliveryFailed and leaves steps 3-4
in place: the client waits out the cooldown before asking again. Two requests
racing between steps 1 and 4 may both send a code; the later write wins and
only that code verifies.

Layer rule: may import from core/, cache/, and mail/. No imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import time

from cache.store import CodeCache, code_key, cooldown_key
from core.errors import RateLimited
from core.redact import mask_email
from mail.sender import EmailSender

logger = logging.getLogger("roster.auth")

CODE_LENGTH = 6


def generate_code() -> str:
    """Return a uniformly random code in 100000-999999 as a 6-character string."""
    low = 10 ** (CODE_LENGTH - 1)
    return str(secrets.randbelow(9 * low) + low)


class CodeIssuer:
    """Creates, stores and mails login codes."""

    def __init__(self, cache: CodeCache, mailer: EmailSender, code_ttl: int = 300, cooldown_ttl: int = 60) -> None:
        self.cache = cache
        self.mailer = mailer
        self.code_ttl = code_ttl
        self.cooldown_ttl = cooldown_ttl

    def issue(self, email: str) -> None:
        """Send a fresh code to email, replacing any code issued earlier.

        Raises RateLimited while the cooldown marker is present and
        DeliveryFailed if the email cannot be handed off.
        """
        if self.cache.exists(cooldown_key(email)):
            logger.info("Code request for %s refused: cooldown active", mask_email(email))
            raise RateLimited("Please wait before requesting another code", retry_after=self.cooldown_ttl)

        code = generate_code()
        self.cache.set(code_key(email), code, self.code_ttl)
        self.cache.set(cooldown_key(email), str(int(time.time())), self.cooldown_ttl)
        self.mailer.send_verification_code(email, code)
        logger.info("Issued verification code for %s", mask_email(email))
