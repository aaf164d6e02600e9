"""
core/redact.py -- Masking helpers for log lines.

Email addresses are personal data; log lines carry only enough of the local
part to correlate entries by eye.

Layer rule: core/ is the kernel. No project imports.
"""

from __future__ import annotations


def mask_email(email: str | None) -> str:
    """Return "ne***@example.com" for "new@example.com".

    Local parts of one or two characters keep only the first character.
    Anything without an "@" is fully masked.
    """
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    keep = local[:2] if len(local) > 2 else local[:1]
    return f"{keep}***@{domain}"
