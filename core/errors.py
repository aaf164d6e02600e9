"""
core/errors.py -- Domain error taxonomy shared by services and the API layer.

Services raise these at the point of detection; api/main.py maps every
RosterError subclass onto the standard ErrorResponse envelope using the
status_code and code carried by the exception. Nothing below api/ knows about
HTTP beyond these two attributes.

Layer rule: core/ is the kernel. No imports from api/, auth/, cache/,
directory/, or mail/.
"""

from __future__ import annotations


class RosterError(Exception):
    """Base class for every expected, client-visible failure."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationFailed(RosterError):
    """Malformed input rejected before any side effect.

    fields maps a field name to its error message so clients can highlight
    the offending inputs.
    """

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}


class RateLimited(RosterError):
    """A cooldown marker is present; retry_after is the fixed window in seconds."""

    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class Unauthorized(RosterError):
    status_code = 401
    code = "unauthorized"


class Conflict(RosterError):
    status_code = 409
    code = "conflict"


class NotFound(RosterError):
    status_code = 404
    code = "not_found"


class DeliveryFailed(RosterError):
    """Outbound email could not be handed to the SMTP server."""

    status_code = 502
    code = "delivery_failed"
