"""
Error kinds for the advisory access-control core.

Each error carries a stable machine-readable `code` (like
`IDTokenVerificationError`) plus an optional human message. The web adapter
maps the class to an HTTP status in one place; services never build
responses themselves.
"""
from __future__ import annotations


class AdvisoryError(Exception):
    """Base class for all error kinds raised by the advisory services."""

    kind = "error"

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class Unauthenticated(AdvisoryError):
    """No credential, or the identity provider rejected it."""

    kind = "unauthenticated"


class Forbidden(AdvisoryError):
    """Authenticated, but the caller lacks the required role or grant."""

    kind = "forbidden"


class ValidationError(AdvisoryError):
    """A required field is missing or malformed."""

    kind = "validation_error"


class AlreadyExists(AdvisoryError):
    """Uniqueness conflict; callers convert this into reuse of the existing row."""

    kind = "already_exists"


class InviteDeliveryFailed(AdvisoryError):
    """The provider could not create the pending identity or send the invitation."""

    kind = "invite_delivery_failed"


class StoreUnavailable(AdvisoryError):
    """The backing store call failed or timed out; safe to retry."""

    kind = "store_unavailable"


__all__ = [
    "AdvisoryError",
    "Unauthenticated",
    "Forbidden",
    "ValidationError",
    "AlreadyExists",
    "InviteDeliveryFailed",
    "StoreUnavailable",
]
