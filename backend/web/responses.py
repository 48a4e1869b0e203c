"""
JSON response helpers shared by the API routes.

Why: Every API response is caller-scoped (firm, clients, emails), so all of
them carry `Cache-Control: private, no-store`. Error kinds map to HTTP status
codes here and nowhere else.
"""
from __future__ import annotations

from typing import Any, Dict

from fastapi.responses import JSONResponse

from advisory.errors import (
    AdvisoryError,
    AlreadyExists,
    Forbidden,
    InviteDeliveryFailed,
    StoreUnavailable,
    Unauthenticated,
    ValidationError,
)

PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}

_STATUS = {
    Unauthenticated: 401,
    Forbidden: 403,
    ValidationError: 400,
    AlreadyExists: 409,
    InviteDeliveryFailed: 502,
    StoreUnavailable: 503,
}

_DEFAULT_MESSAGES = {
    Unauthenticated: "Authentication required",
    Forbidden: "You do not have permission to perform this action",
    ValidationError: "Invalid request",
    AlreadyExists: "Already exists",
    StoreUnavailable: "The data store is unavailable, please retry.",
}


def status_for(exc: AdvisoryError) -> int:
    for cls, status in _STATUS.items():
        if isinstance(exc, cls):
            return status
    return 500


def private_json(payload: Dict[str, Any], *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def private_error(error: str, detail: str, message: str, *, status_code: int) -> JSONResponse:
    """Return `{success: false, error, detail, message}` with private, no-store headers."""
    return private_json(
        {"success": False, "error": error, "detail": detail, "message": message},
        status_code=status_code,
    )


def error_response(exc: AdvisoryError) -> JSONResponse:
    """Render an error kind.

    `InviteDeliveryFailed` messages are surfaced verbatim; store failures
    always use the generic retry message.
    """
    message = exc.message if exc.message != exc.code else ""
    if isinstance(exc, StoreUnavailable) or not message:
        for cls, default in _DEFAULT_MESSAGES.items():
            if isinstance(exc, cls):
                message = default
                break
    return private_error(exc.kind, exc.code, message or exc.code, status_code=status_for(exc))


__all__ = ["PRIVATE_HEADERS", "private_json", "private_error", "error_response", "status_for"]
