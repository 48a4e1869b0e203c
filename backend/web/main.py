"Rollover portal API"
from __future__ import annotations

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from advisory.errors import AdvisoryError, Unauthenticated

from . import config
from .responses import error_response, private_error, private_json
from .routes.access import access_router
from .routes.invitations import invitations_router
from .routes.me import me_router
from .wiring import get_services


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via ROLLOVER_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("ROLLOVER_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
config.ensure_secure_config_on_startup()

logger = logging.getLogger("rollover.web")

app = FastAPI(title="Rollover Portal API", version="0.1.0")

app.include_router(invitations_router)
app.include_router(access_router)
app.include_router(me_router)


# --- Error mapping ---------------------------------------------------------------

@app.exception_handler(AdvisoryError)
async def _advisory_error_handler(request: Request, exc: AdvisoryError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are reported like missing fields (400), not FastAPI's 422.
    return private_error("validation_error", "invalid_payload", "Invalid request body", status_code=400)


# --- Auth Middleware ---------------------------------------------------------------

def _requires_session(path: str) -> bool:
    """Session-authenticated API paths; admin routes check the admin key themselves."""
    if not path.startswith("/api/"):
        return False
    if path.startswith("/api/admin/"):
        return False
    return path != "/api/auth/sign-out"


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    request.state.identity = None
    if request.method == "OPTIONS" or not _requires_session(path):
        return await call_next(request)

    header = request.headers.get("authorization")
    try:
        identity = await asyncio.to_thread(get_services().resolver.resolve, header)
    except Unauthenticated as exc:
        logger.info("Rejected API request: path=%s reason=%s", path, exc.code)
        return error_response(exc)

    # Expose the resolved identity to handlers; roles are never taken from the request.
    request.state.identity = identity
    return await call_next(request)


# --- Security Headers Middleware ---------------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # JSON-only API: nothing may be framed or execute scripts.
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    if request.url.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", "private, no-store")
    return response


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS") or ""
    return [o.strip() for o in raw.split(",") if o.strip()]


# The SPA is served from a different origin (e.g. the Vite dev server).
if _cors_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["authorization", "content-type"],
        allow_credentials=False,
    )


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    return private_json({"status": "healthy"})
