"""
Configuration and startup security checks for the rollover portal backend.

Why: The backend runs with elevated store privileges (service-role DSN and
Supabase Service Role key). A misconfigured production deployment would
expose every firm's clients, so we fail fast instead of starting.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os
import re
from urllib.parse import urlparse

MIN_ADMIN_KEY_LENGTH = 32
DEFAULT_INVITE_REDIRECT_URL = "http://localhost:5173/auth/callback"

_PLACEHOLDERS = ("DUMMY", "CHANGE_ME", "CHANGEME", "YOUR_")


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_env() -> str:
    return (os.getenv("ROLLOVER_ENV", "dev") or "dev").strip().lower()


def is_prod_like() -> bool:
    return _is_prod_like(current_env())


def invite_redirect_url() -> str:
    """Where invitation emails send the recipient to set their password."""
    return (os.getenv("INVITE_REDIRECT_URL") or DEFAULT_INVITE_REDIRECT_URL).strip()


def admin_api_key() -> str:
    return (os.getenv("ADMIN_API_KEY") or "").strip()


def _is_placeholder(value: str) -> bool:
    upper = value.upper()
    return any(upper.startswith(p) for p in _PLACEHOLDERS)


def _dsn_disables_tls(dsn: str) -> bool:
    return re.search(r"sslmode\s*=\s*disable", dsn or "", re.IGNORECASE) is not None


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only; dev and test remain permissive):
    - SUPABASE_SERVICE_ROLE_KEY set and not a placeholder.
    - ADMIN_API_KEY set, not a placeholder and at least 32 characters.
    - Database DSNs must not disable TLS.
    - SUPABASE_URL and INVITE_REDIRECT_URL must use https.
    """
    if not is_prod_like():
        return

    # 1) Supabase Service Role key
    srole = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not srole or _is_placeholder(srole):
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a placeholder in production."
        )

    # 2) Admin API key guards advisor invitations
    key = admin_api_key()
    if not key or _is_placeholder(key) or len(key) < MIN_ADMIN_KEY_LENGTH:
        raise SystemExit(
            f"Refusing to start: ADMIN_API_KEY must be set to a random value of at least {MIN_ADMIN_KEY_LENGTH} characters in production."
        )

    # 3) Postgres TLS
    for var in ("ADVISORY_DATABASE_URL", "SERVICE_ROLE_DSN", "DATABASE_URL", "SUPABASE_DB_URL"):
        if _dsn_disables_tls(os.getenv(var, "")):
            raise SystemExit(
                f"Refusing to start: {var} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 4) Public endpoints must use HTTPS
    for var in ("SUPABASE_URL", "INVITE_REDIRECT_URL"):
        value = (os.getenv(var) or "").strip()
        if not value:
            continue
        scheme = (urlparse(value).scheme or "").lower()
        if scheme != "https":
            raise SystemExit(f"Refusing to start: {var} must use https in production (got {scheme or 'no scheme'}).")

    # 5) The in-memory store is for development only
    if (os.getenv("ADVISORY_STORE") or "").strip().lower() == "memory":
        raise SystemExit("Refusing to start: ADVISORY_STORE=memory is not allowed in production/staging.")


__all__ = [
    "ensure_secure_config_on_startup",
    "current_env",
    "is_prod_like",
    "invite_redirect_url",
    "admin_api_key",
]
