"""
Identity provider adapter (Supabase Auth) for authentication and invitations.

Design:
- Framework-agnostic, callable from services and web adapters.
- Duck-typed over a `supabase` client (e.g. `supabase.create_client(url,
  service_role_key)`), which must expose `.auth.get_user(jwt)` and
  `.auth.admin.{invite_user_by_email,get_user_by_id,sign_out}`. Tests pass
  small fakes with the same shape.

Security:
- The client must be initialized with the Service Role key; server-side only.
- Do not log credentials, tokens or email addresses.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from advisory.errors import AlreadyExists, InviteDeliveryFailed, Unauthenticated

from .domain import Identity, normalize_email

logger = logging.getLogger("rollover.identity_access.provider")

# Error codes/messages GoTrue uses when the email is already registered.
_EXISTS_CODES = frozenset({"email_exists", "user_already_exists"})
_EXISTS_HINTS = ("already been registered", "already registered", "already exists")


class IdentityProviderProtocol(Protocol):
    """Credential/session service consumed by the core."""

    def authenticate(self, token: str) -> Identity: ...

    def create_pending_identity(
        self, email: str, metadata: Mapping[str, Any], *, redirect_to: str | None = None
    ) -> Identity: ...

    def get_identity(self, user_id: str) -> Optional[Identity]: ...

    def sign_out(self, token: str) -> None: ...


def _get(obj: Any, key: str) -> Any:
    """Read `key` from either an attribute-style model or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def identity_from_user(user: Any) -> Optional[Identity]:
    """Convert a provider user object (gotrue model or dict) into an Identity."""
    uid = _get(user, "id")
    if not uid:
        return None
    meta = _get(user, "user_metadata") or {}
    if not isinstance(meta, dict):
        meta = {}
    first = str(meta.get("first_name") or "").strip() or None
    last = str(meta.get("last_name") or "").strip() or None
    return Identity(
        id=str(uid),
        email=normalize_email(_get(user, "email")),
        first_name=first,
        last_name=last,
        metadata=dict(meta),
    )


def _is_already_registered(exc: Exception) -> bool:
    code = str(getattr(exc, "code", "") or "").lower()
    if code in _EXISTS_CODES:
        return True
    status = getattr(exc, "status", None)
    text = str(exc).lower()
    if status == 422 and "registered" in text:
        return True
    return any(h in text for h in _EXISTS_HINTS)


class SupabaseIdentityProvider:
    """Supabase Auth implementation of `IdentityProviderProtocol`."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @property
    def _auth(self) -> Any:
        auth = getattr(self._client, "auth", None)
        if auth is None:
            raise RuntimeError("invalid_supabase_client")
        return auth

    def authenticate(self, token: str) -> Identity:
        """Validate a user access token with the provider and return its identity.

        Raises `Unauthenticated` when the token is rejected or the provider
        cannot be reached (fail closed).
        """
        if not token:
            raise Unauthenticated("missing_credential")
        try:
            res = self._auth.get_user(token)
        except Exception as exc:
            logger.warning("Token validation failed: %s", exc.__class__.__name__)
            raise Unauthenticated("invalid_credential") from exc
        identity = identity_from_user(_get(res, "user"))
        if identity is None:
            raise Unauthenticated("invalid_credential")
        return identity

    def create_pending_identity(
        self, email: str, metadata: Mapping[str, Any], *, redirect_to: str | None = None
    ) -> Identity:
        """Create a pending identity and trigger the invitation email.

        Raises:
            AlreadyExists: the email is already registered (caller reuses it).
            InviteDeliveryFailed: any other provider failure; nothing was created.
        """
        options: Dict[str, Any] = {"data": dict(metadata)}
        if redirect_to:
            options["redirect_to"] = redirect_to
        try:
            res = self._auth.admin.invite_user_by_email(normalize_email(email), options)
        except Exception as exc:
            if _is_already_registered(exc):
                raise AlreadyExists("identity_exists") from exc
            logger.warning("Invitation failed: %s", exc.__class__.__name__)
            raise InviteDeliveryFailed("invite_failed", f"Failed to invite user: {exc}") from exc
        identity = identity_from_user(_get(res, "user"))
        if identity is None:
            raise InviteDeliveryFailed("invite_failed", "Failed to invite user: provider returned no user")
        return identity

    def get_identity(self, user_id: str) -> Optional[Identity]:
        try:
            res = self._auth.admin.get_user_by_id(user_id)
        except Exception as exc:
            logger.info("Identity lookup failed: %s", exc.__class__.__name__)
            return None
        return identity_from_user(_get(res, "user"))

    def sign_out(self, token: str) -> None:
        """Revoke the session behind `token`; errors are logged, never raised."""
        if not token:
            return
        try:
            self._auth.admin.sign_out(token)
        except Exception as exc:
            logger.warning("Provider sign-out failed: %s", exc.__class__.__name__)


class NullIdentityProvider:
    """Stand-in used when Supabase is not configured: authentication fails closed."""

    def authenticate(self, token: str) -> Identity:
        raise Unauthenticated("provider_unavailable")

    def create_pending_identity(
        self, email: str, metadata: Mapping[str, Any], *, redirect_to: str | None = None
    ) -> Identity:
        raise InviteDeliveryFailed("provider_unavailable", "Failed to invite user: identity provider not configured")

    def get_identity(self, user_id: str) -> Optional[Identity]:
        return None

    def sign_out(self, token: str) -> None:
        return None


__all__ = [
    "IdentityProviderProtocol",
    "NullIdentityProvider",
    "SupabaseIdentityProvider",
    "identity_from_user",
]
