"""
Identity Resolver: bearer credential -> Identity.

Why: Every privileged operation derives the caller from the credential sent
with the request, never from client-supplied ids or roles. There is no
ambient session; callers pass the credential explicitly.
"""
from __future__ import annotations

import re

from advisory.errors import Unauthenticated

from .domain import Identity
from .provider import IdentityProviderProtocol

_BEARER = re.compile(r"^\s*Bearer\s+(?P<token>[A-Za-z0-9._~+/=-]+)\s*$", re.IGNORECASE)


def extract_bearer(header_value: str | None) -> str:
    """Return the token from an `Authorization: Bearer <token>` header value.

    Raises `Unauthenticated` when the header is absent or malformed.
    """
    if not header_value or not header_value.strip():
        raise Unauthenticated("missing_credential")
    m = _BEARER.match(header_value)
    if not m:
        raise Unauthenticated("malformed_credential")
    return m.group("token")


class IdentityResolver:
    def __init__(self, provider: IdentityProviderProtocol) -> None:
        self._provider = provider

    def resolve(self, bearer_credential: str | None) -> Identity:
        """Resolve the caller identity; accepts a header value or a bare token."""
        raw = (bearer_credential or "").strip()
        if raw and not raw.lower().startswith("bearer") and not any(ch.isspace() for ch in raw):
            token = raw
        else:
            token = extract_bearer(raw)
        try:
            return self._provider.authenticate(token)
        except Unauthenticated:
            raise
        except Exception as exc:
            raise Unauthenticated("invalid_credential") from exc


__all__ = ["IdentityResolver", "extract_bearer"]
