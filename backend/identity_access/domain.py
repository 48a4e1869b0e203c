"""
Identity domain constants and simple value objects.

Why:
- Centralize firm roles to avoid drift between services, tools and web layer.
- Keep terms aligned with the glossary (Firm, Membership, Access Grant).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ROLE_OWNER = "owner"
ROLE_ADVISOR = "advisor"
ROLE_CLIENT = "client"
ALLOWED_ROLES = frozenset({ROLE_OWNER, ROLE_ADVISOR, ROLE_CLIENT})
ADVISOR_ROLES = frozenset({ROLE_OWNER, ROLE_ADVISOR})


@dataclass(frozen=True)
class Identity:
    """An identity issued by the external provider.

    `metadata` carries the invitation payload (first_name, last_name, ...) as
    stored by the provider; it is never written back by this service.
    """

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


__all__ = [
    "ROLE_OWNER",
    "ROLE_ADVISOR",
    "ROLE_CLIENT",
    "ALLOWED_ROLES",
    "ADVISOR_ROLES",
    "Identity",
    "normalize_email",
]
