"""Plain value objects for firms, memberships, grants and workflow results."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Firm:
    id: str
    name: str
    owner_id: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Membership:
    firm_id: str
    user_id: str
    role: str
    created_at: Optional[str] = None


@dataclass(frozen=True)
class AccessGrant:
    firm_id: str
    client_id: str
    advisor_id: str
    granted_by: str
    created_at: str


@dataclass(frozen=True)
class Profile:
    user_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.email


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy check: allow/deny plus the reason on deny."""

    allowed: bool
    reason: str | None = None
    membership: Optional[Membership] = None
    grant: Optional[AccessGrant] = None


@dataclass(frozen=True)
class CurrentActor:
    """The caller as seen by the Authorization Guard, computed once per request."""

    user_id: str
    email: str = ""
    firm_id: str | None = None
    role: str | None = None
    is_system: bool = False
    can_invite_client: bool = False
    can_invite_advisor: bool = False
    can_manage_grants: bool = False

    @property
    def home_path(self) -> str:
        return "/client" if self.role == "client" else "/app"


@dataclass(frozen=True)
class ClientSummary:
    """One row of an advisor's "my clients" list."""

    user_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class AdvisorAccess:
    """An advisor of the client's firm, with grant metadata when they hold access."""

    user_id: str
    role: str
    email: str = ""
    first_name: str | None = None
    last_name: str | None = None
    granted_by: str | None = None
    granted_at: str | None = None


@dataclass
class InviteResult:
    user_id: str
    firm_id: str
    role: str
    requires_invite: bool
    message: str
    firm_created: bool = False


__all__ = [
    "Firm",
    "Membership",
    "AccessGrant",
    "Profile",
    "Decision",
    "CurrentActor",
    "ClientSummary",
    "AdvisorAccess",
    "InviteResult",
]
