"""
Roster queries for advisors: "my clients", the sharing roster of a client and
guarded email lookup.

Permissions:
    - `my_clients`: caller must be an advisor or owner.
    - `client_roster`: caller must hold a grant for the client.
    - `client_emails`: only ids the caller holds grants for are resolved;
      others are silently dropped.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from identity_access.domain import ADVISOR_ROLES
from identity_access.provider import IdentityProviderProtocol

from ..models import AdvisorAccess, ClientSummary
from .directory import MembershipDirectory
from .guard import AuthorizationGuard
from .ledger import AccessGrantLedger

MAX_EMAIL_LOOKUP = 200


@dataclass
class ClientRoster:
    directory: MembershipDirectory
    ledger: AccessGrantLedger
    guard: AuthorizationGuard
    provider: Optional[IdentityProviderProtocol] = None

    def my_clients(self, caller_id: str) -> List[ClientSummary]:
        self.guard.require_role(caller_id, None, ADVISOR_ROLES)
        items: List[ClientSummary] = []
        for client_id in self.ledger.list_for_advisor(caller_id):
            profile = self.directory.get_profile(client_id)
            if profile is None:
                items.append(ClientSummary(user_id=client_id, email=""))
                continue
            items.append(
                ClientSummary(
                    user_id=client_id,
                    email=profile.email,
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                )
            )
        items.sort(key=lambda c: ((c.last_name or "").lower(), (c.first_name or "").lower(), c.user_id))
        return items

    def client_roster(self, caller_id: str, client_id: str) -> Tuple[List[AdvisorAccess], List[AdvisorAccess]]:
        """Split the firm's advisors into (with_access, without_access) for `client_id`.

        The first list drives the revoke UI, the second the share UI.
        """
        held = self.guard.require_client_access(caller_id, client_id)
        grants = {aid: (by, at) for aid, by, at in self.ledger.list_for_client(client_id)}
        with_access: List[AdvisorAccess] = []
        without_access: List[AdvisorAccess] = []
        for m in self.directory.list_members(held.firm_id, ADVISOR_ROLES):
            profile = self.directory.get_profile(m.user_id)
            granted_by, granted_at = grants.get(m.user_id, (None, None))
            entry = AdvisorAccess(
                user_id=m.user_id,
                role=m.role,
                email=profile.email if profile else "",
                first_name=profile.first_name if profile else None,
                last_name=profile.last_name if profile else None,
                granted_by=granted_by,
                granted_at=granted_at,
            )
            (with_access if m.user_id in grants else without_access).append(entry)
        return with_access, without_access

    def client_emails(self, caller_id: str, client_ids: Iterable[str]) -> List[Tuple[str, str]]:
        """Return (client_id, email) for the requested ids the caller may see.

        Order follows the request; duplicates and unknown ids are dropped.
        """
        requested: List[str] = []
        for cid in client_ids or []:
            if isinstance(cid, str) and cid and cid not in requested:
                requested.append(cid)
        if not requested:
            return []
        self.guard.require_role(caller_id, None, ADVISOR_ROLES)
        allowed = self.ledger.list_for_advisor(caller_id)
        out: List[Tuple[str, str]] = []
        for cid in requested[:MAX_EMAIL_LOOKUP]:
            if cid not in allowed:
                continue
            email = self._email_for(cid)
            if email:
                out.append((cid, email))
        return out

    def _email_for(self, user_id: str) -> str:
        if self.provider is not None:
            identity = self.provider.get_identity(user_id)
            if identity is not None and identity.email:
                return identity.email
        profile = self.directory.get_profile(user_id)
        return profile.email if profile else ""


__all__ = ["ClientRoster"]
