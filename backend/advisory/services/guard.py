"""
Authorization Guard: role and client-access policy checks.

Why:
    Privileged operations re-validate the caller server-side from their
    membership and grants. Client-supplied firm ids or roles are never trusted.

Behavior:
    - `check_*` return a `Decision` (allow/deny plus reason on deny).
    - `require_*` raise `Forbidden(reason)` on deny and return the backing row.
    - `current_actor` computes the capability set once per request so routes
      do not re-derive role branching ad hoc.

Both checks are pure reads against the Membership Directory and the Access
Grant Ledger.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from identity_access.domain import ADVISOR_ROLES, Identity

from ..errors import Forbidden
from ..models import AccessGrant, CurrentActor, Decision, Membership
from .directory import MembershipDirectory
from .ledger import AccessGrantLedger

SYSTEM_ACTOR_ID = "system"


@dataclass
class AuthorizationGuard:
    directory: MembershipDirectory
    ledger: AccessGrantLedger

    def check_role(self, user_id: str, firm_id: Optional[str], allowed_roles: Iterable[str]) -> Decision:
        """Is `user_id` a member of `firm_id` with one of `allowed_roles`?

        `firm_id=None` means "whatever firm the caller belongs to"; the firm
        then comes from the caller's own membership.
        """
        membership = self.directory.get_membership(user_id)
        if membership is None:
            return Decision(False, "not_a_member")
        if firm_id is not None and membership.firm_id != firm_id:
            return Decision(False, "wrong_firm", membership=membership)
        if membership.role not in set(allowed_roles):
            return Decision(False, "role_not_allowed", membership=membership)
        return Decision(True, membership=membership)

    def require_role(self, user_id: str, firm_id: Optional[str], allowed_roles: Iterable[str]) -> Membership:
        decision = self.check_role(user_id, firm_id, allowed_roles)
        if not decision.allowed or decision.membership is None:
            raise Forbidden(decision.reason or "forbidden")
        return decision.membership

    def check_client_access(self, advisor_id: str, client_id: str) -> Decision:
        grant = self.ledger.get(client_id, advisor_id)
        if grant is None:
            return Decision(False, "no_client_access")
        return Decision(True, grant=grant)

    def require_client_access(self, advisor_id: str, client_id: str) -> AccessGrant:
        decision = self.check_client_access(advisor_id, client_id)
        if not decision.allowed or decision.grant is None:
            raise Forbidden(decision.reason or "forbidden")
        return decision.grant

    def current_actor(self, identity: Identity) -> CurrentActor:
        membership = self.directory.get_membership(identity.id)
        if membership is None:
            return CurrentActor(user_id=identity.id, email=identity.email)
        is_advisor = membership.role in ADVISOR_ROLES
        return CurrentActor(
            user_id=identity.id,
            email=identity.email,
            firm_id=membership.firm_id,
            role=membership.role,
            can_invite_client=is_advisor,
            can_manage_grants=is_advisor,
        )

    @staticmethod
    def system_actor() -> CurrentActor:
        """Actor for the admin API key and the operator CLI; the only one allowed to invite advisors."""
        return CurrentActor(user_id=SYSTEM_ACTOR_ID, is_system=True, can_invite_advisor=True)


__all__ = ["AuthorizationGuard", "SYSTEM_ACTOR_ID"]
