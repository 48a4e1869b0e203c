"""
Invitation Orchestrator: invite advisors and clients, share and revoke access.

Why:
    Each workflow is a short linear sequence of remote calls (identity
    provider + store) with idempotent branching on "does this identity
    already exist". Re-invoking a workflow with the same input is always safe.

Design:
    - No in-process lock spans the provider and store calls. Races are settled
      by the store's uniqueness constraints; a provider `AlreadyExists` during
      the new-identity branch falls back to the existing-identity branch.
    - The identity is created before any membership is written, so an aborted
      invite never leaves a membership without an identity.
    - Guard failures abort before any mutation. Store failures after a partial
      mutation surface as `StoreUnavailable` without rollback.

Security:
    - The firm of a client invitation always comes from the caller's
      membership; request-supplied firm ids or roles are never consulted.
    - Existing identities are never moved between firms.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional, Tuple

from identity_access.domain import ADVISOR_ROLES, ROLE_CLIENT, Identity, normalize_email
from identity_access.provider import IdentityProviderProtocol

from ..errors import AlreadyExists, Forbidden, InviteDeliveryFailed, ValidationError
from ..models import AccessGrant, CurrentActor, InviteResult
from .directory import MembershipDirectory
from .guard import AuthorizationGuard
from .ledger import AccessGrantLedger

logger = logging.getLogger("rollover.advisory.invitations")

MAX_NAME = 100

ADVISOR_EXISTS_MESSAGE = "User already exists, added to firm"
ADVISOR_INVITED_MESSAGE = "Advisor invited successfully. They will receive an email to set their password."
CLIENT_EXISTS_MESSAGE = "Client already exists, granted access"
CLIENT_INVITED_MESSAGE = "Client invited successfully. They will receive an email to set their password."


def _clean_name(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("invalid_name")
    trimmed = value.strip()
    if len(trimmed) > MAX_NAME:
        raise ValidationError("invalid_name")
    return trimmed


def _clean_email(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("invalid_email")
    email = normalize_email(value)
    if email and ("@" not in email or email.startswith("@") or email.endswith("@") or " " in email):
        raise ValidationError("invalid_email")
    return email


def _require(fields: Dict[str, str]) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValidationError("missing_fields", "Missing required fields: " + ", ".join(missing))


def _tail(value: str) -> str:
    return value[-6:] if value else ""


@dataclass
class InvitationOrchestrator:
    directory: MembershipDirectory
    ledger: AccessGrantLedger
    guard: AuthorizationGuard
    provider: IdentityProviderProtocol
    redirect_to: Optional[str] = None

    # --- Shared helpers -------------------------------------------------------------
    def _create_or_reuse(self, email: str, metadata: Dict[str, Any]) -> Tuple[Identity, bool]:
        """Return (identity, requires_invite).

        Invites a new pending identity; if the provider reports the email as
        already registered (a concurrent invite won), re-reads the winner.
        """
        try:
            identity = self.provider.create_pending_identity(email, metadata, redirect_to=self.redirect_to)
            return identity, True
        except AlreadyExists:
            existing = self.directory.find_identity_by_email(email)
            if existing is None:
                logger.warning("Provider reported existing identity that the store cannot see")
                raise InviteDeliveryFailed(
                    "invite_failed", "Failed to invite user: email already registered but not found"
                )
            return existing, False

    def _check_not_foreign(self, identity: Identity, firm_id: str) -> None:
        membership = self.directory.get_membership(identity.id)
        if membership is not None and membership.firm_id != firm_id:
            raise Forbidden("member_of_other_firm", "User already belongs to another firm")

    def _check_advisor_target(self, identity: Identity, firm_id: Optional[str]) -> None:
        """An existing identity may only be (re)attached as advisor of its own firm.

        `firm_id=None` means the firm does not exist yet, so any membership is foreign.
        """
        current = self.directory.get_membership(identity.id)
        if current is None:
            return
        if firm_id is None or current.firm_id != firm_id:
            raise Forbidden("member_of_other_firm", "User already belongs to another firm")
        if current.role == ROLE_CLIENT:
            raise Forbidden("target_is_client", "User is a client of this firm")

    # --- Invite advisor ---------------------------------------------------------------
    def invite_advisor(
        self,
        email: Any,
        first_name: Any,
        last_name: Any,
        firm_name: Any,
        *,
        actor: Optional[CurrentActor] = None,
    ) -> InviteResult:
        """Invite (or re-attach) an advisor to the named firm, creating the firm when new.

        Permissions:
            System actor only (admin API key or operator CLI). When `actor` is
            omitted the caller is trusted to have checked the admin credential.

        Behavior:
            - The first membership ever recorded for the firm becomes `owner`,
              later ones `advisor`. The returned role is the stored one.
            - Existing identity: profile upserted, membership assigned,
              `requires_invite=False`.
            - New identity: provider invitation first; on failure
              `InviteDeliveryFailed` and no membership.
        """
        if actor is not None and not actor.can_invite_advisor:
            raise Forbidden("admin_required", "Only the system administrator can invite advisors")
        email_n = _clean_email(email)
        first = _clean_name(first_name)
        last = _clean_name(last_name)
        firm_label = firm_name.strip() if isinstance(firm_name, str) else firm_name
        _require({"email": email_n, "first_name": first, "last_name": last, "firm_name": firm_label or ""})

        # Reject existing identities before the firm row is created.
        identity = self.directory.find_identity_by_email(email_n)
        if identity is not None:
            existing_firm = self.directory.find_firm(firm_name)
            self._check_advisor_target(identity, existing_firm.id if existing_firm else None)

        firm_id, firm_created = self.directory.ensure_firm(firm_name)
        requires_invite = False
        if identity is None:
            metadata = {
                "first_name": first,
                "last_name": last,
                "firm_id": firm_id,
                "role": self.directory.predicted_role(firm_id),
            }
            identity, requires_invite = self._create_or_reuse(email_n, metadata)
            if not requires_invite:
                self._check_advisor_target(identity, firm_id)

        self.directory.upsert_profile(identity.id, email_n, first, last)
        membership = self.directory.assign_membership(firm_id, identity.id)
        logger.info(
            "Advisor invitation processed: fid_tail=%s uid_tail=%s role=%s new=%s",
            _tail(firm_id),
            _tail(identity.id),
            membership.role,
            requires_invite,
        )
        return InviteResult(
            user_id=identity.id,
            firm_id=firm_id,
            role=membership.role,
            requires_invite=requires_invite,
            message=ADVISOR_INVITED_MESSAGE if requires_invite else ADVISOR_EXISTS_MESSAGE,
            firm_created=firm_created,
        )

    # --- Invite client ----------------------------------------------------------------
    def invite_client(self, caller_id: str, email: Any, first_name: Any, last_name: Any) -> InviteResult:
        """Invite a client into the caller's firm and grant the caller access.

        Permissions:
            Caller must be an advisor or owner; the firm is the caller's own.
        """
        email_n = _clean_email(email)
        first = _clean_name(first_name)
        last = _clean_name(last_name)
        _require({"email": email_n, "first_name": first, "last_name": last})

        caller = self.guard.require_role(caller_id, None, ADVISOR_ROLES)
        firm_id = caller.firm_id

        identity = self.directory.find_identity_by_email(email_n)
        requires_invite = False
        if identity is None:
            metadata = {
                "first_name": first,
                "last_name": last,
                "firm_id": firm_id,
                "advisor_id": caller_id,
                "role": ROLE_CLIENT,
            }
            identity, requires_invite = self._create_or_reuse(email_n, metadata)
        if not requires_invite:
            if identity.id == caller_id:
                raise Forbidden("cannot_invite_self", "You cannot invite yourself")
            self._check_not_foreign(identity, firm_id)
            current = self.directory.get_membership(identity.id)
            if current is not None and current.role in ADVISOR_ROLES:
                raise Forbidden("target_not_client", "User is an advisor of this firm")

        self.directory.upsert_profile(identity.id, email_n, first, last)
        self.directory.assign_membership(firm_id, identity.id, role=ROLE_CLIENT)
        self.ledger.grant(firm_id, identity.id, caller_id, granted_by=caller_id)
        logger.info(
            "Client invitation processed: fid_tail=%s cid_tail=%s aid_tail=%s new=%s",
            _tail(firm_id),
            _tail(identity.id),
            _tail(caller_id),
            requires_invite,
        )
        return InviteResult(
            user_id=identity.id,
            firm_id=firm_id,
            role=ROLE_CLIENT,
            requires_invite=requires_invite,
            message=CLIENT_INVITED_MESSAGE if requires_invite else CLIENT_EXISTS_MESSAGE,
        )

    # --- Share / revoke ---------------------------------------------------------------
    def share_client(self, caller_id: str, client_id: str, advisor_id: str) -> AccessGrant:
        """Extend the caller's access to `client_id` to another advisor of the same firm.

        Permissions:
            Caller must already hold a grant for the client; being the
            original inviter is not required.
        """
        _require({"client_id": client_id or "", "advisor_id": advisor_id or ""})
        held = self.guard.require_client_access(caller_id, client_id)
        firm_id = held.firm_id
        self.guard.require_role(caller_id, firm_id, ADVISOR_ROLES)
        target = self.directory.get_membership(advisor_id)
        if target is None or target.firm_id != firm_id or target.role not in ADVISOR_ROLES:
            raise Forbidden("target_not_advisor", "Target is not an advisor of this firm")
        return self.ledger.grant(firm_id, client_id, advisor_id, granted_by=caller_id)

    def revoke_client_access(self, caller_id: str, client_id: str, advisor_id: str) -> bool:
        """Remove `advisor_id`'s grant for `client_id` (the caller's own included).

        Returns whether a grant was removed; an absent grant is not an error.
        """
        _require({"client_id": client_id or "", "advisor_id": advisor_id or ""})
        self.guard.require_client_access(caller_id, client_id)
        return self.ledger.revoke(client_id, advisor_id)


__all__ = [
    "InvitationOrchestrator",
    "ADVISOR_EXISTS_MESSAGE",
    "ADVISOR_INVITED_MESSAGE",
    "CLIENT_EXISTS_MESSAGE",
    "CLIENT_INVITED_MESSAGE",
]
