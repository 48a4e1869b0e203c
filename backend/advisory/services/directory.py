"""Membership Directory: firms, memberships and profiles (framework-independent).

Why:
    Single source of truth for "which firm does this person belong to and what
    is their role". Owner auto-assignment lives here so both the HTTP boundary
    and the operator CLI share one rule.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, List, Optional, Tuple

from identity_access.domain import (
    ALLOWED_ROLES,
    ADVISOR_ROLES,
    ROLE_ADVISOR,
    ROLE_OWNER,
    Identity,
    normalize_email,
)

from ..errors import AlreadyExists, ValidationError
from ..models import Firm, Membership, Profile
from ..ports import AdvisoryRepoProtocol

logger = logging.getLogger("rollover.advisory.directory")

MAX_FIRM_NAME = 200


def _normalize_firm_name(name: object) -> str:
    if not isinstance(name, str):
        raise ValidationError("invalid_firm_name")
    trimmed = " ".join(name.split())
    if not trimmed or len(trimmed) > MAX_FIRM_NAME:
        raise ValidationError("invalid_firm_name")
    return trimmed


@dataclass
class MembershipDirectory:
    repo: AdvisoryRepoProtocol

    def get_membership(self, user_id: str) -> Optional[Membership]:
        if not user_id:
            return None
        return self.repo.get_membership(user_id)

    def get_firm(self, firm_id: str) -> Optional[Firm]:
        return self.repo.get_firm(firm_id)

    def find_firm(self, name: str) -> Optional[Firm]:
        """Read-only lookup by (whitespace-normalized) name."""
        return self.repo.get_firm_by_name(_normalize_firm_name(name))

    def ensure_firm(self, name: str) -> Tuple[str, bool]:
        """Look up a firm by exact (whitespace-normalized) name; create it if absent.

        Returns (firm_id, created). Under concurrent creation exactly one caller
        sees created=True; the store's unique name constraint decides.
        """
        firm, created = self.repo.insert_firm_if_absent(_normalize_firm_name(name))
        if created:
            logger.info("Firm created: fid_tail=%s", firm.id[-6:])
        return firm.id, created

    def predicted_role(self, firm_id: str) -> str:
        """Role an advisor invitation would receive right now (owner slot still free?)."""
        firm = self.repo.get_firm(firm_id)
        return ROLE_OWNER if firm is not None and firm.owner_id is None else ROLE_ADVISOR

    def assign_membership(self, firm_id: str, user_id: str, role: str | None = None) -> Membership:
        """Idempotently record `user_id` as a member of `firm_id`.

        Behavior:
            - role=None (advisor invitations): `owner` iff this is the first
              membership ever recorded for the firm, decided by an atomic claim
              on the firm's owner slot; otherwise `advisor`. An existing
              owner/advisor membership in the same firm is returned unchanged.
            - role="client": explicit, bypasses auto assignment.
        """
        if role is not None and role not in ALLOWED_ROLES:
            raise ValidationError("invalid_role")
        if role is not None:
            return self.repo.upsert_membership(firm_id, user_id, role)

        current = self.repo.get_membership(user_id)
        if current and current.firm_id == firm_id and current.role in ADVISOR_ROLES:
            return current
        if self.repo.claim_firm_owner(firm_id, user_id) or self._holds_owner_slot(firm_id, user_id):
            try:
                return self.repo.upsert_membership(firm_id, user_id, ROLE_OWNER)
            except AlreadyExists:
                # An owner row already exists (e.g. legacy data without owner_id).
                logger.warning("Owner slot claimed but owner row exists: fid_tail=%s", firm_id[-6:])
        return self.repo.upsert_membership(firm_id, user_id, ROLE_ADVISOR)

    def _holds_owner_slot(self, firm_id: str, user_id: str) -> bool:
        # A concurrent re-invite of the same person may have claimed the slot first.
        firm = self.repo.get_firm(firm_id)
        return firm is not None and firm.owner_id == user_id

    def list_members(self, firm_id: str, roles: Iterable[str] = ADVISOR_ROLES) -> List[Membership]:
        return self.repo.list_memberships(firm_id, roles)

    # --- Profiles -----------------------------------------------------------------
    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.repo.get_profile(user_id)

    def upsert_profile(self, user_id: str, email: str, first_name: str | None, last_name: str | None) -> Profile:
        profile = Profile(
            user_id=user_id,
            email=normalize_email(email),
            first_name=(first_name or "").strip() or None,
            last_name=(last_name or "").strip() or None,
        )
        return self.repo.upsert_profile(profile)

    def find_identity_by_email(self, email: str) -> Optional[Identity]:
        return self.repo.find_identity_by_email(email)


__all__ = ["MembershipDirectory"]
