"""
Storage port for firms, memberships, profiles and access grants.

Keep this small and framework-agnostic so tests can supply the in-memory
store. Implementations must enforce the uniqueness constraints the services
rely on (unique firm name, one membership per user, one owner per firm,
unique (client_id, advisor_id) grant) and raise `StoreUnavailable` on
backend failures.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Tuple

from identity_access.domain import Identity

from .models import AccessGrant, Firm, Membership, Profile


class AdvisoryRepoProtocol(Protocol):
    # --- Firms --------------------------------------------------------------------
    def get_firm(self, firm_id: str) -> Optional[Firm]: ...

    def get_firm_by_name(self, name: str) -> Optional[Firm]: ...

    def insert_firm_if_absent(self, name: str) -> Tuple[Firm, bool]:
        """Return (firm, created); exactly one concurrent caller sees created=True."""
        ...

    def claim_firm_owner(self, firm_id: str, user_id: str) -> bool:
        """Atomically set `owner_id` when unset; True only for the first claimant."""
        ...

    # --- Memberships --------------------------------------------------------------
    def get_membership(self, user_id: str) -> Optional[Membership]: ...

    def upsert_membership(self, firm_id: str, user_id: str, role: str) -> Membership: ...

    def list_memberships(self, firm_id: str, roles: Iterable[str]) -> List[Membership]: ...

    # --- Profiles -----------------------------------------------------------------
    def get_profile(self, user_id: str) -> Optional[Profile]: ...

    def upsert_profile(self, profile: Profile) -> Profile: ...

    def find_identity_by_email(self, email: str) -> Optional[Identity]: ...

    # --- Access grants ------------------------------------------------------------
    def get_grant(self, client_id: str, advisor_id: str) -> Optional[AccessGrant]: ...

    def upsert_grant(self, firm_id: str, client_id: str, advisor_id: str, granted_by: str) -> Tuple[AccessGrant, bool]:
        """Return (grant, changed); identical existing grants are left untouched."""
        ...

    def delete_grant(self, client_id: str, advisor_id: str) -> bool: ...

    def list_grants_for_advisor(self, advisor_id: str) -> List[AccessGrant]: ...

    def list_grants_for_client(self, client_id: str) -> List[AccessGrant]: ...


__all__ = ["AdvisoryRepoProtocol"]
