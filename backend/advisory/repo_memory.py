"""
In-memory advisory store for development and tests.

Why: Keep the web adapter and services runnable without Postgres. The store
emulates the database uniqueness constraints (firm name, membership per user,
one owner per firm, grant per client/advisor pair) with a single lock held
only for the duration of one operation, so concurrent requests observe the
same "one winner" semantics as `insert ... on conflict`.
"""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from identity_access.domain import Identity, normalize_email

from .errors import AlreadyExists
from .models import AccessGrant, Firm, Membership, Profile


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryAdvisoryRepo:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.firms: Dict[str, Firm] = {}
        self.firm_ids_by_name: Dict[str, str] = {}
        # memberships[user_id] = Membership (one firm per user)
        self.memberships: Dict[str, Membership] = {}
        self.profiles: Dict[str, Profile] = {}
        # profile_ids_by_email[email] = user_id; the last profile written for an email wins
        self.profile_ids_by_email: Dict[str, str] = {}
        # identities known to the provider but not (yet) profiled here
        self.identities: Dict[str, Identity] = {}
        # grants[(client_id, advisor_id)] = AccessGrant
        self.grants: Dict[Tuple[str, str], AccessGrant] = {}

    def add_identity(self, identity: Identity) -> None:
        """Register a provider identity so email lookups can find it (dev/test seeding)."""
        with self._lock:
            self.identities[normalize_email(identity.email)] = identity

    # --- Firms --------------------------------------------------------------------
    def get_firm(self, firm_id: str) -> Optional[Firm]:
        return self.firms.get(firm_id)

    def get_firm_by_name(self, name: str) -> Optional[Firm]:
        firm_id = self.firm_ids_by_name.get(name)
        return self.firms.get(firm_id) if firm_id else None

    def insert_firm_if_absent(self, name: str) -> Tuple[Firm, bool]:
        with self._lock:
            existing = self.firm_ids_by_name.get(name)
            if existing:
                return self.firms[existing], False
            firm = Firm(id=str(uuid4()), name=name, created_at=_now_iso())
            self.firms[firm.id] = firm
            self.firm_ids_by_name[name] = firm.id
            return firm, True

    def claim_firm_owner(self, firm_id: str, user_id: str) -> bool:
        with self._lock:
            firm = self.firms.get(firm_id)
            if firm is None or firm.owner_id is not None:
                return False
            self.firms[firm_id] = Firm(id=firm.id, name=firm.name, owner_id=user_id, created_at=firm.created_at)
            return True

    # --- Memberships --------------------------------------------------------------
    def get_membership(self, user_id: str) -> Optional[Membership]:
        return self.memberships.get(user_id)

    def upsert_membership(self, firm_id: str, user_id: str, role: str) -> Membership:
        with self._lock:
            current = self.memberships.get(user_id)
            if current and current.firm_id == firm_id and current.role == role:
                return current
            if role == "owner":
                for m in self.memberships.values():
                    if m.firm_id == firm_id and m.role == "owner" and m.user_id != user_id:
                        # Mirrors the partial unique index on (firm_id) where role = 'owner'
                        raise AlreadyExists("owner_exists")
            created_at = current.created_at if current else _now_iso()
            membership = Membership(firm_id=firm_id, user_id=user_id, role=role, created_at=created_at)
            self.memberships[user_id] = membership
            return membership

    def list_memberships(self, firm_id: str, roles: Iterable[str]) -> List[Membership]:
        wanted = set(roles)
        with self._lock:
            items = [m for m in self.memberships.values() if m.firm_id == firm_id and m.role in wanted]
        return sorted(items, key=lambda m: (m.created_at or "", m.user_id))

    # --- Profiles -----------------------------------------------------------------
    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.profiles.get(user_id)

    def upsert_profile(self, profile: Profile) -> Profile:
        with self._lock:
            previous = self.profiles.get(profile.user_id)
            old_key = normalize_email(previous.email) if previous is not None else ""
            if old_key and self.profile_ids_by_email.get(old_key) == profile.user_id:
                del self.profile_ids_by_email[old_key]
            self.profiles[profile.user_id] = profile
            if profile.email:
                self.profile_ids_by_email[normalize_email(profile.email)] = profile.user_id
            return profile

    def find_identity_by_email(self, email: str) -> Optional[Identity]:
        key = normalize_email(email)
        if not key:
            return None
        identity = self.identities.get(key)
        if identity is not None:
            return identity
        with self._lock:
            user_id = self.profile_ids_by_email.get(key)
            p = self.profiles.get(user_id) if user_id else None
        if p is None:
            return None
        return Identity(id=p.user_id, email=p.email, first_name=p.first_name, last_name=p.last_name)

    # --- Access grants ------------------------------------------------------------
    def get_grant(self, client_id: str, advisor_id: str) -> Optional[AccessGrant]:
        return self.grants.get((client_id, advisor_id))

    def upsert_grant(self, firm_id: str, client_id: str, advisor_id: str, granted_by: str) -> Tuple[AccessGrant, bool]:
        with self._lock:
            current = self.grants.get((client_id, advisor_id))
            if current and current.firm_id == firm_id and current.granted_by == granted_by:
                return current, False
            grant = AccessGrant(
                firm_id=firm_id,
                client_id=client_id,
                advisor_id=advisor_id,
                granted_by=granted_by,
                created_at=current.created_at if current else _now_iso(),
            )
            self.grants[(client_id, advisor_id)] = grant
            return grant, True

    def delete_grant(self, client_id: str, advisor_id: str) -> bool:
        with self._lock:
            return self.grants.pop((client_id, advisor_id), None) is not None

    def list_grants_for_advisor(self, advisor_id: str) -> List[AccessGrant]:
        with self._lock:
            return [g for (_, aid), g in self.grants.items() if aid == advisor_id]

    def list_grants_for_client(self, client_id: str) -> List[AccessGrant]:
        with self._lock:
            return [g for (cid, _), g in self.grants.items() if cid == client_id]


__all__ = ["InMemoryAdvisoryRepo"]
