"""
Onboarding and account views for signed-in identities.

Behavior:
    - `complete_onboarding`: runs after an invited identity first signs in.
      Ensures a profile exists (seeded from the invitation metadata), checks
      the firm membership and returns the home route for the role.
    - `account`: profile, firm name and capabilities of the current actor
      (settings page).
    - `sign_out`: forwards the credential to the provider; never fails.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from identity_access.domain import Identity
from identity_access.provider import IdentityProviderProtocol

from ..errors import Forbidden
from ..models import CurrentActor, Profile
from .directory import MembershipDirectory
from .guard import AuthorizationGuard

logger = logging.getLogger("rollover.advisory.onboarding")


@dataclass(frozen=True)
class Account:
    actor: CurrentActor
    profile: Optional[Profile]
    firm_name: Optional[str]


@dataclass
class OnboardingService:
    directory: MembershipDirectory
    guard: AuthorizationGuard
    provider: Optional[IdentityProviderProtocol] = None

    def ensure_profile(self, identity: Identity) -> Profile:
        """Create a minimal profile when missing; existing profiles are left as they are."""
        profile = self.directory.get_profile(identity.id)
        if profile is not None:
            return profile
        meta = identity.metadata or {}
        first = identity.first_name or str(meta.get("first_name") or "") or None
        last = identity.last_name or str(meta.get("last_name") or "") or None
        logger.info("Profile created on first sign-in: uid_tail=%s", identity.id[-6:])
        return self.directory.upsert_profile(identity.id, identity.email, first, last)

    def complete_onboarding(self, identity: Identity) -> CurrentActor:
        """Return the current actor once the identity is onboarded.

        Raises:
            Forbidden(not_assigned_to_firm): the identity has no membership yet.
        """
        self.ensure_profile(identity)
        actor = self.guard.current_actor(identity)
        if actor.firm_id is None:
            raise Forbidden(
                "not_assigned_to_firm",
                "Your account is not assigned to a firm yet. Ask an admin to invite you.",
            )
        return actor

    def account(self, identity: Identity) -> Account:
        actor = self.guard.current_actor(identity)
        firm = self.directory.get_firm(actor.firm_id) if actor.firm_id else None
        return Account(
            actor=actor,
            profile=self.directory.get_profile(identity.id),
            firm_name=firm.name if firm else None,
        )

    def sign_out(self, token: str) -> None:
        if self.provider is None or not token:
            return
        self.provider.sign_out(token)


__all__ = ["Account", "OnboardingService"]
