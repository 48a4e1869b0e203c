"""
Wiring of the advisory store, the identity provider and the services.

Why:
    Routes need one shared set of services built from configuration. App
    startup may happen before Supabase or Postgres are reachable locally, so
    everything is built lazily on first use and can be swapped by tests.

Behavior:
    - Store: `ADVISORY_STORE=memory` forces the in-memory store; otherwise the
      Postgres store is used when a DSN is configured. Outside prod-like
      environments an unavailable database degrades to the in-memory store.
    - Provider: a `supabase` client built from SUPABASE_URL and
      SUPABASE_SERVICE_ROLE_KEY; `NullIdentityProvider` (fail closed) when not
      configured.

Security:
    Requires the Service Role key server-side; no secrets reach clients.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import threading
from typing import Optional

from advisory.ports import AdvisoryRepoProtocol
from advisory.repo_memory import InMemoryAdvisoryRepo
from advisory.services.directory import MembershipDirectory
from advisory.services.guard import AuthorizationGuard
from advisory.services.invitations import InvitationOrchestrator
from advisory.services.ledger import AccessGrantLedger
from advisory.services.onboarding import OnboardingService
from advisory.services.roster import ClientRoster
from identity_access.provider import IdentityProviderProtocol, NullIdentityProvider, SupabaseIdentityProvider
from identity_access.resolver import IdentityResolver

from . import config

logger = logging.getLogger("rollover.web")


@dataclass
class Services:
    repo: AdvisoryRepoProtocol
    provider: IdentityProviderProtocol
    resolver: IdentityResolver
    directory: MembershipDirectory
    ledger: AccessGrantLedger
    guard: AuthorizationGuard
    invitations: InvitationOrchestrator
    roster: ClientRoster
    onboarding: OnboardingService


def build_services(
    repo: AdvisoryRepoProtocol,
    provider: IdentityProviderProtocol,
    *,
    redirect_to: Optional[str] = None,
) -> Services:
    directory = MembershipDirectory(repo)
    ledger = AccessGrantLedger(repo)
    guard = AuthorizationGuard(directory, ledger)
    return Services(
        repo=repo,
        provider=provider,
        resolver=IdentityResolver(provider),
        directory=directory,
        ledger=ledger,
        guard=guard,
        invitations=InvitationOrchestrator(directory, ledger, guard, provider, redirect_to=redirect_to),
        roster=ClientRoster(directory, ledger, guard, provider),
        onboarding=OnboardingService(directory, guard, provider),
    )


def _build_default_repo() -> AdvisoryRepoProtocol:
    """Prefer the Postgres store; fall back to in-memory outside production."""
    if (os.getenv("ADVISORY_STORE") or "").strip().lower() == "memory":
        return InMemoryAdvisoryRepo()
    try:
        from advisory.repo_db import DBAdvisoryRepo

        return DBAdvisoryRepo()
    except Exception as exc:
        if config.is_prod_like():
            raise
        logger.warning("Advisory DB store unavailable (%s); using in-memory fallback", exc.__class__.__name__)
        return InMemoryAdvisoryRepo()


def _build_default_provider() -> IdentityProviderProtocol:
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        logger.warning("Supabase not configured; identity provider disabled")
        return NullIdentityProvider()
    try:
        # Lazy import keeps the optional dependency out of test paths.
        from supabase import create_client  # type: ignore

        client = create_client(url, key)
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s", exc.__class__.__name__)
        return NullIdentityProvider()
    logger.info("Supabase identity provider wired")
    return SupabaseIdentityProvider(client)


_LOCK = threading.Lock()
_REPO: Optional[AdvisoryRepoProtocol] = None
_PROVIDER: Optional[IdentityProviderProtocol] = None
_SERVICES: Optional[Services] = None


def get_services() -> Services:
    global _REPO, _PROVIDER, _SERVICES
    with _LOCK:
        if _SERVICES is None:
            if _REPO is None:
                _REPO = _build_default_repo()
            if _PROVIDER is None:
                _PROVIDER = _build_default_provider()
            _SERVICES = build_services(_REPO, _PROVIDER, redirect_to=config.invite_redirect_url())
        return _SERVICES


def set_repo(repo: Optional[AdvisoryRepoProtocol]) -> None:
    """Allow tests to swap the advisory store (None rebuilds from config)."""
    global _REPO, _SERVICES
    with _LOCK:
        _REPO = repo
        _SERVICES = None


def set_provider(provider: Optional[IdentityProviderProtocol]) -> None:
    """Allow tests to provide an identity provider (e.g., a fake)."""
    global _PROVIDER, _SERVICES
    with _LOCK:
        _PROVIDER = provider
        _SERVICES = None


__all__ = ["Services", "build_services", "get_services", "set_repo", "set_provider"]
