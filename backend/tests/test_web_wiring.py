"""
Service wiring — store and provider selection from configuration.
"""
from __future__ import annotations

import pytest

from advisory.repo_memory import InMemoryAdvisoryRepo
from identity_access.provider import NullIdentityProvider
from web import wiring


def test_memory_store_and_null_provider_without_configuration():
    wiring.set_repo(None)
    wiring.set_provider(None)

    svc = wiring.get_services()

    assert isinstance(svc.repo, InMemoryAdvisoryRepo)
    assert isinstance(svc.provider, NullIdentityProvider)
    assert svc.invitations.redirect_to == "http://localhost:5173/auth/callback"
    assert wiring.get_services() is svc


def test_set_repo_rebuilds_services(repo):
    before = wiring.get_services()
    replacement = InMemoryAdvisoryRepo()

    wiring.set_repo(replacement)
    after = wiring.get_services()

    assert after is not before
    assert after.repo is replacement
    assert after.directory.repo is replacement


def test_db_failure_falls_back_outside_prod(monkeypatch: pytest.MonkeyPatch):
    import advisory.repo_db as repo_db

    def _unavailable(*args, **kwargs):
        raise RuntimeError("psycopg missing")

    monkeypatch.delenv("ADVISORY_STORE", raising=False)
    monkeypatch.setattr(repo_db, "DBAdvisoryRepo", _unavailable)

    assert isinstance(wiring._build_default_repo(), InMemoryAdvisoryRepo)

    monkeypatch.setenv("ROLLOVER_ENV", "prod")
    with pytest.raises(RuntimeError):
        wiring._build_default_repo()
