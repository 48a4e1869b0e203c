"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
give every test a fresh in-memory store plus a fake identity provider so no
test depends on Postgres or Supabase being reachable.
"""
import sys
from pathlib import Path

import pytest

# Ensure modules in backend/ are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from advisory.repo_memory import InMemoryAdvisoryRepo  # noqa: E402
from utils.fakes import FakeIdentityProvider  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Start each test in a permissive dev environment.

    Why:
        A few tests opt into prod semantics or set secrets; clearing them here
        keeps leftovers from leaking into unrelated tests in a full run.
    """
    for var in (
        "ROLLOVER_ENV",
        "ADMIN_API_KEY",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "INVITE_REDIRECT_URL",
        "ADVISORY_DATABASE_URL",
        "SERVICE_ROLE_DSN",
        "DATABASE_URL",
        "SUPABASE_DB_URL",
        "CORS_ALLOW_ORIGINS",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ADVISORY_STORE", "memory")
    yield


@pytest.fixture
def repo() -> InMemoryAdvisoryRepo:
    return InMemoryAdvisoryRepo()


@pytest.fixture
def provider(repo: InMemoryAdvisoryRepo) -> FakeIdentityProvider:
    return FakeIdentityProvider(repo)


@pytest.fixture
def services(repo, provider):
    from web.wiring import build_services

    return build_services(repo, provider, redirect_to="https://portal.test/auth/callback")


@pytest.fixture(autouse=True)
def _wire_fakes(repo, provider):
    """Point the web layer at this test's store and provider."""
    from web import wiring

    wiring.set_repo(repo)
    wiring.set_provider(provider)
    yield
    wiring.set_repo(None)
    wiring.set_provider(None)
