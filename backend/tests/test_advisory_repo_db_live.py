"""
DBAdvisoryRepo against a live Supabase Postgres (optional).

Runs only when ADVISORY_TEST_DSN points at a database with the migrations in
`supabase/migrations` applied; otherwise the tests skip.
"""
from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from utils.db import require_db_or_skip


@pytest.fixture
def live_repo():
    dsn = require_db_or_skip()
    from advisory.repo_db import DBAdvisoryRepo

    return DBAdvisoryRepo(dsn)


def test_concurrent_firm_creation_has_one_winner(live_repo):
    name = f"Live Firm {uuid.uuid4()}"

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda _: live_repo.insert_firm_if_absent(name), range(6)))

    assert len({firm.id for firm, _ in results}) == 1
    assert sum(1 for _, created in results if created) == 1


def test_unknown_email_lookup_returns_none(live_repo):
    assert live_repo.find_identity_by_email(f"nobody-{uuid.uuid4()}@example.invalid") is None
