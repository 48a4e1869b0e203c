"""
DBAdvisoryRepo — SQL shape and error mapping against a scripted psycopg fake.

Focus:
- Insert-if-absent semantics for firms and grants (winner vs. reader).
- Owner claim is a compare-and-set on `firms.owner_id`.
- Email lookup is a single indexed query, never a list-all scan.
- Driver errors map to StoreUnavailable / AlreadyExists.
"""
from __future__ import annotations

import pytest

import advisory.repo_db as repo_db
from advisory.errors import AlreadyExists, StoreUnavailable
from utils.fake_psycopg import FakeDBError, Result, install_fake_psycopg

TS = "2026-01-01T00:00:00+00:00"


@pytest.fixture
def fake_db(monkeypatch):
    return install_fake_psycopg(monkeypatch, repo_db)


@pytest.fixture
def db_repo(fake_db):
    return repo_db.DBAdvisoryRepo(dsn="postgresql://service@db/test")


def test_requires_dsn(monkeypatch, fake_db):
    with pytest.raises(RuntimeError):
        repo_db.DBAdvisoryRepo()
    monkeypatch.setenv("SERVICE_ROLE_DSN", "postgresql://svc@db/x")
    repo = repo_db.DBAdvisoryRepo()
    fake_db.push(Result(one=None))
    repo.get_firm("f-1")
    assert fake_db.dsns == ["postgresql://svc@db/x"]



def test_connect_uses_bounded_timeouts(db_repo, fake_db):
    fake_db.push(Result(one=None))

    db_repo.get_membership("u-1")

    assert fake_db.connect_kwargs == [{"connect_timeout": 5, "options": "-c statement_timeout=5000"}]


def test_connect_timeouts_from_env(monkeypatch, db_repo, fake_db):
    monkeypatch.setenv("ADVISORY_DB_CONNECT_TIMEOUT", "2")
    monkeypatch.setenv("ADVISORY_DB_STATEMENT_TIMEOUT_MS", "not-a-number")
    fake_db.push(Result(one=None))

    db_repo.get_firm("f-1")

    assert fake_db.connect_kwargs[0]["connect_timeout"] == 2
    assert fake_db.connect_kwargs[0]["options"] == "-c statement_timeout=5000"

def test_insert_firm_winner(db_repo, fake_db):
    fake_db.push(Result(one=("f-1", "Acme", None, TS)))

    firm, created = db_repo.insert_firm_if_absent("Acme")

    assert created is True
    assert firm.id == "f-1"
    assert "on conflict (name) do nothing" in fake_db.statements()[0]
    assert fake_db.commits == 1


def test_insert_firm_loser_reads_winner(db_repo, fake_db):
    fake_db.push(Result(one=None), Result(one=("f-1", "Acme", "u-1", TS)))

    firm, created = db_repo.insert_firm_if_absent("Acme")

    assert created is False
    assert firm.owner_id == "u-1"
    assert fake_db.statements()[1].startswith("select")


def test_claim_owner_is_compare_and_set(db_repo, fake_db):
    fake_db.push(Result(one=("f-1",)), Result(one=None))

    assert db_repo.claim_firm_owner("f-1", "u-1") is True
    assert db_repo.claim_firm_owner("f-1", "u-2") is False
    assert "owner_id is null" in fake_db.statements()[0]


def test_find_identity_by_email_uses_single_indexed_query(db_repo, fake_db):
    fake_db.push(Result(one=("u-1", "Ada@Example.com", "Ada", None)))

    identity = db_repo.find_identity_by_email("  ADA@example.com ")

    assert identity.id == "u-1"
    assert identity.email == "ada@example.com"
    sql, params = fake_db.executed[0]
    assert "where u.email = %s" in " ".join(sql.split())
    assert params == ("ada@example.com",)
    assert len(fake_db.executed) == 1


def test_find_identity_by_empty_email_skips_query(db_repo, fake_db):
    assert db_repo.find_identity_by_email("   ") is None
    assert fake_db.executed == []


def test_upsert_grant_changed_and_unchanged(db_repo, fake_db):
    row = ("f-1", "c-1", "a-1", "a-1", TS)
    fake_db.push(Result(one=row))
    grant, changed = db_repo.upsert_grant("f-1", "c-1", "a-1", "a-1")
    assert changed is True
    assert grant.granted_by == "a-1"

    fake_db.push(Result(one=None), Result(one=row))
    grant, changed = db_repo.upsert_grant("f-1", "c-1", "a-1", "a-1")
    assert changed is False
    assert grant.created_at == TS
    assert "on conflict (client_id, advisor_id) do update" in fake_db.statements()[1]


def test_delete_grant_reports_rowcount(db_repo, fake_db):
    fake_db.push(Result(rowcount=1), Result(rowcount=0))
    assert db_repo.delete_grant("c-1", "a-1") is True
    assert db_repo.delete_grant("c-1", "a-1") is False


def test_list_memberships_passes_roles(db_repo, fake_db):
    fake_db.push(Result(rows=[("f-1", "u-1", "owner", TS), ("f-1", "u-2", "advisor", TS)]))

    members = db_repo.list_memberships("f-1", ["owner", "advisor"])

    assert [m.role for m in members] == ["owner", "advisor"]
    _, params = fake_db.executed[0]
    assert params[0] == "f-1"
    assert sorted(params[1]) == ["advisor", "owner"]


def test_unique_violation_maps_to_already_exists(db_repo, fake_db):
    fake_db.push(FakeDBError("duplicate key", sqlstate="23505"))
    with pytest.raises(AlreadyExists):
        db_repo.upsert_membership("f-1", "u-2", "owner")


def test_driver_error_maps_to_store_unavailable(db_repo, fake_db):
    fake_db.push(FakeDBError("connection reset"))
    with pytest.raises(StoreUnavailable) as exc:
        db_repo.get_membership("u-1")
    assert exc.value.message == "The data store is unavailable, please retry."
