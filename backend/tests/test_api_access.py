"""
Client access API — list, roster, share, revoke and email lookup.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from web import main
from utils.seed import add_client, add_member, seed_firm

pytestmark = pytest.mark.anyio("asyncio")


async def _client():
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.mark.anyio
async def test_list_clients_returns_only_granted(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    mine = add_client(services, provider, firm_id, "mine@example.com", granted_to=owner)
    add_client(services, provider, firm_id, "theirs@example.com", granted_to=advisor)

    async with (await _client()) as client:
        r = await client.get("/api/clients", headers=provider.auth_header(owner))

    assert r.status_code == 200
    assert r.headers.get("Cache-Control") == "private, no-store"
    assert [c["id"] for c in r.json()["clients"]] == [mine.id]


@pytest.mark.anyio
async def test_share_then_roster_then_revoke(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    third = add_member(services, provider, firm_id, "third@acme.test")
    client_identity = add_client(services, provider, firm_id, "c@example.com", granted_to=owner)
    headers = provider.auth_header(owner)

    async with (await _client()) as client:
        shared = await client.post(
            f"/api/clients/{client_identity.id}/access", json={"advisorId": advisor.id}, headers=headers
        )
        roster = await client.get(f"/api/clients/{client_identity.id}/access", headers=headers)
        revoked = await client.delete(f"/api/clients/{client_identity.id}/access/{advisor.id}", headers=headers)
        again = await client.delete(f"/api/clients/{client_identity.id}/access/{advisor.id}", headers=headers)

    assert shared.status_code == 200
    assert shared.json()["granted_by"] == owner.id

    body = roster.json()
    assert {a["id"] for a in body["with_access"]} == {owner.id, advisor.id}
    assert [a["id"] for a in body["without_access"]] == [third.id]

    assert revoked.status_code == 200
    assert revoked.json()["removed"] is True
    assert again.status_code == 200
    assert again.json()["removed"] is False
    assert client_identity.id not in services.ledger.list_for_advisor(advisor.id)


@pytest.mark.anyio
async def test_share_without_grant_is_403(services, provider, repo):
    firm_id, owner, advisor = seed_firm(services, provider)
    third = add_member(services, provider, firm_id, "third@acme.test")
    client_identity = add_client(services, provider, firm_id, "c@example.com", granted_to=owner)

    async with (await _client()) as client:
        r = await client.post(
            f"/api/clients/{client_identity.id}/access",
            json={"advisor_id": third.id},
            headers=provider.auth_header(advisor),
        )

    assert r.status_code == 403
    assert r.json()["detail"] == "no_client_access"
    assert repo.get_grant(client_identity.id, third.id) is None


@pytest.mark.anyio
async def test_share_missing_advisor_id_is_400(services, provider):
    firm_id, owner, _ = seed_firm(services, provider)
    client_identity = add_client(services, provider, firm_id, "c@example.com", granted_to=owner)

    async with (await _client()) as client:
        r = await client.post(
            f"/api/clients/{client_identity.id}/access", json={}, headers=provider.auth_header(owner)
        )

    assert r.status_code == 400
    assert r.json()["detail"] == "missing_fields"


@pytest.mark.anyio
async def test_client_emails_filtered(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    mine = add_client(services, provider, firm_id, "mine@example.com", granted_to=owner)
    theirs = add_client(services, provider, firm_id, "theirs@example.com", granted_to=advisor)

    async with (await _client()) as client:
        r = await client.post(
            "/api/clients/emails",
            json={"clientIds": [mine.id, theirs.id]},
            headers=provider.auth_header(owner),
        )
        empty = await client.post("/api/clients/emails", json={"clientIds": []}, headers=provider.auth_header(owner))

    assert r.status_code == 200
    assert r.json() == {"emails": [{"id": mine.id, "email": "mine@example.com"}]}
    assert empty.json() == {"emails": []}


@pytest.mark.anyio
async def test_access_routes_require_session(provider):
    async with (await _client()) as client:
        r1 = await client.get("/api/clients")
        r2 = await client.get("/api/clients", headers={"Authorization": "Bearer bogus"})
        r3 = await client.delete("/api/clients/c-1/access/a-1", headers={"Authorization": "Token x"})

    assert [r.status_code for r in (r1, r2, r3)] == [401, 401, 401]
    assert r2.json()["detail"] == "invalid_credential"
    assert r3.json()["detail"] == "malformed_credential"


@pytest.mark.anyio
async def test_store_failure_is_503_with_generic_message(services, provider, monkeypatch):
    from advisory.errors import StoreUnavailable

    _, owner, _ = seed_firm(services, provider)

    def _boom(*args, **kwargs):
        raise StoreUnavailable("store_unavailable", "connection to 10.0.0.5 refused")

    from web.wiring import get_services

    monkeypatch.setattr(get_services().ledger, "list_for_advisor", _boom)
    async with (await _client()) as client:
        r = await client.get("/api/clients", headers=provider.auth_header(owner))

    assert r.status_code == 503
    assert r.json()["message"] == "The data store is unavailable, please retry."
