"""
Roster queries and onboarding.

Focus:
- "My clients" lists only granted clients.
- Sharing roster splits firm advisors into with/without access.
- Client emails are filtered by the caller's grants.
- Onboarding creates a profile from invitation metadata and routes by role.
"""
from __future__ import annotations

import pytest

from advisory.errors import Forbidden
from identity_access.domain import Identity
from utils.seed import add_client, add_member, seed_firm


def test_my_clients_lists_only_granted(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    mine = add_client(services, provider, firm_id, "zed@example.com", granted_to=owner)
    add_client(services, provider, firm_id, "other@example.com", granted_to=advisor)

    clients = services.roster.my_clients(owner.id)

    assert [c.user_id for c in clients] == [mine.id]
    assert clients[0].email == "zed@example.com"


def test_my_clients_requires_advisor(services, provider):
    firm_id, owner, _ = seed_firm(services, provider)
    client = add_client(services, provider, firm_id, "c@example.com", granted_to=owner)

    with pytest.raises(Forbidden):
        services.roster.my_clients(client.id)


def test_client_roster_splits_with_and_without_access(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    third = add_member(services, provider, firm_id, "third@acme.test")
    client = add_client(services, provider, firm_id, "c@example.com", granted_to=owner)
    services.invitations.share_client(owner.id, client.id, advisor.id)

    with_access, without_access = services.roster.client_roster(owner.id, client.id)

    assert {e.user_id for e in with_access} == {owner.id, advisor.id}
    assert [e.user_id for e in without_access] == [third.id]
    shared = next(e for e in with_access if e.user_id == advisor.id)
    assert shared.granted_by == owner.id
    assert shared.granted_at
    assert without_access[0].granted_by is None


def test_client_roster_requires_grant(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    client = add_client(services, provider, firm_id, "c@example.com", granted_to=owner)

    with pytest.raises(Forbidden):
        services.roster.client_roster(advisor.id, client.id)


def test_client_emails_filtered_by_grants(services, provider):
    firm_id, owner, advisor = seed_firm(services, provider)
    mine = add_client(services, provider, firm_id, "mine@example.com", granted_to=owner)
    theirs = add_client(services, provider, firm_id, "theirs@example.com", granted_to=advisor)

    pairs = services.roster.client_emails(owner.id, [theirs.id, mine.id, mine.id, "unknown"])

    assert pairs == [(mine.id, "mine@example.com")]


def test_client_emails_empty_request_skips_checks(services):
    assert services.roster.client_emails("anyone", []) == []


def test_onboarding_creates_profile_from_metadata(services, provider, repo):
    firm_id, owner, _ = seed_firm(services, provider)
    result = services.invitations.invite_client(owner.id, "cleo@example.com", "Cleo", "Client")
    repo.profiles.pop(result.user_id)
    identity = Identity(
        id=result.user_id,
        email="cleo@example.com",
        metadata={"first_name": "Cleo", "last_name": "Client", "role": "client"},
    )

    actor = services.onboarding.complete_onboarding(identity)

    assert actor.role == "client"
    assert actor.home_path == "/client"
    profile = repo.get_profile(result.user_id)
    assert (profile.first_name, profile.last_name) == ("Cleo", "Client")


def test_onboarding_routes_advisors_to_app(services, provider):
    _, owner, _ = seed_firm(services, provider)
    actor = services.onboarding.complete_onboarding(owner)
    assert actor.home_path == "/app"
    assert actor.can_invite_client is True


def test_onboarding_without_membership_is_forbidden(services, provider, repo):
    stray = provider.register("stray@example.com", "Stray", "User")

    with pytest.raises(Forbidden) as exc:
        services.onboarding.complete_onboarding(stray)

    assert exc.value.code == "not_assigned_to_firm"
    # The profile is still created so a later invitation can reuse it.
    assert repo.get_profile(stray.id) is not None


def test_onboarding_keeps_existing_profile(services, provider, repo):
    _, owner, _ = seed_firm(services, provider)
    services.directory.upsert_profile(owner.id, owner.email, "Custom", "Name")

    services.onboarding.complete_onboarding(owner)

    assert repo.get_profile(owner.id).first_name == "Custom"


def test_account_includes_firm_name(services, provider):
    _, owner, _ = seed_firm(services, provider, "Acme Wealth")

    account = services.onboarding.account(owner)

    assert account.firm_name == "Acme Wealth"
    assert account.actor.role == "owner"
    assert account.profile.email == owner.email


def test_sign_out_forwards_token(services, provider):
    services.onboarding.sign_out("tok-123")
    services.onboarding.sign_out("")
    assert provider.signed_out == ["tok-123"]
