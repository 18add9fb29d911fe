"""Invite redemption, client rosters and organization provisioning."""

import re
from datetime import timedelta

import pytest

from app.db.enums import Role, SubscriptionPlan
from app.db.types import utcnow
from app.services import link_service, org_service


def test_provisioning_assigns_identifiers(db, org, provider):
    assert re.fullmatch(r"SVC-[A-HJ-NP-Z2-9]{5}", org.service_id)
    assert re.fullmatch(r"[A-Z0-9]{8}", org.invite_code)
    assert org.invite_link.endswith(f"/auth/signup?invite={org.invite_code}")
    assert org.slug == "acme-studio"
    assert org.subscription.client_count == 0
    assert org.subscription.is_active()
    assert provider.role == Role.SERVICE_PROVIDER.value


def test_provisioning_is_idempotent(db, org, provider):
    again = org_service.ensure_provisioned(db, provider, "Renamed", SubscriptionPlan.ONE_MONTH)
    assert again.id == org.id
    assert again.name == "Acme Studio"


def test_slug_collisions_get_suffix(db, org, make_user):
    other = make_user(Role.SERVICE_PROVIDER)
    second = org_service.ensure_provisioned(db, other, "Acme Studio", SubscriptionPlan.ONE_MONTH)
    assert second.slug == "acme-studio-2"


def test_redeem_links_client_and_counts(db, org, make_user):
    client = make_user(Role.CLIENT)
    link = link_service.redeem_invite(db, client.id, f"  {org.invite_code.lower()} ")

    assert link.organization_id == org.id
    db.refresh(org.subscription)
    assert org.subscription.client_count == 1


def test_redeem_requires_code(db, make_user):
    client = make_user(Role.CLIENT)
    with pytest.raises(link_service.InviteCodeRequiredError):
        link_service.redeem_invite(db, client.id, "   ")


def test_redeem_rejects_unknown_code(db, org, make_user):
    client = make_user(Role.CLIENT)
    with pytest.raises(link_service.InvalidInviteCodeError):
        link_service.redeem_invite(db, client.id, "NOPE1234")


def test_redeem_rejects_inactive_subscription(db, org, make_user):
    org.subscription.current_period_end = utcnow() - timedelta(days=1)
    db.commit()
    client = make_user(Role.CLIENT)

    with pytest.raises(link_service.InactiveSubscriptionError):
        link_service.redeem_invite(db, client.id, org.invite_code)
    assert not link_service.is_linked(db, client.id, org.id)


def test_duplicate_redeem_is_rejected_without_double_count(db, org, client_user):
    with pytest.raises(link_service.AlreadyLinkedError):
        link_service.redeem_invite(db, client_user.id, org.invite_code)
    db.refresh(org.subscription)
    assert org.subscription.client_count == 1


def test_unlink_never_drops_count_below_zero(db, org, client_user):
    org.subscription.client_count = 0
    db.commit()

    assert link_service.unlink_client(db, org.id, client_user.id)
    db.refresh(org.subscription)
    assert org.subscription.client_count == 0
    assert not link_service.unlink_client(db, org.id, client_user.id)


def test_rotated_code_invalidates_old_one(db, org, make_user):
    old_code = org.invite_code
    org_service.rotate_invite_code(db, org)
    assert org.invite_code != old_code

    client = make_user(Role.CLIENT)
    with pytest.raises(link_service.InvalidInviteCodeError):
        link_service.redeem_invite(db, client.id, old_code)


def test_list_clients_includes_task_counts(db, org, client_user, make_task):
    make_task(client_user, org)
    make_task(client_user, org)

    [(user, joined_at, task_count)] = link_service.list_clients(db, org.id)
    assert user.id == client_user.id
    assert task_count == 2


# =============================================================================
# API
# =============================================================================

async def test_client_redeems_second_provider(db, client_user, make_user, client_factory):
    other = org_service.ensure_provisioned(
        db, make_user(Role.SERVICE_PROVIDER), "Second", SubscriptionPlan.THREE_MONTH
    )
    response = await client_factory(client_user).post(
        "/providers/redeem", json={"invite_code": other.invite_code}
    )
    assert response.status_code == 201
    providers = response.json()
    assert [p["name"] for p in providers] == ["Acme Studio", "Second"]
    assert providers[0]["is_primary"] is True


async def test_redeem_error_is_bad_request(client_user, org, client_factory):
    response = await client_factory(client_user).post(
        "/providers/redeem", json={"invite_code": org.invite_code}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "You are already linked to this service provider"


async def test_provider_cannot_redeem(provider, org, client_factory):
    response = await client_factory(provider).post(
        "/providers/redeem", json={"invite_code": org.invite_code}
    )
    assert response.status_code == 403


async def test_provider_reads_organization(provider, org, client_factory):
    response = await client_factory(provider).get("/organization")
    assert response.status_code == 200
    data = response.json()
    assert data["service_id"] == org.service_id
    assert data["subscription"]["plan"] == "6_month"


async def test_client_roster_and_removal(db, provider, org, client_user, client_factory):
    api = client_factory(provider)

    roster = await api.get("/organization/clients")
    assert [c["user_id"] for c in roster.json()] == [str(client_user.id)]

    response = await api.delete(f"/organization/clients/{client_user.id}")
    assert response.status_code == 204
    response = await api.delete(f"/organization/clients/{client_user.id}")
    assert response.status_code == 404


async def test_provision_endpoint_requires_demo_mode(make_user, client_factory):
    unprovisioned = make_user(Role.SERVICE_PROVIDER)
    response = await client_factory(unprovisioned).post(
        "/organization/provision", json={"name": "New Agency"}
    )
    assert response.status_code == 403


async def test_provision_endpoint_in_demo_mode(monkeypatch, make_user, client_factory):
    from app.core.config import settings

    monkeypatch.setattr(settings, "DEMO_MODE", True)
    unprovisioned = make_user(Role.SERVICE_PROVIDER)
    api = client_factory(unprovisioned)

    first = await api.post("/organization/provision", json={"name": "New Agency"})
    second = await api.post("/organization/provision", json={"name": "Other"})
    assert first.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    assert first.json()["name"] == "New Agency"
