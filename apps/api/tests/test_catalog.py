"""Provider pricing rules and service offerings."""

from decimal import Decimal

import pytest

from app.db.enums import Role, SubscriptionPlan
from app.services import org_service


@pytest.fixture
def other_org(db, make_user):
    owner = make_user(Role.SERVICE_PROVIDER)
    return org_service.ensure_provisioned(db, owner, "Rival Studio", SubscriptionPlan.ONE_MONTH)


RULE = {"name": "Logo", "category": "design", "base_price": "150", "min_price": "100", "max_price": "300"}


async def test_provider_manages_pricing_rules(org, provider, client_factory):
    api = client_factory(provider)

    created = await api.post("/catalog/pricing", json=RULE)
    assert created.status_code == 201
    rule = created.json()
    assert rule["organization_id"] == str(org.id)
    assert Decimal(rule["base_price"]) == Decimal("150")

    updated = await api.patch(f"/catalog/pricing/{rule['id']}", json={"base_price": "175"})
    assert updated.status_code == 200
    assert Decimal(updated.json()["base_price"]) == Decimal("175")

    deleted = await api.delete(f"/catalog/pricing/{rule['id']}")
    assert deleted.status_code == 204
    assert (await api.get("/catalog/pricing")).json() == []


async def test_price_bounds_are_validated(org, provider, client_factory):
    response = await client_factory(provider).post(
        "/catalog/pricing", json={**RULE, "min_price": "500"}
    )
    assert response.status_code == 400


async def test_update_cannot_invert_bounds(org, provider, client_factory):
    api = client_factory(provider)
    rule = (await api.post("/catalog/pricing", json=RULE)).json()

    response = await api.patch(f"/catalog/pricing/{rule['id']}", json={"min_price": "999"})
    assert response.status_code == 400


async def test_client_sees_active_rows_only(org, provider, client_user, client_factory):
    api = client_factory(provider)
    await api.post("/catalog/pricing", json=RULE)
    await api.post("/catalog/pricing", json={**RULE, "name": "Retired", "is_active": False})
    await api.post("/catalog/services", json={"name": "Branding", "keywords": [" Logo ", "logo", "Brand"]})
    await api.post("/catalog/services", json={"name": "Legacy", "is_active": False})

    viewer = client_factory(client_user)
    rules = (await viewer.get("/catalog/pricing")).json()
    services = (await viewer.get("/catalog/services")).json()

    assert [r["name"] for r in rules] == ["Logo"]
    assert [s["name"] for s in services] == ["Branding"]
    assert services[0]["keywords"] == ["logo", "brand"]
    assert len((await api.get("/catalog/pricing")).json()) == 2


async def test_client_cannot_edit_catalog(org, client_user, client_factory):
    response = await client_factory(client_user).post("/catalog/pricing", json=RULE)
    assert response.status_code == 403


async def test_other_organization_rows_are_hidden(org, provider, other_org, client_factory):
    rule = (await client_factory(provider).post("/catalog/pricing", json=RULE)).json()
    rival = client_factory(other_org.owner)

    response = await rival.patch(f"/catalog/pricing/{rule['id']}", json={"base_price": "1"})
    assert response.status_code == 404

    response = await rival.get("/catalog/pricing", params={"organization_id": str(org.id)})
    assert response.status_code == 404


async def test_unprovisioned_provider_has_no_catalog(make_user, client_factory):
    provider = make_user(Role.SERVICE_PROVIDER)
    response = await client_factory(provider).get("/catalog/services")
    assert response.status_code == 404


async def test_admin_must_name_organization(org, admin, client_factory):
    api = client_factory(admin)

    assert (await api.get("/catalog/services")).status_code == 400
    response = await api.get("/catalog/services", params={"organization_id": str(org.id)})
    assert response.status_code == 200
