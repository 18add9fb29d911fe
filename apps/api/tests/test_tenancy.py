"""Tenant isolation across roles for tasks."""

import uuid

import pytest

from app.core.tenancy import effective_role, scope_owned_query
from app.db.enums import Role, SubscriptionPlan
from app.db.models import Task
from app.services import link_service, org_service, task_service


@pytest.fixture
def other_org(db, make_user):
    other_provider = make_user(Role.SERVICE_PROVIDER)
    return org_service.ensure_provisioned(db, other_provider, "Other Agency", SubscriptionPlan.ONE_MONTH)


def test_master_admin_flag_overrides_stored_role(make_user, caller_for):
    user = make_user(Role.CLIENT, is_master_admin=True)
    assert effective_role(user) == Role.MASTER_ADMIN
    assert caller_for(user).unrestricted


def test_unknown_role_is_rejected(make_user):
    user = make_user(Role.CLIENT)
    user.role = "developer"
    with pytest.raises(ValueError):
        effective_role(user)


def test_client_sees_only_own_tasks_in_joined_orgs(
    db, org, client_user, other_org, make_user, make_task, caller_for
):
    other_client = make_user(Role.CLIENT)
    link_service.redeem_invite(db, other_client.id, org.invite_code)

    mine = make_task(client_user, org, title="Mine")
    make_task(other_client, org, title="Theirs")
    make_task(client_user, other_org, title="Foreign org")

    tasks = task_service.list_tasks(db, caller_for(client_user))
    assert [t.id for t in tasks] == [mine.id]


def test_provider_sees_all_tasks_in_own_org_only(
    db, org, provider, client_user, other_org, make_task, caller_for
):
    in_org = make_task(client_user, org)
    make_task(client_user, other_org)

    tasks = task_service.list_tasks(db, caller_for(provider))
    assert [t.id for t in tasks] == [in_org.id]


def test_master_admin_sees_everything(
    db, org, client_user, other_org, admin, make_task, caller_for
):
    make_task(client_user, org)
    make_task(client_user, other_org)

    assert len(task_service.list_tasks(db, caller_for(admin))) == 2


def test_empty_scope_yields_empty_result(db, org, client_user, make_user, make_task, caller_for):
    make_task(client_user, org)
    unlinked = make_user(Role.CLIENT)
    caller = caller_for(unlinked)

    assert caller.org_ids == ()
    query = scope_owned_query(db.query(Task), caller, Task.organization_id, Task.owner_user_id)
    assert query.all() == []


def test_client_primary_org_is_earliest_join(db, org, client_user, other_org, caller_for):
    link_service.redeem_invite(db, client_user.id, other_org.invite_code)
    caller = caller_for(client_user)
    assert caller.org_ids == (org.id, other_org.id)
    assert caller.primary_org_id == org.id


# =============================================================================
# API
# =============================================================================

async def test_unlinked_client_lists_no_tasks(make_user, client_factory):
    unlinked = make_user(Role.CLIENT)
    response = await client_factory(unlinked).get("/tasks")
    assert response.status_code == 200
    assert response.json() == {"tasks": []}


async def test_out_of_scope_task_is_not_found(org, client_user, make_user, make_task, client_factory):
    task = make_task(client_user, org)
    stranger = make_user(Role.CLIENT)

    response = await client_factory(stranger).get(f"/tasks/{task.id}")
    assert response.status_code == 404


async def test_unauthenticated_request_is_rejected(client):
    response = await client.get("/tasks")
    assert response.status_code == 401


async def test_client_creates_task_in_primary_org(db, org, client_user, client_factory):
    response = await client_factory(client_user).post("/tasks", json={"title": "Poster"})
    assert response.status_code == 201
    data = response.json()
    assert data["organization_id"] == str(org.id)
    assert data["owner_user_id"] == str(client_user.id)
    assert data["status"] == "draft"


async def test_client_without_provider_cannot_create_task(make_user, client_factory):
    unlinked = make_user(Role.CLIENT)
    response = await client_factory(unlinked).post("/tasks", json={"title": "Poster"})
    assert response.status_code == 400


async def test_task_creation_requires_active_subscription(db, org, client_user, client_factory):
    org.subscription.status = "cancelled"
    db.commit()

    response = await client_factory(client_user).post("/tasks", json={"title": "Poster"})
    assert response.status_code == 400
    assert "subscription" in response.json()["detail"]


async def test_provider_creates_task_for_linked_client(org, provider, client_user, client_factory):
    response = await client_factory(provider).post(
        "/tasks", json={"title": "Brochure", "client_id": str(client_user.id)}
    )
    assert response.status_code == 201
    assert response.json()["owner_user_id"] == str(client_user.id)


async def test_provider_cannot_create_task_for_unlinked_client(org, provider, make_user, client_factory):
    stranger = make_user(Role.CLIENT)
    response = await client_factory(provider).post(
        "/tasks", json={"title": "Brochure", "client_id": str(stranger.id)}
    )
    assert response.status_code == 404


async def test_client_cannot_set_status(org, client_user, make_task, client_factory):
    task = make_task(client_user, org)
    response = await client_factory(client_user).patch(f"/tasks/{task.id}", json={"status": "done"})
    assert response.status_code == 403


async def test_provider_sets_legacy_status_spelling(
    org, provider, client_user, make_task, client_factory
):
    task = make_task(client_user, org)
    response = await client_factory(provider).patch(
        f"/tasks/{task.id}", json={"status": "in_progress", "final_price": "250.00"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "started"


async def test_list_rejects_unknown_status_filter(db, org, client_user, client_factory):
    response = await client_factory(client_user).get("/tasks", params={"status": "bogus"})
    assert response.status_code == 400


async def test_mutation_requires_csrf_header(db, org, client_user, client_factory):
    response = await client_factory(client_user, csrf=False).post("/tasks", json={"title": "x"})
    assert response.status_code == 403


async def test_delete_unknown_task_is_not_found(db, org, client_user, client_factory):
    response = await client_factory(client_user).delete(f"/tasks/{uuid.uuid4()}")
    assert response.status_code == 404
