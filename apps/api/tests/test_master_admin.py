"""Platform administration, client stats and health."""

from decimal import Decimal

from app.db.enums import Role
from app.db.models import Task, User


async def test_non_admin_is_forbidden(org, provider, client_factory):
    response = await client_factory(provider).get("/master-admin/stats")
    assert response.status_code == 403


async def test_platform_stats(org, client_user, admin, make_task, client_factory):
    make_task(client_user, org)

    response = await client_factory(admin).get("/master-admin/stats")

    assert response.status_code == 200
    stats = response.json()
    assert stats["users"] == {"client": 1, "service_provider": 1, "master_admin": 1}
    assert stats["organizations"] == 1
    assert stats["active_subscriptions"] == 1
    assert stats["linked_clients"] == 1
    assert stats["tasks"] == 1
    # 6 month plan: 25 base + 7 per linked client
    assert Decimal(str(stats["monthly_revenue"])) == Decimal("32")


async def test_list_users_by_role(org, client_user, admin, client_factory):
    response = await client_factory(admin).get("/master-admin/users", params={"role": "client"})

    assert response.status_code == 200
    assert [u["email"] for u in response.json()] == [client_user.email]


async def test_list_organizations(org, client_user, admin, make_task, client_factory):
    make_task(client_user, org)
    make_task(client_user, org)

    response = await client_factory(admin).get("/master-admin/organizations")

    assert response.status_code == 200
    [row] = response.json()
    assert row["name"] == "Acme Studio"
    assert row["task_count"] == 2
    assert row["subscription"]["client_count"] == 1


async def test_disabling_user_revokes_sessions(db, client_user, admin, client_factory):
    session = client_factory(client_user)
    assert (await session.get("/auth/me")).status_code == 200

    response = await client_factory(admin).patch(
        f"/master-admin/users/{client_user.id}", json={"is_active": False}
    )

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert (await session.get("/auth/me")).status_code == 401


async def test_admin_cannot_remove_own_access(admin, client_factory):
    response = await client_factory(admin).patch(
        f"/master-admin/users/{admin.id}", json={"is_master_admin": False}
    )
    assert response.status_code == 400


async def test_master_admin_role_is_not_assignable(client_user, admin, client_factory):
    response = await client_factory(admin).patch(
        f"/master-admin/users/{client_user.id}", json={"role": "master_admin"}
    )
    assert response.status_code == 400


async def test_admin_cannot_delete_self(admin, client_factory):
    response = await client_factory(admin).delete(f"/master-admin/users/{admin.id}")
    assert response.status_code == 400


async def test_delete_user_purges_owned_rows(db, org, client_user, admin, make_task, client_factory):
    make_task(client_user, org)
    user_id = client_user.id

    response = await client_factory(admin).delete(f"/master-admin/users/{user_id}")

    assert response.status_code == 204
    db.expire_all()
    assert db.query(User).filter(User.id == user_id).first() is None
    assert db.query(Task).filter(Task.owner_user_id == user_id).count() == 0


async def test_delete_unknown_user(admin, make_user, client_factory):
    ghost = make_user(Role.CLIENT)
    api = client_factory(admin)
    assert (await api.delete(f"/master-admin/users/{ghost.id}")).status_code == 204
    assert (await api.delete(f"/master-admin/users/{ghost.id}")).status_code == 404


# =============================================================================
# Client stats / health
# =============================================================================

async def test_client_stats_prefers_final_price(org, client_user, make_task, client_factory):
    make_task(client_user, org, estimated_price=Decimal("100"), final_price=Decimal("120"))
    make_task(client_user, org, estimated_price=Decimal("50"))
    make_task(client_user, org)

    response = await client_factory(client_user).get("/client/stats")

    assert response.status_code == 200
    stats = response.json()
    assert stats["task_count"] == 3
    assert Decimal(str(stats["total_spending"])) == Decimal("170")
    assert stats["company_name"] == "Client Co"


async def test_client_stats_for_provider_is_forbidden(org, provider, client_factory):
    response = await client_factory(provider).get("/client/stats")
    assert response.status_code == 403


async def test_health(db, client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
