"""Stripe checkout, webhook handling and subscription renewal."""

import hashlib
import hmac
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from app.core.config import settings
from app.db.enums import Role, SubscriptionPlan, SubscriptionStatus
from app.services import billing_service, org_service
from app.utils.datetime_parsing import add_months

WEBHOOK_SECRET = "whsec_test_secret"


def _signed(payload: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
    body = json.dumps(payload).encode()
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256
    ).hexdigest()
    return body, f"t={timestamp},v1={signature}"


def _checkout_event(user_id, session_id="cs_test_1", payment_status="paid", plan="3_month"):
    return {
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "customer": "cus_123",
                "payment_status": payment_status,
                "metadata": {
                    "user_id": str(user_id),
                    "organization_name": "Paid Agency",
                    "subscription_plan": plan,
                },
            }
        },
    }


@pytest.fixture
def unprovisioned(make_user):
    return make_user(Role.SERVICE_PROVIDER)


@pytest.fixture
def stripe_configured(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)


# =============================================================================
# Event handling
# =============================================================================

def test_paid_checkout_provisions_organization(db, unprovisioned):
    obj = _checkout_event(unprovisioned.id)["data"]["object"]

    assert billing_service.handle_event(db, "checkout.session.completed", obj) == "provisioned"

    org = org_service.get_org_for_owner(db, unprovisioned.id)
    assert org.name == "Paid Agency"
    assert org.subscription.plan == SubscriptionPlan.THREE_MONTH.value
    assert org.subscription.stripe_customer_id == "cus_123"
    assert org.subscription.is_active()


def test_unpaid_checkout_waits(db, unprovisioned):
    obj = _checkout_event(unprovisioned.id, payment_status="unpaid")["data"]["object"]

    assert billing_service.handle_event(db, "checkout.session.completed", obj) == "awaiting_payment"
    assert org_service.get_org_for_owner(db, unprovisioned.id) is None


def test_checkout_for_unknown_user_is_ignored(db):
    obj = _checkout_event("not-a-uuid")["data"]["object"]
    assert billing_service.handle_event(db, "checkout.session.completed", obj) == "ignored"


def test_repeated_session_is_applied_once(db, unprovisioned):
    obj = _checkout_event(unprovisioned.id)["data"]["object"]
    billing_service.handle_event(db, "checkout.session.completed", obj)
    period_end = org_service.get_org_for_owner(db, unprovisioned.id).subscription.current_period_end

    billing_service.handle_event(db, "checkout.session.completed", obj)
    org = org_service.get_org_for_owner(db, unprovisioned.id)
    assert org.subscription.current_period_end == period_end


def test_new_session_extends_active_period(db, org, provider):
    end = org.subscription.current_period_end

    billing_service.apply_paid_checkout(
        db, provider, org.name, SubscriptionPlan.ONE_MONTH, "cs_renew", "cus_999"
    )

    db.refresh(org.subscription)
    assert org.subscription.current_period_end == add_months(end, 1)
    assert org.subscription.plan == SubscriptionPlan.ONE_MONTH.value
    assert org.subscription.stripe_customer_id == "cus_999"


def test_cancellation_events(db, org):
    org.subscription.stripe_customer_id = "cus_123"
    db.commit()

    action = billing_service.handle_event(db, "customer.subscription.deleted", {"customer": "cus_123"})

    assert action == "cancelled"
    db.refresh(org.subscription)
    assert org.subscription.status == SubscriptionStatus.CANCELLED.value
    assert not org.subscription.is_active()
    assert billing_service.handle_event(db, "invoice.payment_failed", {"customer": "cus_other"}) == "ignored"


def test_unknown_event_is_ignored(db):
    assert billing_service.handle_event(db, "customer.created", {"id": "cus_1"}) == "ignored"


def test_monthly_revenue(db, org):
    org.subscription.client_count = 3
    assert billing_service.monthly_revenue(org.subscription) == Decimal("46")


# =============================================================================
# Webhook endpoint
# =============================================================================

async def test_webhook_without_secret_is_server_error(client):
    response = await client.post(
        "/billing/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"}
    )
    assert response.status_code == 500
    assert response.json()["detail"] == "Webhook not configured"


async def test_webhook_rejects_bad_signature(stripe_configured, unprovisioned, client):
    body, _ = _signed(_checkout_event(unprovisioned.id))
    response = await client.post(
        "/billing/webhook", content=body, headers={"stripe-signature": "t=1,v1=deadbeef"}
    )
    assert response.status_code == 400


async def test_webhook_rejects_missing_signature(stripe_configured, client):
    response = await client.post("/billing/webhook", content=b"{}")
    assert response.status_code == 400


async def test_signed_webhook_provisions(db, stripe_configured, unprovisioned, client):
    body, signature = _signed(_checkout_event(unprovisioned.id))

    response = await client.post(
        "/billing/webhook",
        content=body,
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True, "action": "provisioned"}
    assert org_service.get_org_for_owner(db, unprovisioned.id) is not None


async def test_webhook_with_unknown_plan_is_acknowledged(db, stripe_configured, unprovisioned, client):
    body, signature = _signed(_checkout_event(unprovisioned.id, plan="lifetime"))

    response = await client.post("/billing/webhook", content=body, headers={"stripe-signature": signature})

    assert response.status_code == 200
    assert response.json()["action"] == "ignored"


# =============================================================================
# Checkout
# =============================================================================

async def test_plans_are_listed(client):
    response = await client.get("/billing/plans")
    plans = {p["plan"]: p for p in response.json()}
    assert plans["6_month"]["price_cents"] == 15000
    assert plans["1_month"]["client_fee_cents"] == 1000


async def test_checkout_requires_configuration(unprovisioned, client_factory):
    response = await client_factory(unprovisioned).post(
        "/billing/checkout", json={"organization_name": "Agency", "plan": "1_month"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Payments are not configured"


async def test_checkout_creates_session(stripe_configured, unprovisioned, client_factory, monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(url="https://checkout.stripe.test/cs_1", id="cs_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    response = await client_factory(unprovisioned).post(
        "/billing/checkout", json={"organization_name": "Agency", "plan": "3_month"}
    )

    assert response.status_code == 200
    assert response.json() == {"checkout_url": "https://checkout.stripe.test/cs_1", "session_id": "cs_1"}
    assert captured["mode"] == "payment"
    assert captured["line_items"][0]["price_data"]["unit_amount"] == 10500
    assert captured["metadata"]["user_id"] == str(unprovisioned.id)


async def test_client_cannot_checkout(stripe_configured, client_user, client_factory):
    response = await client_factory(client_user).post(
        "/billing/checkout", json={"organization_name": "Agency", "plan": "3_month"}
    )
    assert response.status_code == 403


async def test_success_redirect_provisions(db, stripe_configured, unprovisioned, client_factory, monkeypatch):
    session = _checkout_event(unprovisioned.id, session_id="cs_ok")["data"]["object"]
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", lambda session_id: session)

    response = await client_factory(unprovisioned).get("/billing/success", params={"session_id": "cs_ok"})

    assert response.status_code == 302
    assert response.headers["location"].endswith("/provider/dashboard?billing=success")
    assert org_service.get_org_for_owner(db, unprovisioned.id) is not None


async def test_success_redirect_rejects_foreign_session(
    db, stripe_configured, unprovisioned, make_user, client_factory, monkeypatch
):
    someone_else = make_user(Role.SERVICE_PROVIDER)
    session = _checkout_event(someone_else.id, session_id="cs_other")["data"]["object"]
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", lambda session_id: session)

    response = await client_factory(unprovisioned).get("/billing/success", params={"session_id": "cs_other"})

    assert response.status_code == 302
    assert response.headers["location"].endswith("/provider/billing?error=checkout_failed")
    assert org_service.get_org_for_owner(db, unprovisioned.id) is None
