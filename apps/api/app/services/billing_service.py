"""Billing service - Stripe checkout and webhook handling for subscriptions."""

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

import stripe
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.enums import SubscriptionPlan, SubscriptionStatus
from app.db.models import Organization, Subscription, User
from app.db.types import utcnow
from app.services import org_service
from app.utils.datetime_parsing import add_months

logger = logging.getLogger(__name__)

# One-time plan prices and per-client fees, in cents
PLAN_PRICES_CENTS = {
    SubscriptionPlan.ONE_MONTH: 5000,
    SubscriptionPlan.THREE_MONTH: 10500,
    SubscriptionPlan.SIX_MONTH: 15000,
}
CLIENT_FEES_CENTS = {
    SubscriptionPlan.ONE_MONTH: 1000,
    SubscriptionPlan.THREE_MONTH: 800,
    SubscriptionPlan.SIX_MONTH: 700,
}
PLAN_NAMES = {
    SubscriptionPlan.ONE_MONTH: "1 Month Plan",
    SubscriptionPlan.THREE_MONTH: "3 Month Plan",
    SubscriptionPlan.SIX_MONTH: "6 Month Plan",
}
# Monthly revenue model used by platform stats (EUR)
MONTHLY_BASE_EUR = {
    SubscriptionPlan.ONE_MONTH: Decimal("50"),
    SubscriptionPlan.THREE_MONTH: Decimal("35"),
    SubscriptionPlan.SIX_MONTH: Decimal("25"),
}
MONTHLY_CLIENT_FEE_EUR = {
    SubscriptionPlan.ONE_MONTH: Decimal("10"),
    SubscriptionPlan.THREE_MONTH: Decimal("8"),
    SubscriptionPlan.SIX_MONTH: Decimal("7"),
}

CANCELLING_EVENTS = ("customer.subscription.deleted", "invoice.payment_failed")


class BillingError(Exception):
    """Checkout could not be created or confirmed."""


class PaymentProviderError(BillingError):
    """Stripe rejected or failed the request."""


class WebhookSignatureError(Exception):
    pass


def _field(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, AttributeError):
        return None


def _configure() -> None:
    if not settings.stripe_enabled:
        raise BillingError("Payments are not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def create_checkout_session(
    user: User,
    organization_name: str,
    plan: SubscriptionPlan,
) -> tuple[str, str]:
    """
    Create a hosted one-time payment checkout.

    Returns:
        (checkout_url, session_id)

    Raises:
        BillingError: Stripe not configured or request rejected
    """
    _configure()
    name = organization_name.strip()
    if not name:
        raise BillingError("organization_name: required")
    try:
        checkout = stripe.checkout.Session.create(
            mode="payment",
            customer_email=user.email,
            line_items=[
                {
                    "price_data": {
                        "currency": settings.STRIPE_CURRENCY,
                        "unit_amount": PLAN_PRICES_CENTS[plan],
                        "product_data": {"name": PLAN_NAMES[plan]},
                    },
                    "quantity": 1,
                }
            ],
            metadata={
                "user_id": str(user.id),
                "organization_name": name,
                "subscription_plan": plan.value,
            },
            success_url=(
                f"{settings.APP_BASE_URL.rstrip('/')}/billing/success"
                "?session_id={CHECKOUT_SESSION_ID}"
            ),
            cancel_url=f"{settings.FRONTEND_URL.rstrip('/')}/provider/billing?cancelled=1",
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout creation failed: %s", type(e).__name__)
        raise PaymentProviderError("Could not start checkout") from e
    return checkout.url, checkout.id


def _plan_from_metadata(metadata: Any) -> SubscriptionPlan:
    raw = _field(metadata, "subscription_plan")
    try:
        return SubscriptionPlan(raw)
    except ValueError:
        raise BillingError("Checkout session has an unknown plan")


def apply_paid_checkout(
    db: Session,
    owner: User,
    organization_name: str,
    plan: SubscriptionPlan,
    session_id: str,
    customer_id: str | None,
) -> Organization:
    """
    Provision (or renew) the organization paid for by a checkout session.

    Safe to call from both the success redirect and the webhook: a session
    already applied is a no-op.
    """
    org = org_service.get_org_for_owner(db, owner.id)
    if org is None:
        return org_service.ensure_provisioned(
            db,
            owner,
            organization_name,
            plan,
            stripe_customer_id=customer_id,
            stripe_checkout_session_id=session_id,
        )

    org = org_service.ensure_provisioned(db, owner, org.name, plan)
    subscription = org.subscription
    if subscription.stripe_checkout_session_id == session_id:
        return org

    now = utcnow()
    start = subscription.current_period_end if subscription.is_active(now) else now
    subscription.plan = plan.value
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.current_period_start = start
    subscription.current_period_end = add_months(start, plan.months)
    subscription.stripe_checkout_session_id = session_id
    if customer_id:
        subscription.stripe_customer_id = customer_id
    db.commit()
    db.refresh(org)
    logger.info("Subscription renewed", extra={"org_id": str(org.id)})
    return org


def complete_checkout(db: Session, user: User, session_id: str) -> Organization:
    """
    Confirm a checkout session for the signed-in user.

    Raises:
        BillingError: session unknown, not the caller's, or unpaid
    """
    _configure()
    try:
        checkout = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        logger.warning("Stripe session lookup failed: %s", type(e).__name__)
        raise PaymentProviderError("Checkout session not found") from e

    metadata = _field(checkout, "metadata")
    if _field(metadata, "user_id") != str(user.id):
        raise BillingError("Checkout session does not belong to this account")
    if _field(checkout, "payment_status") != "paid":
        raise BillingError("Payment has not been completed")

    return apply_paid_checkout(
        db,
        user,
        _field(metadata, "organization_name") or "My Organization",
        _plan_from_metadata(metadata),
        session_id,
        _field(checkout, "customer"),
    )


def construct_event(payload: bytes, signature: str | None):
    """
    Verify the Stripe-Signature header and parse the event.

    Raises:
        WebhookSignatureError: missing/invalid signature or malformed payload
        BillingError: webhook secret not configured
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise BillingError("Stripe webhook secret is not configured")
    if not signature:
        raise WebhookSignatureError("Missing Stripe signature header")
    try:
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except (stripe.SignatureVerificationError, ValueError) as e:
        raise WebhookSignatureError("Invalid Stripe signature") from e


def cancel_for_customer(db: Session, customer_id: str) -> int:
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.stripe_customer_id == customer_id)
        .all()
    )
    for subscription in subscriptions:
        subscription.status = SubscriptionStatus.CANCELLED.value
    db.commit()
    return len(subscriptions)


def handle_event(db: Session, event_type: str, obj: Any) -> str:
    """
    Apply a verified webhook event. Returns a short action label.

    Unknown event types and events for unknown accounts are acknowledged
    without changes so Stripe stops retrying them.
    """
    if event_type == "checkout.session.completed":
        metadata = _field(obj, "metadata")
        user_id = _field(metadata, "user_id")
        session_id = _field(obj, "id")
        if not user_id or not session_id:
            return "ignored"
        try:
            owner = db.query(User).filter(User.id == UUID(user_id)).first()
        except ValueError:
            return "ignored"
        if owner is None:
            logger.warning("Checkout completed for unknown user")
            return "ignored"
        if _field(obj, "payment_status") != "paid":
            return "awaiting_payment"
        apply_paid_checkout(
            db,
            owner,
            _field(metadata, "organization_name") or "My Organization",
            _plan_from_metadata(metadata),
            session_id,
            _field(obj, "customer"),
        )
        return "provisioned"

    if event_type in CANCELLING_EVENTS:
        customer_id = _field(obj, "customer")
        if not customer_id:
            return "ignored"
        count = cancel_for_customer(db, customer_id)
        return "cancelled" if count else "ignored"

    return "ignored"


def monthly_revenue(subscription: Subscription) -> Decimal:
    """Platform revenue model: plan base plus per-client fee, per month."""
    try:
        plan = SubscriptionPlan(subscription.plan)
    except ValueError:
        return Decimal("0")
    return MONTHLY_BASE_EUR[plan] + MONTHLY_CLIENT_FEE_EUR[plan] * subscription.client_count
