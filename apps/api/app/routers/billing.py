"""Billing router - Stripe checkout, success redirect and webhook."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_current_user, get_db, require_csrf_header, require_roles
from app.db.enums import Role, SubscriptionPlan
from app.db.models import User
from app.schemas.billing import CheckoutRequest, CheckoutResponse, PlanRead
from app.services import billing_service, org_service

logger = logging.getLogger(__name__)

router = APIRouter()

require_provider = require_roles([Role.SERVICE_PROVIDER, Role.MASTER_ADMIN])


@router.get("/plans", response_model=list[PlanRead])
def list_plans():
    return [
        PlanRead(
            plan=plan,
            name=billing_service.PLAN_NAMES[plan],
            months=plan.months,
            price_cents=billing_service.PLAN_PRICES_CENTS[plan],
            client_fee_cents=billing_service.CLIENT_FEES_CENTS[plan],
            currency=settings.STRIPE_CURRENCY,
        )
        for plan in SubscriptionPlan
    ]


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    dependencies=[Depends(require_csrf_header), Depends(require_provider)],
)
def create_checkout(
    body: CheckoutRequest,
    user: User = Depends(get_current_user),
):
    """Start a hosted one-time payment; the frontend redirects to checkout_url."""
    try:
        url, session_id = billing_service.create_checkout_session(
            user, body.organization_name, body.plan
        )
    except billing_service.PaymentProviderError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except billing_service.BillingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CheckoutResponse(checkout_url=url, session_id=session_id)


@router.get("/success")
def checkout_success(
    session_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Stripe return URL: confirm payment, provision, then go back to the frontend."""
    base = settings.FRONTEND_URL.rstrip("/")
    try:
        billing_service.complete_checkout(db, user, session_id)
    except (billing_service.BillingError, org_service.ProvisioningError) as e:
        logger.warning("Checkout confirmation failed: %s", e, extra={"user_id": str(user.id)})
        return RedirectResponse(url=f"{base}/provider/billing?error=checkout_failed", status_code=302)
    return RedirectResponse(url=f"{base}/provider/dashboard?billing=success", status_code=302)


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook. Authenticated by the Stripe-Signature header, not the
    session cookie; nothing is written before the signature checks out.
    """
    payload = await request.body()
    try:
        event = billing_service.construct_event(payload, request.headers.get("stripe-signature"))
    except billing_service.WebhookSignatureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except billing_service.BillingError:
        logger.error("Stripe webhook received but no webhook secret is configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")

    event_type = event["type"]
    try:
        action = billing_service.handle_event(db, event_type, event["data"]["object"])
    except billing_service.BillingError as e:
        logger.warning("Stripe webhook %s not applied: %s", event_type, e)
        action = "ignored"
    logger.info("Stripe webhook %s handled: %s", event_type, action)
    return {"received": True, "action": action}
