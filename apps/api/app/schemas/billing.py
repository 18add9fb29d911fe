"""Billing request/response schemas."""

from pydantic import BaseModel, Field

from app.db.enums import SubscriptionPlan


class CheckoutRequest(BaseModel):
    organization_name: str = Field(..., min_length=1, max_length=255)
    plan: SubscriptionPlan


class CheckoutResponse(BaseModel):
    checkout_url: str
    session_id: str


class PlanRead(BaseModel):
    plan: SubscriptionPlan
    name: str
    months: int
    price_cents: int
    client_fee_cents: int
    currency: str
