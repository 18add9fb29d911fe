"""Organization, subscription and roster schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.db.enums import SubscriptionPlan


class SubscriptionSummary(BaseModel):
    plan: str
    status: str
    is_active: bool
    current_period_start: datetime
    current_period_end: datetime
    client_count: int

    @classmethod
    def from_subscription(cls, subscription) -> "SubscriptionSummary | None":
        if subscription is None:
            return None
        return cls(
            plan=subscription.plan,
            status=subscription.status,
            is_active=subscription.is_active(),
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            client_count=subscription.client_count,
        )


class OrgRead(BaseModel):
    """Response schema for reading an organization."""

    id: UUID
    name: str
    slug: str
    service_id: str
    invite_code: str
    invite_link: str
    created_at: datetime
    subscription: SubscriptionSummary | None = None

    @classmethod
    def from_org(cls, org) -> "OrgRead":
        return cls(
            id=org.id,
            name=org.name,
            slug=org.slug,
            service_id=org.service_id,
            invite_code=org.invite_code,
            invite_link=org.invite_link,
            created_at=org.created_at,
            subscription=SubscriptionSummary.from_subscription(org.subscription),
        )


class OrgProvisionRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    plan: SubscriptionPlan = SubscriptionPlan.SIX_MONTH


class ClientRead(BaseModel):
    user_id: UUID
    email: str
    display_name: str | None
    company_name: str | None
    joined_at: datetime
    task_count: int


class ProviderRead(BaseModel):
    """An organization as seen by a linked client (no invite secrets)."""
    organization_id: UUID
    name: str
    service_id: str
    joined_at: datetime
    is_primary: bool


class RedeemRequest(BaseModel):
    invite_code: str | None = None


class AdminOrgRead(BaseModel):
    id: UUID
    name: str
    slug: str
    service_id: str
    owner_user_id: UUID
    owner_email: str
    created_at: datetime
    task_count: int
    subscription: SubscriptionSummary | None
