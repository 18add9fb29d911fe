"""User-related Pydantic schemas (admin views and stats)."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from app.db.enums import Role


class UserRead(BaseModel):
    """Account as listed to the platform operator."""
    model_config = {"from_attributes": True}

    id: UUID
    email: str
    display_name: str | None
    role: str
    is_master_admin: bool
    is_active: bool
    company_name: str | None
    created_at: datetime


class UserUpdate(BaseModel):
    role: Role | None = None
    is_master_admin: bool | None = None
    is_active: bool | None = None


class ClientStats(BaseModel):
    task_count: int
    total_spending: Decimal
    company_name: str | None


class PlatformStats(BaseModel):
    users: dict[str, int]
    organizations: int
    active_subscriptions: int
    linked_clients: int
    tasks: int
    monthly_revenue: Decimal
