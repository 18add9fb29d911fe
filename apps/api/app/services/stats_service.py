"""Stats service - client spending and platform-wide figures."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.enums import Role
from app.db.models import Organization, Subscription, Task, User
from app.db.types import utcnow
from app.services.billing_service import monthly_revenue


def get_client_stats(db: Session, user: User) -> dict:
    """Task count and spending (final price, else estimate) for a client."""
    rows = (
        db.query(Task.final_price, Task.estimated_price)
        .filter(Task.owner_user_id == user.id)
        .all()
    )
    total = Decimal("0")
    for final_price, estimated_price in rows:
        price = final_price if final_price is not None else estimated_price
        if price is not None:
            total += Decimal(price)
    return {
        "task_count": len(rows),
        "total_spending": total,
        "company_name": user.company_name,
    }


def get_platform_stats(db: Session) -> dict:
    role_counts = dict(
        db.query(User.role, func.count(User.id))
        .filter(User.is_master_admin.is_(False))
        .group_by(User.role)
        .all()
    )
    admin_count = db.query(func.count(User.id)).filter(User.is_master_admin.is_(True)).scalar()

    now = utcnow()
    active = [s for s in db.query(Subscription).all() if s.is_active(now)]
    revenue = sum((monthly_revenue(s) for s in active), Decimal("0"))

    return {
        "users": {
            Role.CLIENT.value: role_counts.get(Role.CLIENT.value, 0),
            Role.SERVICE_PROVIDER.value: role_counts.get(Role.SERVICE_PROVIDER.value, 0),
            Role.MASTER_ADMIN.value: admin_count or 0,
        },
        "organizations": db.query(func.count(Organization.id)).scalar() or 0,
        "active_subscriptions": len(active),
        "linked_clients": sum(s.client_count for s in active),
        "tasks": db.query(func.count(Task.id)).scalar() or 0,
        "monthly_revenue": revenue,
    }


def get_org_task_counts(db: Session, org_ids: list[UUID]) -> dict[UUID, int]:
    if not org_ids:
        return {}
    rows = (
        db.query(Task.organization_id, func.count(Task.id))
        .filter(Task.organization_id.in_(org_ids))
        .group_by(Task.organization_id)
        .all()
    )
    return dict(rows)
