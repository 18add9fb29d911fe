"""Role resolution and tenancy scoping.

Every read over tasks, products and client rosters goes through this module:

- master admin flag: unrestricted scope (no filter)
- service_provider: the single organization they own (zero before provisioning)
- client: organizations joined via invite, earliest join first (primary)

Scoping rules for owned entities (tasks, products):

- unrestricted: no filter
- empty scope: empty result, never an error
- service_provider: organization membership only
- client: organization membership AND ownership
"""

from uuid import UUID

from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from app.db.enums import Role
from app.db.models import ClientProviderLink, Organization, Subscription, User
from app.schemas.auth import CallerContext


def effective_role(user: User) -> Role:
    """Master-admin flag wins over the stored role string."""
    if user.is_master_admin:
        return Role.MASTER_ADMIN
    if not Role.has_value(user.role):
        raise ValueError(f"Unknown role '{user.role}'")
    return Role(user.role)


def get_user_organization_ids(db: Session, user: User) -> list[UUID] | None:
    """Organization ids the user may act within; None means unrestricted."""
    role = effective_role(user)
    if role == Role.MASTER_ADMIN:
        return None

    if role == Role.SERVICE_PROVIDER:
        org_id = (
            db.query(Organization.id)
            .filter(Organization.owner_user_id == user.id)
            .scalar()
        )
        return [org_id] if org_id else []

    rows = (
        db.query(ClientProviderLink.organization_id)
        .filter(ClientProviderLink.client_user_id == user.id)
        .order_by(ClientProviderLink.joined_at, ClientProviderLink.id)
        .all()
    )
    return [row[0] for row in rows]


def resolve_caller(db: Session, user: User) -> CallerContext:
    """Build the explicit caller context for a loaded user."""
    org_ids = get_user_organization_ids(db, user)
    return CallerContext(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=effective_role(user),
        org_ids=None if org_ids is None else tuple(org_ids),
    )


def scope_owned_query(query: Query, caller: CallerContext, org_column, owner_column) -> Query:
    """Constrain a query over an org-scoped, client-owned entity."""
    if caller.unrestricted:
        return query
    if not caller.org_ids:
        return query.filter(false())
    query = query.filter(org_column.in_(caller.org_ids))
    if caller.role == Role.CLIENT:
        query = query.filter(owner_column == caller.user_id)
    return query


def can_manage_org(caller: CallerContext, org_id: UUID | None) -> bool:
    """Provider owning the organization, or master admin."""
    if caller.unrestricted:
        return True
    return caller.role == Role.SERVICE_PROVIDER and caller.can_access_org(org_id)


def get_subscription(db: Session, org_id: UUID) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(Subscription.organization_id == org_id)
        .first()
    )


def is_subscription_active(db: Session, org_id: UUID) -> bool:
    """An organization without a subscription row counts as inactive."""
    subscription = get_subscription(db, org_id)
    return subscription is not None and subscription.is_active()
