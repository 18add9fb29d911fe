"""Client/provider link service - invite redemption and client rosters."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.tenancy import is_subscription_active
from app.db.models import ClientProviderLink, Organization, Subscription, Task, User
from app.services import org_service

logger = logging.getLogger(__name__)


class InviteError(ValueError):
    """Invite redemption rejected; nothing was written."""


class InviteCodeRequiredError(InviteError):
    def __init__(self):
        super().__init__("Invite code is required")


class InvalidInviteCodeError(InviteError):
    def __init__(self):
        super().__init__("Invalid invite code")


class InactiveSubscriptionError(InviteError):
    def __init__(self):
        super().__init__("This service provider does not have an active subscription")


class AlreadyLinkedError(InviteError):
    def __init__(self):
        super().__init__("You are already linked to this service provider")


def get_link(db: Session, client_user_id: UUID, org_id: UUID) -> ClientProviderLink | None:
    return (
        db.query(ClientProviderLink)
        .filter(
            ClientProviderLink.client_user_id == client_user_id,
            ClientProviderLink.organization_id == org_id,
        )
        .first()
    )


def is_linked(db: Session, client_user_id: UUID, org_id: UUID) -> bool:
    return get_link(db, client_user_id, org_id) is not None


def redeem_invite(
    db: Session,
    client_user_id: UUID,
    invite_code: str | None,
    commit: bool = True,
) -> ClientProviderLink:
    """
    Join the organization behind `invite_code`.

    Validation order: code present, code resolves, subscription active, no
    existing link. The link insert and the client_count increment share one
    transaction; a unique-constraint violation from a concurrent redeem is
    reported as AlreadyLinkedError.

    Raises:
        InviteError: one of the subclasses above
    """
    code = (invite_code or "").strip()
    if not code:
        raise InviteCodeRequiredError()

    org = org_service.get_org_by_invite_code(db, code)
    if org is None:
        raise InvalidInviteCodeError()

    if not is_subscription_active(db, org.id):
        raise InactiveSubscriptionError()

    if is_linked(db, client_user_id, org.id):
        raise AlreadyLinkedError()

    link = ClientProviderLink(client_user_id=client_user_id, organization_id=org.id)
    db.add(link)
    try:
        db.flush()
        db.execute(
            update(Subscription)
            .where(Subscription.organization_id == org.id)
            .values(client_count=Subscription.client_count + 1)
        )
        if commit:
            db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyLinkedError()

    logger.info(
        "Client joined organization",
        extra={"user_id": str(client_user_id), "org_id": str(org.id)},
    )
    return link


def unlink_client(db: Session, org_id: UUID, client_user_id: UUID) -> bool:
    """
    Remove a client from an organization.

    Returns False when no link existed. The decrement is conditional so the
    counter never drops below zero.
    """
    result = db.execute(
        delete(ClientProviderLink).where(
            ClientProviderLink.organization_id == org_id,
            ClientProviderLink.client_user_id == client_user_id,
        )
    )
    if not result.rowcount:
        db.rollback()
        return False

    db.execute(
        update(Subscription)
        .where(
            Subscription.organization_id == org_id,
            Subscription.client_count > 0,
        )
        .values(client_count=Subscription.client_count - 1)
    )
    db.commit()
    return True


def list_clients(db: Session, org_id: UUID) -> list[tuple[User, datetime, int]]:
    """Clients linked to an organization with join time and task count."""
    task_count = func.count(Task.id)
    rows = (
        db.query(User, ClientProviderLink.joined_at, task_count)
        .join(ClientProviderLink, ClientProviderLink.client_user_id == User.id)
        .outerjoin(
            Task,
            and_(Task.owner_user_id == User.id, Task.organization_id == org_id),
        )
        .filter(ClientProviderLink.organization_id == org_id)
        .group_by(User.id, ClientProviderLink.joined_at)
        .order_by(ClientProviderLink.joined_at)
        .all()
    )
    return [(user, joined_at, count) for user, joined_at, count in rows]


def list_providers(db: Session, client_user_id: UUID) -> list[tuple[Organization, datetime]]:
    """Organizations a client joined, primary (earliest) first."""
    rows = (
        db.query(Organization, ClientProviderLink.joined_at)
        .join(ClientProviderLink, ClientProviderLink.organization_id == Organization.id)
        .filter(ClientProviderLink.client_user_id == client_user_id)
        .order_by(ClientProviderLink.joined_at, ClientProviderLink.id)
        .all()
    )
    return [(org, joined_at) for org, joined_at in rows]
