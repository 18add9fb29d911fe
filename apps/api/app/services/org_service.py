"""Organization service - provisioning and invite-code management."""

import logging
import re
import secrets
import string
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.enums import Role, SubscriptionPlan, SubscriptionStatus
from app.db.models import Organization, Subscription, User
from app.db.types import utcnow
from app.utils.datetime_parsing import add_months

logger = logging.getLogger(__name__)

SERVICE_ID_PREFIX = "SVC-"
SERVICE_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SERVICE_ID_LENGTH = 5
SERVICE_ID_ATTEMPTS = 10
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8
MAX_SLUG_LENGTH = 50
PROVISION_ATTEMPTS = 3


class ProvisioningError(Exception):
    """Organization could not be provisioned (identifier space exhausted)."""


def get_org_by_id(db: Session, org_id: UUID) -> Organization | None:
    """Get organization by ID."""
    return db.query(Organization).filter(Organization.id == org_id).first()


def get_org_for_owner(db: Session, owner_user_id: UUID) -> Organization | None:
    return (
        db.query(Organization)
        .filter(Organization.owner_user_id == owner_user_id)
        .first()
    )


def get_org_by_invite_code(db: Session, invite_code: str) -> Organization | None:
    return (
        db.query(Organization)
        .filter(Organization.invite_code == invite_code.strip().upper())
        .first()
    )


def list_orgs(db: Session, limit: int = 200) -> list[Organization]:
    return db.query(Organization).order_by(Organization.created_at.desc()).limit(limit).all()


# =============================================================================
# Identifier generation
# =============================================================================

def slugify(name: str) -> str:
    """Lowercase, non-alphanumerics collapsed to '-', trimmed, max 50 chars."""
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].strip("-")
    return slug or "org"


def generate_unique_slug(db: Session, name: str) -> str:
    base = slugify(name)
    slug = base
    suffix = 2
    while db.query(Organization.id).filter(Organization.slug == slug).first():
        tail = f"-{suffix}"
        slug = f"{base[:MAX_SLUG_LENGTH - len(tail)]}{tail}"
        suffix += 1
    return slug


def generate_service_id(db: Session) -> str:
    """SVC-XXXXX from an unambiguous alphabet.

    Raises:
        ProvisioningError: no free identifier after SERVICE_ID_ATTEMPTS tries
    """
    for _ in range(SERVICE_ID_ATTEMPTS):
        candidate = SERVICE_ID_PREFIX + "".join(
            secrets.choice(SERVICE_ID_ALPHABET) for _ in range(SERVICE_ID_LENGTH)
        )
        exists = (
            db.query(Organization.id)
            .filter(Organization.service_id == candidate)
            .first()
        )
        if not exists:
            return candidate
    raise ProvisioningError("Could not generate a unique service ID")


def generate_invite_code(db: Session) -> str:
    while True:
        candidate = "".join(
            secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH)
        )
        exists = (
            db.query(Organization.id)
            .filter(Organization.invite_code == candidate)
            .first()
        )
        if not exists:
            return candidate


def build_invite_link(invite_code: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/auth/signup?invite={invite_code}"


# =============================================================================
# Provisioning
# =============================================================================

def build_subscription(
    plan: SubscriptionPlan,
    now: datetime | None = None,
    stripe_customer_id: str | None = None,
    stripe_checkout_session_id: str | None = None,
) -> Subscription:
    start = now or utcnow()
    return Subscription(
        plan=plan.value,
        status=SubscriptionStatus.ACTIVE.value,
        current_period_start=start,
        current_period_end=add_months(start, plan.months),
        client_count=0,
        stripe_customer_id=stripe_customer_id,
        stripe_checkout_session_id=stripe_checkout_session_id,
    )


def ensure_provisioned(
    db: Session,
    owner: User,
    name: str,
    plan: SubscriptionPlan,
    stripe_customer_id: str | None = None,
    stripe_checkout_session_id: str | None = None,
) -> Organization:
    """
    Make sure `owner` has an organization with a subscription.

    Idempotent per owner. Organization and subscription are written in one
    commit; if a concurrent call wins the unique owner constraint, the
    winner's organization is returned. An organization left without a
    subscription by an earlier release gets one attached.

    Raises:
        ProvisioningError: identifiers could not be generated
    """
    existing = get_org_for_owner(db, owner.id)
    if existing is not None:
        return _repair_subscription(db, existing, plan)

    for attempt in range(PROVISION_ATTEMPTS):
        invite_code = generate_invite_code(db)
        org = Organization(
            owner_user_id=owner.id,
            name=name.strip() or "My Organization",
            slug=generate_unique_slug(db, name),
            service_id=generate_service_id(db),
            invite_code=invite_code,
            invite_link=build_invite_link(invite_code),
        )
        org.subscription = build_subscription(
            plan,
            stripe_customer_id=stripe_customer_id,
            stripe_checkout_session_id=stripe_checkout_session_id,
        )
        if not owner.is_master_admin:
            owner.role = Role.SERVICE_PROVIDER.value
        db.add(org)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            winner = get_org_for_owner(db, owner.id)
            if winner is not None:
                return _repair_subscription(db, winner, plan)
            logger.warning(
                "Identifier collision provisioning organization (attempt %s)", attempt + 1
            )
            continue
        db.refresh(org)
        logger.info(
            "Provisioned organization",
            extra={"org_id": str(org.id), "user_id": str(owner.id)},
        )
        return org

    raise ProvisioningError("Could not provision organization")


def _repair_subscription(db: Session, org: Organization, plan: SubscriptionPlan) -> Organization:
    if org.subscription is None:
        org.subscription = build_subscription(plan)
        db.commit()
        db.refresh(org)
    return org


def rotate_invite_code(db: Session, org: Organization) -> Organization:
    """Issue a new invite code; the old one stops working immediately."""
    org.invite_code = generate_invite_code(db)
    org.invite_link = build_invite_link(org.invite_code)
    db.commit()
    db.refresh(org)
    return org
