"""Authentication service - signup, credential checks, identity resolution."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import MIN_PASSWORD_LENGTH, hash_password, verify_password
from app.db.enums import SELF_SERVICE_ROLES, AuthProvider, Role, SubscriptionPlan
from app.db.models import AuthIdentity, User
from app.schemas.auth import SignupRequest
from app.services import link_service, org_service
from app.services.google_oauth import GoogleUserInfo

logger = logging.getLogger(__name__)


class SignupError(ValueError):
    """Signup input rejected."""


class AccountDisabledError(Exception):
    pass


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise SignupError(f"password: must be at least {MIN_PASSWORD_LENGTH} characters")


def signup(db: Session, data: SignupRequest) -> User:
    """
    Create a local-credential account.

    Clients must redeem a valid invite code as part of signup (same checks
    as a later redeem). Providers name their organization and plan; in demo
    mode the organization is provisioned immediately, otherwise at checkout.

    Raises:
        SignupError: invalid input or duplicate email
        link_service.InviteError: invite code rejected
        org_service.ProvisioningError: demo provisioning failed
    """
    email = normalize_email(data.email)
    validate_password(data.password)

    if not Role.has_value(data.role) or Role(data.role) not in SELF_SERVICE_ROLES:
        raise SignupError("role: must be 'client' or 'service_provider'")
    role = Role(data.role)

    if role == Role.CLIENT and not (data.invite_code or "").strip():
        raise SignupError("invite_code: required for client accounts")
    if role == Role.SERVICE_PROVIDER:
        if not (data.organization_name or "").strip():
            raise SignupError("organization_name: required for service providers")
        if data.subscription_plan is None:
            raise SignupError("subscription_plan: required for service providers")

    if get_user_by_email(db, email):
        raise SignupError("An account with this email already exists")

    company_name = None
    if role == Role.CLIENT:
        company_name = (data.company_name or "").strip() or None

    user = User(
        email=email,
        display_name=(data.display_name or "").strip() or email.split("@")[0],
        role=role.value,
        company_name=company_name,
        password_hash=hash_password(data.password),
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise SignupError("An account with this email already exists")

    if role == Role.CLIENT:
        try:
            link_service.redeem_invite(db, user.id, data.invite_code, commit=False)
        except link_service.InviteError:
            db.rollback()
            raise

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SignupError("An account with this email already exists")
    db.refresh(user)

    if role == Role.SERVICE_PROVIDER and settings.DEMO_MODE:
        org_service.ensure_provisioned(
            db, user, data.organization_name, SubscriptionPlan.SIX_MONTH
        )
        db.refresh(user)

    logger.info("Account created", extra={"user_id": str(user.id), "role": role.value})
    return user


def authenticate(db: Session, email: str, password: str) -> User | None:
    """Return the user for valid credentials, else None (no detail leaked)."""
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def find_user_by_identity(
    db: Session,
    provider: AuthProvider,
    provider_subject: str
) -> User | None:
    """Find user by their external identity provider credentials."""
    identity = db.query(AuthIdentity).filter(
        AuthIdentity.provider == provider.value,
        AuthIdentity.provider_subject == provider_subject
    ).first()
    return identity.user if identity else None


def resolve_google_user(db: Session, google_user: GoogleUserInfo) -> User:
    """
    Find or create the account for a verified Google identity.

    Matches by identity first, then by email (attaching the identity).
    Unknown emails get a new client account with no organization yet.

    Raises:
        AccountDisabledError: account exists but is disabled
    """
    user = find_user_by_identity(db, AuthProvider.GOOGLE, google_user.sub)
    if user is None:
        user = get_user_by_email(db, google_user.email)
        if user is None:
            user = User(
                email=normalize_email(google_user.email),
                display_name=google_user.name or google_user.email.split("@")[0],
                role=Role.CLIENT.value,
            )
            db.add(user)
            db.flush()
        db.add(
            AuthIdentity(
                user_id=user.id,
                provider=AuthProvider.GOOGLE.value,
                provider_subject=google_user.sub,
                email=google_user.email,
            )
        )
        db.commit()
        db.refresh(user)

    if not user.is_active:
        raise AccountDisabledError()
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> User:
    """
    Replace the password and revoke other sessions.

    Accounts created through Google have no local password; they may set
    one without supplying the current password.

    Raises:
        SignupError: current password wrong or new password too short
    """
    if user.password_hash and not verify_password(current_password, user.password_hash):
        raise SignupError("current_password: incorrect")
    validate_password(new_password)
    user.password_hash = hash_password(new_password)
    user.token_version += 1
    db.commit()
    db.refresh(user)
    return user


def update_profile(
    db: Session,
    user: User,
    display_name: str | None = None,
    company_name: str | None = None,
) -> User:
    if display_name is not None:
        user.display_name = display_name.strip() or user.display_name
    if company_name is not None:
        if user.role != Role.CLIENT.value:
            raise SignupError("company_name: only client accounts have a company")
        user.company_name = company_name.strip() or None
    db.commit()
    db.refresh(user)
    return user


def revoke_sessions(db: Session, user: User) -> None:
    """Invalidate every issued session token for the user."""
    user.token_version += 1
    db.commit()
