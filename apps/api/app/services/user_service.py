"""User service - account administration for the platform operator."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.enums import Role
from app.db.models import User

logger = logging.getLogger(__name__)


class SelfModificationError(ValueError):
    """Admins cannot delete or demote their own account."""


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    """Get user by ID."""
    return db.query(User).filter(User.id == user_id).first()


def list_users(db: Session, role: Role | None = None, limit: int = 500) -> list[User]:
    query = db.query(User)
    if role == Role.MASTER_ADMIN:
        query = query.filter(User.is_master_admin.is_(True))
    elif role is not None:
        query = query.filter(User.role == role.value, User.is_master_admin.is_(False))
    return query.order_by(User.created_at.desc()).limit(limit).all()


def delete_user(db: Session, actor_id: UUID, user: User) -> None:
    """
    Purge an account and everything it owns.

    Owned organization (with subscription, links, catalog), tasks, products
    and identities cascade; tasks of other clients in a purged organization
    keep their rows with no organization.

    Raises:
        SelfModificationError: actor tried to delete themselves
    """
    if user.id == actor_id:
        raise SelfModificationError("You cannot delete your own account")
    db.delete(user)
    db.commit()
    logger.info("Account purged", extra={"user_id": str(user.id)})


def update_user(
    db: Session,
    actor_id: UUID,
    user: User,
    role: Role | None = None,
    is_master_admin: bool | None = None,
    is_active: bool | None = None,
) -> User:
    """
    Change role, master-admin flag or active state.

    Disabling an account also revokes its sessions.

    Raises:
        SelfModificationError: actor tried to remove their own admin access
        ValueError: role not assignable
    """
    if user.id == actor_id and (is_master_admin is False or is_active is False):
        raise SelfModificationError("You cannot remove your own admin access")

    if role is not None:
        if role == Role.MASTER_ADMIN:
            raise ValueError("role: use is_master_admin to grant admin access")
        user.role = role.value
    if is_master_admin is not None:
        user.is_master_admin = is_master_admin
    if is_active is not None and is_active != user.is_active:
        user.is_active = is_active
        if not is_active:
            user.token_version += 1

    db.commit()
    db.refresh(user)
    return user
