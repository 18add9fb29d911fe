"""Master admin router - platform-wide accounts, organizations and stats."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.deps import get_db, require_csrf_header, require_roles
from app.db.enums import Role
from app.schemas.auth import CallerContext
from app.schemas.org import AdminOrgRead, SubscriptionSummary
from app.schemas.user import PlatformStats, UserRead, UserUpdate
from app.services import org_service, stats_service, user_service

router = APIRouter(dependencies=[Depends(require_roles([Role.MASTER_ADMIN]))])

require_admin = require_roles([Role.MASTER_ADMIN])


@router.get("/users", response_model=list[UserRead])
def list_users(
    role: Role | None = Query(None),
    db: Session = Depends(get_db),
):
    return [UserRead.model_validate(u) for u in user_service.list_users(db, role)]


@router.patch(
    "/users/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_user(
    user_id: UUID,
    body: UserUpdate,
    session: CallerContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = user_service.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        user = user_service.update_user(
            db,
            session.user_id,
            user,
            role=body.role,
            is_master_admin=body.is_master_admin,
            is_active=body.is_active,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UserRead.model_validate(user)


@router.delete(
    "/users/{user_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_user(
    user_id: UUID,
    session: CallerContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Purge an account with everything it owns. Admins cannot delete themselves."""
    user = user_service.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        user_service.delete_user(db, session.user_id, user)
    except user_service.SelfModificationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return None


@router.get("/organizations", response_model=list[AdminOrgRead])
def list_organizations(db: Session = Depends(get_db)):
    orgs = org_service.list_orgs(db)
    task_counts = stats_service.get_org_task_counts(db, [org.id for org in orgs])
    return [
        AdminOrgRead(
            id=org.id,
            name=org.name,
            slug=org.slug,
            service_id=org.service_id,
            owner_user_id=org.owner_user_id,
            owner_email=org.owner.email,
            created_at=org.created_at,
            task_count=task_counts.get(org.id, 0),
            subscription=SubscriptionSummary.from_subscription(org.subscription),
        )
        for org in orgs
    ]


@router.get("/stats", response_model=PlatformStats)
def platform_stats(db: Session = Depends(get_db)):
    return PlatformStats(**stats_service.get_platform_stats(db))
