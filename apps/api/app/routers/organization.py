"""Organization router - the provider's own organization and client roster."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db, require_csrf_header, require_roles
from app.db.enums import Role
from app.schemas.auth import CallerContext
from app.schemas.org import ClientRead, OrgProvisionRequest, OrgRead
from app.services import link_service, org_service, user_service

router = APIRouter()

require_manager = require_roles([Role.SERVICE_PROVIDER, Role.MASTER_ADMIN])


def _managed_org_id(session: CallerContext, organization_id: UUID | None) -> UUID:
    """Providers act on their own organization; master admins must name one."""
    if session.unrestricted:
        if organization_id is None:
            raise HTTPException(status_code=400, detail="organization_id: required")
        return organization_id
    if session.primary_org_id is None or (
        organization_id is not None and organization_id != session.primary_org_id
    ):
        raise HTTPException(status_code=404, detail="Organization not found")
    return session.primary_org_id


@router.get("", response_model=OrgRead)
def get_organization(
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Organization details with subscription summary. Never provisions."""
    if session.unrestricted and organization_id is None:
        org = org_service.get_org_for_owner(db, session.user_id)
    else:
        org = org_service.get_org_by_id(db, _managed_org_id(session, organization_id))
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return OrgRead.from_org(org)


@router.post(
    "/provision",
    response_model=OrgRead,
    dependencies=[Depends(require_csrf_header)],
)
def provision_organization(
    body: OrgProvisionRequest,
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Demo mode only: create the caller's organization without checkout."""
    if not settings.DEMO_MODE:
        raise HTTPException(status_code=403, detail="Provisioning requires checkout")
    owner = user_service.get_user_by_id(db, session.user_id)
    try:
        org = org_service.ensure_provisioned(db, owner, body.name, body.plan)
    except org_service.ProvisioningError:
        raise HTTPException(status_code=500, detail="Could not provision organization")
    return OrgRead.from_org(org)


@router.post(
    "/invite-code",
    response_model=OrgRead,
    dependencies=[Depends(require_csrf_header)],
)
def rotate_invite_code(
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Issue a new invite code; the previous code stops working."""
    org = org_service.get_org_by_id(db, _managed_org_id(session, organization_id))
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return OrgRead.from_org(org_service.rotate_invite_code(db, org))


@router.get("/clients", response_model=list[ClientRead])
def list_clients(
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _managed_org_id(session, organization_id)
    return [
        ClientRead(
            user_id=user.id,
            email=user.email,
            display_name=user.display_name,
            company_name=user.company_name,
            joined_at=joined_at,
            task_count=task_count,
        )
        for user, joined_at, task_count in link_service.list_clients(db, org_id)
    ]


@router.delete(
    "/clients/{client_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def remove_client(
    client_id: UUID,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Unlink a client. Their tasks stay; they lose access to this organization."""
    org_id = _managed_org_id(session, organization_id)
    if not link_service.unlink_client(db, org_id, client_id):
        raise HTTPException(status_code=404, detail="Client not found")
    return None
