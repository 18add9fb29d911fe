"""Providers router - a client's linked organizations and invite redemption."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.deps import get_db, require_csrf_header, require_roles
from app.db.enums import Role
from app.schemas.auth import CallerContext
from app.schemas.org import ProviderRead, RedeemRequest
from app.services import link_service

router = APIRouter()

require_client = require_roles([Role.CLIENT])


def _provider_list(db: Session, session: CallerContext) -> list[ProviderRead]:
    providers = link_service.list_providers(db, session.user_id)
    return [
        ProviderRead(
            organization_id=org.id,
            name=org.name,
            service_id=org.service_id,
            joined_at=joined_at,
            is_primary=index == 0,
        )
        for index, (org, joined_at) in enumerate(providers)
    ]


@router.get("", response_model=list[ProviderRead])
def list_providers(
    session: CallerContext = Depends(require_client),
    db: Session = Depends(get_db),
):
    """Linked organizations, primary (earliest joined) first."""
    return _provider_list(db, session)


@router.post(
    "/redeem",
    response_model=list[ProviderRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def redeem_invite(
    body: RedeemRequest,
    session: CallerContext = Depends(require_client),
    db: Session = Depends(get_db),
):
    """Join an organization with its invite code."""
    try:
        link_service.redeem_invite(db, session.user_id, body.invite_code)
    except link_service.InviteError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _provider_list(db, session)
