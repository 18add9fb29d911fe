"""Catalog router - pricing rules and service offerings managed by providers."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from app.db.enums import Role
from app.schemas.auth import CallerContext
from app.schemas.product import (
    PricingRuleCreate,
    PricingRuleRead,
    PricingRuleUpdate,
    ServiceCreate,
    ServiceRead,
    ServiceUpdate,
)
from app.services import catalog_service

router = APIRouter()

require_manager = require_roles([Role.SERVICE_PROVIDER, Role.MASTER_ADMIN])


def _catalog_org_id(session: CallerContext, organization_id: UUID | None) -> UUID:
    """Any in-scope organization; defaults to the primary one."""
    org_id = organization_id or session.primary_org_id
    if org_id is None:
        if session.unrestricted:
            raise HTTPException(status_code=400, detail="organization_id: required")
        raise HTTPException(status_code=404, detail="Organization not found")
    if not session.can_access_org(org_id):
        raise HTTPException(status_code=404, detail="Organization not found")
    return org_id


# =============================================================================
# Pricing rules
# =============================================================================

@router.get("/pricing", response_model=list[PricingRuleRead])
def list_pricing_rules(
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Providers see every rule; clients see active rules only."""
    org_id = _catalog_org_id(session, organization_id)
    rules = catalog_service.list_pricing_rules(
        db, org_id, active_only=session.role == Role.CLIENT
    )
    return [PricingRuleRead.model_validate(r) for r in rules]


@router.post(
    "/pricing",
    response_model=PricingRuleRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_pricing_rule(
    body: PricingRuleCreate,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    return PricingRuleRead.model_validate(catalog_service.create_pricing_rule(db, org_id, body))


@router.patch(
    "/pricing/{rule_id}",
    response_model=PricingRuleRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_pricing_rule(
    rule_id: UUID,
    body: PricingRuleUpdate,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    rule = catalog_service.get_pricing_rule(db, org_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Pricing rule not found")
    try:
        rule = catalog_service.update_pricing_rule(db, rule, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PricingRuleRead.model_validate(rule)


@router.delete(
    "/pricing/{rule_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_pricing_rule(
    rule_id: UUID,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    rule = catalog_service.get_pricing_rule(db, org_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Pricing rule not found")
    catalog_service.delete_row(db, rule)
    return None


# =============================================================================
# Services
# =============================================================================

@router.get("/services", response_model=list[ServiceRead])
def list_services(
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    services = catalog_service.list_services(
        db, org_id, active_only=session.role == Role.CLIENT
    )
    return [ServiceRead.model_validate(s) for s in services]


@router.post(
    "/services",
    response_model=ServiceRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_service(
    body: ServiceCreate,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    return ServiceRead.model_validate(catalog_service.create_service(db, org_id, body))


@router.patch(
    "/services/{service_id}",
    response_model=ServiceRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_service(
    service_id: UUID,
    body: ServiceUpdate,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    service = catalog_service.get_service(db, org_id, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return ServiceRead.model_validate(catalog_service.update_service(db, service, body))


@router.delete(
    "/services/{service_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_service(
    service_id: UUID,
    organization_id: UUID | None = Query(None),
    session: CallerContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    org_id = _catalog_org_id(session, organization_id)
    service = catalog_service.get_service(db, org_id, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    catalog_service.delete_row(db, service)
    return None
