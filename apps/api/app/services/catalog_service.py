"""Catalog service - provider-managed pricing rules and service offerings."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models import PricingRule, Service
from app.schemas.product import (
    PricingRuleCreate,
    PricingRuleUpdate,
    ServiceCreate,
    ServiceUpdate,
)


def list_pricing_rules(db: Session, org_id: UUID, active_only: bool = False) -> list[PricingRule]:
    query = db.query(PricingRule).filter(PricingRule.organization_id == org_id)
    if active_only:
        query = query.filter(PricingRule.is_active.is_(True))
    return query.order_by(PricingRule.category, PricingRule.name).all()


def get_pricing_rule(db: Session, org_id: UUID, rule_id: UUID) -> PricingRule | None:
    return (
        db.query(PricingRule)
        .filter(PricingRule.id == rule_id, PricingRule.organization_id == org_id)
        .first()
    )


def create_pricing_rule(db: Session, org_id: UUID, data: PricingRuleCreate) -> PricingRule:
    rule = PricingRule(organization_id=org_id, **data.model_dump())
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def update_pricing_rule(db: Session, rule: PricingRule, data: PricingRuleUpdate) -> PricingRule:
    """
    Apply a partial update.

    Raises:
        ValueError: resulting min_price exceeds max_price
    """
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(rule, field, value)
    if rule.min_price is not None and rule.max_price is not None and rule.min_price > rule.max_price:
        db.rollback()
        raise ValueError("min_price must not exceed max_price")
    db.commit()
    db.refresh(rule)
    return rule


def list_services(db: Session, org_id: UUID, active_only: bool = False) -> list[Service]:
    query = db.query(Service).filter(Service.organization_id == org_id)
    if active_only:
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.name).all()


def get_service(db: Session, org_id: UUID, service_id: UUID) -> Service | None:
    return (
        db.query(Service)
        .filter(Service.id == service_id, Service.organization_id == org_id)
        .first()
    )


def _clean_keywords(keywords: list[str]) -> list[str]:
    cleaned: list[str] = []
    for keyword in keywords:
        value = keyword.strip().lower()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


def create_service(db: Session, org_id: UUID, data: ServiceCreate) -> Service:
    values = data.model_dump()
    values["keywords"] = _clean_keywords(values["keywords"])
    service = Service(organization_id=org_id, **values)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def update_service(db: Session, service: Service, data: ServiceUpdate) -> Service:
    changes = data.model_dump(exclude_unset=True)
    if changes.get("keywords") is not None:
        changes["keywords"] = _clean_keywords(changes["keywords"])
    for field, value in changes.items():
        if value is None and field in ("name", "keywords", "is_active"):
            continue
        setattr(service, field, value)
    db.commit()
    db.refresh(service)
    return service


def delete_row(db: Session, row: PricingRule | Service) -> None:
    db.delete(row)
    db.commit()
