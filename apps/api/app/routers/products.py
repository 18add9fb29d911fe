"""Products router - client products and brand analysis."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db, require_csrf_header
from app.core.tenancy import can_manage_org
from app.db.enums import ProductStatus
from app.db.models import Product
from app.schemas.auth import CallerContext
from app.schemas.product import ProductCreate, ProductListItem, ProductRead
from app.services import product_service

router = APIRouter()


def _get_product_or_404(db: Session, session: CallerContext, product_id: UUID) -> Product:
    product = product_service.get_product(db, session, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("", response_model=list[ProductListItem])
def list_products(
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return [ProductListItem.model_validate(p) for p in product_service.list_products(db, session)]


@router.post(
    "",
    response_model=ProductRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_product(
    body: ProductCreate,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Register a product and queue its website analysis (poll GET for status)."""
    try:
        product = product_service.create_product(db, session, body)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    product_service.queue_analysis(db, product)
    db.refresh(product)
    return ProductRead.model_validate(product)


@router.get("/{product_id}", response_model=ProductRead)
def get_product(
    product_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return ProductRead.model_validate(_get_product_or_404(db, session, product_id))


@router.post(
    "/{product_id}/analyze",
    response_model=ProductRead,
    status_code=202,
    dependencies=[Depends(require_csrf_header)],
)
def reanalyze_product(
    product_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    product = _get_product_or_404(db, session, product_id)
    if product.status == ProductStatus.ANALYZING.value:
        raise HTTPException(status_code=400, detail="Analysis already in progress")
    product_service.queue_analysis(db, product)
    db.refresh(product)
    return ProductRead.model_validate(product)


@router.delete("/{product_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_product(
    product_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    product = _get_product_or_404(db, session, product_id)
    if product.owner_user_id != session.user_id and not can_manage_org(
        session, product.organization_id
    ):
        raise HTTPException(status_code=403, detail="Not authorized to delete this product")
    product_service.delete_product(db, product)
    return None
