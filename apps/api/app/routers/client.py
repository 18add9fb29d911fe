"""Client router - personal dashboard figures."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, get_db, require_roles
from app.db.enums import Role
from app.db.models import User
from app.schemas.user import ClientStats
from app.services import stats_service

router = APIRouter()


@router.get(
    "/stats",
    response_model=ClientStats,
    dependencies=[Depends(require_roles([Role.CLIENT]))],
)
def client_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ClientStats(**stats_service.get_client_stats(db, user))
