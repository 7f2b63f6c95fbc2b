from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from coauthor.database import get_session
from coauthor.dependencies.admin import require_admin
from coauthor.models.user import User
from coauthor.services.analytics_service import payment_analytics

router = APIRouter()


@router.get("/analytics")
def analytics(
    days: int = Query(30, ge=1, le=365),
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    return {"days": days, "results": payment_analytics(session, days=days)}
