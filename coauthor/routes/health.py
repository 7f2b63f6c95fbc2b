from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, text

from coauthor.config import settings
from coauthor.database import get_session

router = APIRouter()


@router.get("")
def health_check(session: Session = Depends(get_session)):
    try:
        session.exec(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "failed"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "gateways": {
            "wallet": bool(settings.PHONEPE_MERCHANT_ID and settings.PHONEPE_SALT_KEY),
            "bank_verify": bool(settings.CASHFREE_CLIENT_ID and settings.CASHFREE_CLIENT_SECRET),
        },
        "timestamp": datetime.utcnow().isoformat(),
    }
