# coauthor/services/payment_event_service.py
import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from coauthor.models.payment_event import PaymentEvent

logger = logging.getLogger(__name__)


def log_payment_event(
    session: Session,
    purchase_id: int,
    transaction_id: Optional[str],
    event_type: str,
    event_data: Optional[dict] = None,
    created_by: str = "system",
) -> Optional[PaymentEvent]:
    """
    Append-only payment audit log.

    Commits on its own so the caller's status transition is already durable.
    A failed write is reported and swallowed; it never undoes the transition.
    """

    event = PaymentEvent(
        id=str(uuid4()),
        purchase_id=purchase_id,
        transaction_id=transaction_id,
        event_type=event_type,
        event_data=event_data,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )

    try:
        session.add(event)
        session.commit()
    except SQLAlchemyError:
        logger.exception(
            f"Could not write payment event {event_type} "
            f"for purchase {purchase_id} (txn {transaction_id})"
        )
        session.rollback()
        return None

    return event


def list_payment_events(session: Session, purchase_id: int) -> List[PaymentEvent]:
    return session.exec(
        select(PaymentEvent)
        .where(PaymentEvent.purchase_id == purchase_id)
        .order_by(PaymentEvent.created_at.desc())
    ).all()
