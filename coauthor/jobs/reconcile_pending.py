import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session, select

from coauthor.config import settings
from coauthor.database import engine
from coauthor.models.authorship_purchase import (
    AuthorshipPurchase,
    PaymentMethod,
    PaymentStatus,
)
from coauthor.services.errors import StoreError
from coauthor.services.reconciliation_service import poll_status
from coauthor.services.wallet_gateway import WalletGateway

logger = logging.getLogger(__name__)


def reconcile_stale_payments(
    session: Session,
    gateway: WalletGateway,
    older_than_minutes: Optional[int] = None,
) -> int:
    """
    Poll the wallet gateway for pending purchases that never heard back.

    Returns how many purchases changed status.
    """
    minutes = older_than_minutes if older_than_minutes is not None else settings.STALE_PAYMENT_MINUTES
    cutoff = datetime.utcnow() - timedelta(minutes=minutes)

    purchases = session.exec(
        select(AuthorshipPurchase)
        .where(AuthorshipPurchase.payment_status == PaymentStatus.pending.value)
        .where(AuthorshipPurchase.payment_method == PaymentMethod.wallet.value)
        .where(AuthorshipPurchase.payment_id.is_not(None))
        .where(AuthorshipPurchase.updated_at < cutoff)
    ).all()

    changed = 0
    for purchase in purchases:
        try:
            outcome = poll_status(session, purchase, gateway)
        except StoreError as exc:
            logger.warning(f"Status poll failed for purchase {purchase.id}: {exc.message}")
            continue
        if outcome.changed:
            changed += 1

    logger.info(f"Reconciled {len(purchases)} stale payments, {changed} changed")
    return changed


def main():
    logging.basicConfig(level=settings.LOG_LEVEL)
    with Session(engine) as session:
        reconcile_stale_payments(session, WalletGateway())


if __name__ == "__main__":
    main()
