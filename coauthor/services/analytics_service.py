# coauthor/services/analytics_service.py
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Optional

from sqlmodel import Session, select

from coauthor.models.authorship_purchase import AuthorshipPurchase, PaymentStatus


def payment_analytics(session: Session, days: int = 30, now: Optional[datetime] = None) -> List[dict]:
    """Per-day purchase totals, newest day first."""
    now = now or datetime.utcnow()
    start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)

    purchases = session.exec(
        select(AuthorshipPurchase).where(AuthorshipPurchase.created_at >= start)
    ).all()

    buckets = OrderedDict()
    for offset in range(days):
        day = (now - timedelta(days=offset)).date()
        buckets[day] = {
            "payment_date": day.isoformat(),
            "completed_count": 0,
            "completed_amount": 0,
            "discount_amount": 0,
            "pending_count": 0,
            "failed_count": 0,
            "refunded_count": 0,
        }

    for purchase in purchases:
        bucket = buckets.get(purchase.created_at.date())
        if bucket is None:
            continue

        status = purchase.payment_status
        if status == PaymentStatus.completed.value:
            bucket["completed_count"] += 1
            bucket["completed_amount"] += purchase.total_amount
            bucket["discount_amount"] += purchase.discount_amount
        elif status == PaymentStatus.pending.value:
            bucket["pending_count"] += 1
        elif status == PaymentStatus.failed.value:
            bucket["failed_count"] += 1
        elif status == PaymentStatus.refunded.value:
            bucket["refunded_count"] += 1

    return list(buckets.values())
