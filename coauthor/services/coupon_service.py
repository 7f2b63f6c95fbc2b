# coauthor/services/coupon_service.py
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlmodel import Session, select

from coauthor.models.coupon import Coupon, DiscountType
from coauthor.services.errors import CouponExhausted, NotFound, ValidationError

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


@dataclass
class CouponEvaluation:
    coupon: Coupon
    discount_amount: int


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_coupon_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def compute_discount(coupon: Coupon, base_amount: int) -> int:
    """Whole-rupee discount, never more than the base amount."""
    if coupon.discount_type == DiscountType.percentage.value:
        # round half up
        discount = (base_amount * coupon.discount_value + 50) // 100
    else:
        discount = coupon.discount_value

    return max(0, min(discount, base_amount))


def get_coupon_by_code(session: Session, code: str) -> Optional[Coupon]:
    return session.exec(
        select(Coupon).where(Coupon.code == normalize_code(code))
    ).first()


def evaluate(
    session: Session,
    code: str,
    base_amount: int,
    now: Optional[datetime] = None,
) -> CouponEvaluation:
    """
    Validate a coupon against a base price and compute the discount.

    Read only: redemption happens in `redeem`, inside the purchase
    transaction.
    """
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationError("Coupon code is required", field="coupon_code")

    coupon = get_coupon_by_code(session, normalized)

    if not coupon or not coupon.is_active or coupon.is_expired(now):
        raise NotFound("Coupon code not found or expired", code=normalized)

    if coupon.is_exhausted():
        raise CouponExhausted("Coupon usage limit reached", code=normalized)

    return CouponEvaluation(
        coupon=coupon,
        discount_amount=compute_discount(coupon, base_amount),
    )


def redeem(session: Session, coupon: Coupon) -> None:
    """
    Atomically bump used_count while the limit still allows it.

    Runs in the caller's transaction; the caller commits.
    """
    result = session.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .where(Coupon.is_active == True)  # noqa: E712
        .where(
            or_(
                Coupon.max_uses.is_(None),
                Coupon.used_count < Coupon.max_uses,
            )
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        logger.info(f"Coupon {coupon.code} exhausted during redemption")
        raise CouponExhausted("Coupon usage limit reached", code=coupon.code)

    logger.info(f"Coupon {coupon.code} redeemed")
