# coauthor/services/purchase_service.py
import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from coauthor.config import settings
from coauthor.models.authorship_purchase import (
    AuthorshipPurchase,
    PaymentMethod,
    PaymentStatus,
)
from coauthor.models.upcoming_book import BookStatus, UpcomingBook
from coauthor.models.user import User
from coauthor.schemas.payment_schemas import merge_payment_details
from coauthor.schemas.purchase_schemas import BuyerDetails
from coauthor.services import coupon_service, position_ledger
from coauthor.services.errors import NotFound, SoldOut, ValidationError

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^[6-9]\d{9}$")
IFSC_RE = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
ACCOUNT_RE = re.compile(r"^\d{9,18}$")
UNSAFE_CHARS_RE = re.compile(r"[<>\"'&]")


def sanitize_input(value: Optional[str]) -> str:
    return UNSAFE_CHARS_RE.sub("", (value or "").strip())


def validate_buyer(buyer: BuyerDetails, method: str) -> BuyerDetails:
    """Return a cleaned copy of the buyer details or raise on the first problem."""

    phone = (buyer.phone_number or "").strip()
    if not PHONE_RE.match(phone):
        raise ValidationError("Invalid phone number format", field="phone_number")

    name = sanitize_input(buyer.full_name)
    if len(name) < 2:
        raise ValidationError("Invalid name", field="full_name")

    cleaned = buyer.model_copy(update={
        "phone_number": phone,
        "full_name": name,
        "bio": sanitize_input(buyer.bio) or None,
    })

    if method == PaymentMethod.bank_verify.value:
        account = (buyer.bank_account_number or "").strip()
        if not ACCOUNT_RE.match(account):
            raise ValidationError(
                "Bank account number must be 9 to 18 digits",
                field="bank_account_number",
            )

        ifsc = (buyer.bank_ifsc_code or "").strip().upper()
        if not IFSC_RE.match(ifsc):
            raise ValidationError("Invalid IFSC code", field="bank_ifsc_code")

        holder = sanitize_input(buyer.account_holder_name) or name
        if len(holder) < 2:
            raise ValidationError("Invalid account holder name", field="account_holder_name")

        cleaned = cleaned.model_copy(update={
            "bank_account_number": account,
            "bank_ifsc_code": ifsc,
            "account_holder_name": holder,
        })

    return cleaned


def validate_amount(total_amount: int) -> None:
    if total_amount <= 0 or total_amount > settings.MAX_PURCHASE_AMOUNT:
        raise ValidationError("Invalid amount", field="total_amount", total_amount=total_amount)


def submit(
    *,
    session: Session,
    book: Optional[UpcomingBook],
    position_number: int,
    buyer: BuyerDetails,
    user: User,
    payment_method: str = PaymentMethod.wallet.value,
    coupon_code: Optional[str] = None,
) -> AuthorshipPurchase:
    """
    Single creation path for authorship purchases.

    Validation stops at the first violation: buyer fields, position
    availability, coupon, amount bounds. Coupon redemption, the availability
    re-check and the insert share one transaction.
    """

    buyer = validate_buyer(buyer, payment_method)

    if not book or book.status != BookStatus.active.value:
        raise NotFound("Book not available")

    token = position_ledger.reserve(session, book, position_number)

    try:
        evaluation = None
        discount_amount = 0
        if coupon_code and coupon_code.strip():
            evaluation = coupon_service.evaluate(session, coupon_code, token.price)
            discount_amount = evaluation.discount_amount

        total_amount = token.price - discount_amount
        validate_amount(total_amount)

        if evaluation:
            coupon_service.redeem(session, evaluation.coupon)

        position_ledger.commit(session, token)

        details = {}
        if payment_method == PaymentMethod.bank_verify.value:
            details = merge_payment_details({}, payment_method, {
                "bank_account_number": buyer.bank_account_number,
                "bank_ifsc_code": buyer.bank_ifsc_code,
                "account_holder_name": buyer.account_holder_name,
            })

        purchase = AuthorshipPurchase(
            book_id=book.id,
            user_id=user.id,
            position_number=token.position_number,
            positions_purchased=1,
            base_amount=token.price,
            discount_amount=discount_amount,
            total_amount=total_amount,
            payment_status=PaymentStatus.pending.value,
            payment_method=payment_method,
            payment_details=details,
            coupon_code=evaluation.coupon.code if evaluation else None,
            buyer_name=buyer.full_name,
            phone_number=buyer.phone_number,
            bio=buyer.bio,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )

        session.add(purchase)
        session.commit()

    except IntegrityError:
        session.rollback()
        position_ledger.release(token)
        raise SoldOut(f"Position {position_number} is already taken")
    except Exception:
        session.rollback()
        position_ledger.release(token)
        raise

    session.refresh(purchase)

    logger.info(
        f"Purchase {purchase.id} created: book {book.id} position "
        f"{purchase.position_number} total {purchase.total_amount}"
    )
    return purchase
