from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import String, cast, or_
from sqlmodel import Session, select

from coauthor.database import get_session
from coauthor.dependencies.admin import require_admin
from coauthor.dependencies.gateways import get_wallet_gateway
from coauthor.models.authorship_purchase import AuthorshipPurchase, PaymentStatus
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.models.user import User
from coauthor.schemas.payment_schemas import RefundRecord, RefundRequest
from coauthor.schemas.purchase_schemas import PurchaseRead
from coauthor.services.payment_event_service import list_payment_events
from coauthor.services.refund_service import refund_purchase
from coauthor.services.wallet_gateway import WalletGateway
from coauthor.utils.pagination import paginate

router = APIRouter()


def _purchase_row(row):
    purchase, book_title, email = row
    return {
        **PurchaseRead.model_validate(purchase).model_dump(),
        "book_title": book_title,
        "user_email": email,
    }


@router.get("")
def list_purchases(
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    book_id: int | None = None,
    search: str | None = None,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    query = (
        select(AuthorshipPurchase, UpcomingBook.title, User.email)
        .join(UpcomingBook, UpcomingBook.id == AuthorshipPurchase.book_id)
        .join(User, User.id == AuthorshipPurchase.user_id)
    )

    if status and status.lower() != "all":
        query = query.where(AuthorshipPurchase.payment_status == status.lower())

    if book_id:
        query = query.where(AuthorshipPurchase.book_id == book_id)

    if search:
        s = f"%{search}%"
        query = query.where(
            or_(
                AuthorshipPurchase.buyer_name.ilike(s),
                AuthorshipPurchase.phone_number.ilike(s),
                AuthorshipPurchase.payment_id.ilike(s),
                User.email.ilike(s),
                cast(AuthorshipPurchase.id, String).ilike(s),
            )
        )

    return paginate(
        session=session,
        query=query.order_by(AuthorshipPurchase.created_at.desc()),
        page=page,
        limit=limit,
        transform=_purchase_row,
    )


@router.get("/{purchase_id}/events")
def purchase_events(
    purchase_id: int,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    return list_payment_events(session, purchase_id)


@router.post("/{purchase_id}/refund", response_model=RefundRecord)
def refund(
    purchase_id: int,
    payload: RefundRequest,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    gateway: WalletGateway = Depends(get_wallet_gateway),
):
    record = refund_purchase(
        session=session,
        purchase_id=purchase_id,
        amount=payload.refund_amount,
        reason=payload.reason,
        actor=admin,
        gateway=gateway,
    )
    record.message = "Refund initiated successfully"
    return record


@router.delete("/{purchase_id}")
def delete_purchase(
    purchase_id: int,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    purchase = session.get(AuthorshipPurchase, purchase_id)
    if not purchase:
        raise HTTPException(404, "Purchase not found")

    if purchase.payment_status in (PaymentStatus.completed.value, PaymentStatus.refunded.value):
        raise HTTPException(409, f"Cannot delete a {purchase.payment_status} purchase")

    session.delete(purchase)
    session.commit()
    return {"message": "Purchase deleted successfully"}
