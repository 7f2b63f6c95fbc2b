from fastapi import APIRouter, Depends
from sqlmodel import Session

from coauthor.database import get_session
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.models.user import User
from coauthor.schemas.coupon_schemas import CouponPreviewRequest, CouponPreviewResponse
from coauthor.services import coupon_service, position_ledger
from coauthor.services.errors import NotFound
from coauthor.utils.token import get_current_user

router = APIRouter()


@router.post("/preview", response_model=CouponPreviewResponse)
def preview_coupon(
    payload: CouponPreviewRequest,
    session: Session = Depends(get_session),
    _: User = Depends(get_current_user),
):
    """Show the discount a coupon would give; nothing is redeemed."""
    book = session.get(UpcomingBook, payload.book_id)
    if not book:
        raise NotFound("Book not found")

    token = position_ledger.reserve(session, book, payload.position_number)
    evaluation = coupon_service.evaluate(session, payload.code, token.price)

    return CouponPreviewResponse(
        code=evaluation.coupon.code,
        discount_type=evaluation.coupon.discount_type,
        discount_value=evaluation.coupon.discount_value,
        base_amount=token.price,
        discount_amount=evaluation.discount_amount,
        final_amount=token.price - evaluation.discount_amount,
    )
