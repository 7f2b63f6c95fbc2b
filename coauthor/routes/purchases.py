from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from coauthor.database import get_session
from coauthor.dependencies.gateways import get_bank_gateway, get_wallet_gateway
from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.models.user import User
from coauthor.schemas.payment_schemas import WalletPayRequest
from coauthor.schemas.purchase_schemas import BuyerDetails, PurchaseCreate, PurchaseRead
from coauthor.services import purchase_service
from coauthor.services.bank_verify_gateway import BankVerifyGateway
from coauthor.services.payment_service import initiate_payment, payer_for
from coauthor.services.purchase_service import validate_buyer
from coauthor.services.wallet_gateway import WalletGateway
from coauthor.utils.pagination import paginate
from coauthor.utils.token import get_current_user

router = APIRouter()


def get_own_purchase(session: Session, purchase_id: int, user: User) -> AuthorshipPurchase:
    purchase = session.get(AuthorshipPurchase, purchase_id)

    if not purchase:
        raise HTTPException(404, "Purchase not found")

    if purchase.user_id != user.id:
        raise HTTPException(403, "This purchase belongs to another user")

    return purchase


@router.post("", status_code=201, response_model=PurchaseRead)
def create_purchase(
    payload: PurchaseCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    book = session.get(UpcomingBook, payload.book_id)

    return purchase_service.submit(
        session=session,
        book=book,
        position_number=payload.position_number,
        buyer=payload.buyer,
        user=current_user,
        payment_method=payload.payment_method.value,
        coupon_code=payload.coupon_code,
    )


@router.get("/me")
def my_purchases(
    page: int = 1,
    limit: int = 10,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    query = (
        select(AuthorshipPurchase)
        .where(AuthorshipPurchase.user_id == current_user.id)
        .order_by(AuthorshipPurchase.created_at.desc())
    )
    return paginate(
        session=session,
        query=query,
        page=page,
        limit=limit,
        transform=PurchaseRead.model_validate,
    )


@router.get("/{purchase_id}", response_model=PurchaseRead)
def get_purchase(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return get_own_purchase(session, purchase_id, current_user)


@router.post("/{purchase_id}/pay/wallet")
def pay_with_wallet(
    purchase_id: int,
    payload: WalletPayRequest | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: WalletGateway = Depends(get_wallet_gateway),
):
    purchase = get_own_purchase(session, purchase_id, current_user)
    payload = payload or WalletPayRequest()

    if payload.phone_number or payload.name:
        # re-check overrides the same way submit checked the originals
        validate_buyer(
            BuyerDetails(
                full_name=payload.name or purchase.buyer_name,
                phone_number=payload.phone_number or purchase.phone_number,
            ),
            purchase.payment_method,
        )

    outcome = initiate_payment(
        session=session,
        purchase=purchase,
        payer=payer_for(purchase, payload.phone_number, payload.name),
        gateway=gateway,
    )

    return {
        "success": True,
        "paymentId": outcome.payment_id,
        "paymentUrl": outcome.redirect_url,
        "status": outcome.status,
        "message": "Payment initiated successfully",
    }


@router.post("/{purchase_id}/pay/bank")
def pay_with_bank_verification(
    purchase_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: BankVerifyGateway = Depends(get_bank_gateway),
):
    purchase = get_own_purchase(session, purchase_id, current_user)

    outcome = initiate_payment(
        session=session,
        purchase=purchase,
        payer=payer_for(purchase),
        gateway=gateway,
    )
    raw = outcome.raw_response
    session.refresh(purchase)

    return {
        "success": True,
        "paymentId": outcome.payment_id,
        "status": purchase.payment_status,
        "message": "Payment processed successfully",
        "bankVerification": {
            "nameMatchScore": raw.get("name_match_score"),
            "bankName": raw.get("bank_name"),
            "accountStatus": raw.get("account_status"),
        },
    }
