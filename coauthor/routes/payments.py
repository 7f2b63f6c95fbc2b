import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from coauthor.database import get_session
from coauthor.dependencies.gateways import get_wallet_gateway
from coauthor.models.user import User
from coauthor.schemas.payment_schemas import StatusCheckRequest
from coauthor.services.errors import InvalidSignature, NotFound
from coauthor.services.reconciliation_service import (
    get_purchase_by_payment_id,
    handle_webhook,
    poll_status,
)
from coauthor.services.wallet_gateway import WalletGateway
from coauthor.utils.token import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/status")
def check_payment_status(
    payload: StatusCheckRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: WalletGateway = Depends(get_wallet_gateway),
):
    purchase = get_purchase_by_payment_id(session, payload.transaction_id)

    if purchase.user_id != current_user.id and current_user.role != "admin":
        raise HTTPException(403, "This purchase belongs to another user")

    outcome = poll_status(session, purchase, gateway, payload.transaction_id)

    return {
        "success": True,
        "paymentStatus": outcome.status,
        "transactionId": payload.transaction_id,
        "changed": outcome.changed,
        "message": "Payment status retrieved successfully",
    }


@router.post("/webhook")
async def wallet_webhook(
    request: Request,
    x_verify: str | None = Header(default=None, alias="X-VERIFY"),
    session: Session = Depends(get_session),
    gateway: WalletGateway = Depends(get_wallet_gateway),
):
    try:
        body = await request.json()
    except ValueError:
        body = {}

    try:
        outcome = handle_webhook(session, x_verify, body, gateway)
    except InvalidSignature as exc:
        logger.warning(f"Rejected wallet webhook: {exc.message}")
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": exc.message, "message": "Webhook processing failed"},
        )
    except NotFound as exc:
        logger.error(f"Wallet webhook for unknown purchase: {exc.message} {exc.context}")
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": exc.message, "message": "Webhook processing failed"},
        )

    return {
        "success": True,
        "paymentStatus": outcome.status,
        "anomaly": outcome.anomaly,
        "message": "Webhook processed successfully",
    }
