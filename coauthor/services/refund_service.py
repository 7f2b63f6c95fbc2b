import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from coauthor.models.authorship_purchase import (
    AuthorshipPurchase,
    PaymentMethod,
    PaymentStatus,
)
from coauthor.models.payment_event import PaymentEventType
from coauthor.models.user import User
from coauthor.schemas.payment_schemas import (
    RefundRecord,
    merge_payment_details,
    parse_payment_details,
)
from coauthor.services.email_service import send_refund_initiated_email
from coauthor.services.errors import (
    AmountExceedsOriginal,
    GatewayRejected,
    GatewayTimeout,
    NotEligible,
    NotFound,
    ValidationError,
)
from coauthor.services.payment_event_service import log_payment_event
from coauthor.services.payment_gateway import new_transaction_id
from coauthor.services.reconciliation_service import apply_transition
from coauthor.services.wallet_gateway import WalletGateway

logger = logging.getLogger(__name__)


def _request_gateway_refund(
    purchase: AuthorshipPurchase,
    refund_transaction_id: str,
    amount: int,
    gateway: Optional[WalletGateway],
):
    """Returns (refund_status, gateway_response, original_transaction_id)."""
    details = parse_payment_details(purchase.payment_details, purchase.payment_method)
    original_transaction_id = (
        getattr(details, "gateway_transaction_id", None)
        or getattr(details, "utr", None)
        or purchase.payment_id
    )

    if purchase.payment_method != PaymentMethod.wallet.value or gateway is None:
        # bank verification has no refund API; settled by hand
        return "manual", None, original_transaction_id

    try:
        result = gateway.refund(original_transaction_id, refund_transaction_id, amount)
    except GatewayTimeout:
        logger.warning(f"Refund request timed out for purchase {purchase.id} ({refund_transaction_id})")
        return "unknown", None, original_transaction_id
    except GatewayRejected as exc:
        logger.error(f"Refund request rejected for purchase {purchase.id}: {exc.message}")
        return "failed", exc.raw_response, original_transaction_id

    # refunds settle asynchronously on the gateway side
    status = "pending" if result.get("success") else "failed"
    return status, result, original_transaction_id


def refund_purchase(
    *,
    session: Session,
    purchase_id: int,
    amount: int,
    reason: str,
    actor: User,
    gateway: Optional[WalletGateway] = None,
) -> RefundRecord:
    """
    Reverse a completed purchase.

    The purchase flips to refunded as soon as the refund is requested, which
    frees the position; gateway settlement is tracked in payment_details.
    """
    purchase = session.get(AuthorshipPurchase, purchase_id)
    if not purchase:
        raise NotFound("Purchase not found", purchase_id=purchase_id)

    if purchase.payment_status != PaymentStatus.completed.value:
        raise NotEligible("Can only refund completed payments", purchase_id=purchase_id)

    if not reason or not reason.strip():
        raise ValidationError("Refund reason is required", field="reason")

    if amount <= 0:
        raise ValidationError("Invalid refund amount", field="refund_amount")

    if amount > purchase.total_amount:
        raise AmountExceedsOriginal(
            "Refund amount cannot exceed original payment",
            refund_amount=amount,
            total_amount=purchase.total_amount,
        )

    refund_transaction_id = new_transaction_id("REF")
    refund_details = {
        "refund_transaction_id": refund_transaction_id,
        "refund_amount": amount,
        "refund_reason": reason.strip(),
        "refund_status": "requested",
        "initiated_at": datetime.utcnow(),
        "initiated_by": actor.id,
    }

    # only one refund can claim a completed purchase; the gateway is called after the claim
    claimed = merge_payment_details(purchase.payment_details, purchase.payment_method, {
        "refund": refund_details,
    })
    if not apply_transition(
        session,
        purchase,
        PaymentStatus.completed.value,
        PaymentStatus.refunded.value,
        claimed,
    ):
        logger.warning(f"Refund {refund_transaction_id} lost the claim on purchase {purchase_id}")
        raise NotEligible("Purchase is no longer completed", purchase_id=purchase_id)

    refund_status, gateway_response, original_transaction_id = _request_gateway_refund(
        purchase, refund_transaction_id, amount, gateway
    )

    settled = merge_payment_details(purchase.payment_details, purchase.payment_method, {
        "refund": {
            **refund_details,
            "refund_status": refund_status,
            "gateway_response": gateway_response,
        },
    })
    if not apply_transition(
        session,
        purchase,
        PaymentStatus.refunded.value,
        PaymentStatus.refunded.value,
        settled,
    ):
        logger.error(
            f"Could not record refund {refund_transaction_id} result "
            f"({refund_status}) on purchase {purchase_id}"
        )

    log_payment_event(
        session,
        purchase_id=purchase.id,
        transaction_id=refund_transaction_id,
        event_type=PaymentEventType.REFUND_INITIATED.value,
        event_data={
            "original_transaction_id": original_transaction_id,
            "refund_amount": amount,
            "refund_reason": reason.strip(),
            "refund_status": refund_status,
            "initiated_by": actor.id,
        },
        created_by=f"admin:{actor.id}",
    )

    send_refund_initiated_email(
        session, purchase, refund_transaction_id, amount, reason.strip(), refund_status
    )

    logger.info(f"Refund {refund_transaction_id} initiated for purchase {purchase.id}")

    return RefundRecord(
        purchase_id=purchase.id,
        refund_transaction_id=refund_transaction_id,
        refund_amount=amount,
        refund_status=refund_status,
    )
