import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session

from coauthor.models.authorship_purchase import (
    AuthorshipPurchase,
    PaymentMethod,
    PaymentStatus,
)
from coauthor.models.payment_event import PaymentEventType
from coauthor.schemas.payment_schemas import (
    GatewayOutcome,
    PayerInfo,
    merge_payment_details,
    parse_payment_details,
)
from coauthor.services.bank_verify_gateway import BankVerifyGateway
from coauthor.services.errors import (
    AlreadyCompleted,
    BankVerificationFailed,
    GatewayRejected,
    GatewayTimeout,
    NotEligible,
)
from coauthor.services.payment_event_service import log_payment_event
from coauthor.services.payment_gateway import PaymentGateway
from coauthor.services.purchase_service import validate_amount
from coauthor.services.reconciliation_service import reconcile

logger = logging.getLogger(__name__)


def payer_for(purchase: AuthorshipPurchase, phone_number: Optional[str] = None,
              name: Optional[str] = None) -> PayerInfo:
    """Payer details from the purchase, with optional overrides from the request."""
    payer = PayerInfo(
        name=name or purchase.buyer_name,
        phone_number=phone_number or purchase.phone_number,
    )
    if purchase.payment_method == PaymentMethod.bank_verify.value:
        extra = parse_payment_details(purchase.payment_details, purchase.payment_method).extra
        payer.bank_account = extra.get("bank_account_number")
        payer.ifsc = extra.get("bank_ifsc_code")
        payer.name = name or extra.get("account_holder_name") or purchase.buyer_name
    return payer


def _assign_transaction_id(session: Session, purchase: AuthorshipPurchase, transaction_id: str) -> None:
    details = merge_payment_details(
        purchase.payment_details,
        purchase.payment_method,
        {"merchant_transaction_id": transaction_id},
    )
    result = session.execute(
        update(AuthorshipPurchase)
        .where(AuthorshipPurchase.id == purchase.id)
        .where(AuthorshipPurchase.payment_status == PaymentStatus.pending.value)
        .values(payment_id=transaction_id, payment_details=details, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        session.refresh(purchase)
        _guard_initiation(purchase)
        raise NotEligible("Purchase is no longer pending")

    session.commit()
    session.refresh(purchase)


def _guard_initiation(purchase: AuthorshipPurchase) -> None:
    if purchase.payment_status == PaymentStatus.completed.value:
        raise AlreadyCompleted("Payment already completed for this purchase", purchase_id=purchase.id)
    if purchase.payment_status != PaymentStatus.pending.value:
        raise NotEligible(
            f"Cannot pay for a {purchase.payment_status} purchase",
            purchase_id=purchase.id,
        )


def _merge_details(session: Session, purchase: AuthorshipPurchase, update_values: dict) -> None:
    purchase.payment_details = merge_payment_details(
        purchase.payment_details, purchase.payment_method, update_values
    )
    purchase.updated_at = datetime.utcnow()
    session.add(purchase)
    session.commit()
    session.refresh(purchase)


def initiate_payment(
    *,
    session: Session,
    purchase: AuthorshipPurchase,
    payer: PayerInfo,
    gateway: PaymentGateway,
) -> GatewayOutcome:
    """
    Start a payment for a pending purchase.

    The platform transaction id is stored before the gateway is called so
    webhooks and polls can find the purchase even if this request dies.
    Wallet payments stay pending; bank verification settles immediately.
    """
    _guard_initiation(purchase)
    validate_amount(purchase.total_amount)

    if gateway.method != purchase.payment_method:
        raise NotEligible(
            f"Purchase expects {purchase.payment_method} payment, got {gateway.method}",
            purchase_id=purchase.id,
        )

    transaction_id = gateway.new_transaction_id()
    _assign_transaction_id(session, purchase, transaction_id)

    log_payment_event(
        session,
        purchase_id=purchase.id,
        transaction_id=transaction_id,
        event_type=PaymentEventType.INITIATED.value,
        event_data={
            "amount": purchase.total_amount,
            "phone_number": payer.phone_number,
            "payment_method": gateway.method,
        },
    )

    try:
        outcome = gateway.initiate(purchase, purchase.total_amount, payer, transaction_id)

    except BankVerificationFailed as exc:
        log_payment_event(
            session,
            purchase_id=purchase.id,
            transaction_id=transaction_id,
            event_type=PaymentEventType.BANK_VERIFIED.value,
            event_data={"account_status_code": exc.reason_code, "response": exc.raw_response},
        )
        raw = exc.raw_response or {}
        reconcile(
            session,
            purchase,
            PaymentStatus.failed.value,
            source="sync",
            transaction_id=transaction_id,
            details={
                "account_status": raw.get("account_status"),
                "account_status_code": exc.reason_code,
                "verification_response": raw,
            },
            event_data={"reason_code": exc.reason_code},
        )
        raise

    except (GatewayRejected, GatewayTimeout) as exc:
        logger.error(
            f"Payment initiation failed for purchase {purchase.id} "
            f"(txn {transaction_id}): {exc.message}"
        )
        raw = getattr(exc, "raw_response", None)
        _merge_details(session, purchase, {
            "rejection": {"error": exc.code, "message": exc.message, "response": raw},
        })
        log_payment_event(
            session,
            purchase_id=purchase.id,
            transaction_id=transaction_id,
            event_type=PaymentEventType.INITIATED.value,
            event_data={"error": exc.code, "message": exc.message, "response": raw},
        )
        raise

    if isinstance(gateway, BankVerifyGateway):
        raw = outcome.raw_response
        log_payment_event(
            session,
            purchase_id=purchase.id,
            transaction_id=transaction_id,
            event_type=PaymentEventType.BANK_VERIFIED.value,
            event_data={
                "account_status": raw.get("account_status"),
                "name_match_score": raw.get("name_match_score"),
                "bank_name": raw.get("bank_name"),
            },
        )
        reconcile(
            session,
            purchase,
            outcome.status,
            source="sync",
            transaction_id=transaction_id,
            details={
                "utr": outcome.gateway_transaction_id,
                "account_status": raw.get("account_status"),
                "name_match_score": raw.get("name_match_score"),
                "bank_name": raw.get("bank_name"),
                "verification_response": raw,
            },
            event_data={"utr": outcome.gateway_transaction_id},
        )
    else:
        _merge_details(session, purchase, {"initiate_response": outcome.raw_response})

    logger.info(f"Payment initiated for purchase {purchase.id}: {transaction_id}")
    return outcome
