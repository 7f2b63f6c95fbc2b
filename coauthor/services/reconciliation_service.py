# coauthor/services/reconciliation_service.py
"""
Payment reconciliation state machine.

Three triggers observe a purchase's payment outcome: the synchronous bank
verification response, the wallet webhook and the client status poll. Each
one feeds its observation into `reconcile`, which only moves the purchase
along ALLOWED_TRANSITIONS with a conditional UPDATE, so the triggers can
arrive in any order and any number of times.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from coauthor.constants.payment_status import ALLOWED_TRANSITIONS, TERMINAL_STATUSES
from coauthor.models.authorship_purchase import (
    AuthorshipPurchase,
    PaymentMethod,
    PaymentStatus,
)
from coauthor.models.payment_event import PaymentEvent, PaymentEventType
from coauthor.schemas.payment_schemas import merge_payment_details
from coauthor.services import position_ledger
from coauthor.services.email_service import send_purchase_completed_email
from coauthor.services.errors import InvalidTransition, NotEligible, NotFound
from coauthor.services.payment_event_service import log_payment_event
from coauthor.services.wallet_gateway import WalletGateway

logger = logging.getLogger(__name__)

# status API codes that mean "not decided yet" rather than failure
UNDECIDED_STATUS_CODES = {"PAYMENT_PENDING", "INTERNAL_SERVER_ERROR"}


@dataclass
class ReconcileOutcome:
    purchase: AuthorshipPurchase
    previous_status: str
    changed: bool
    anomaly: Optional[str] = None

    @property
    def status(self) -> str:
        return self.purchase.payment_status


def map_gateway_state(state: Optional[str], response_code: Optional[str]) -> str:
    if state == "COMPLETED" and response_code == "SUCCESS":
        return PaymentStatus.completed.value
    if state == "PENDING":
        return PaymentStatus.pending.value
    return PaymentStatus.failed.value


def map_status_response(result: Dict[str, Any]) -> str:
    data = result.get("data")
    if result.get("success") and data:
        return map_gateway_state(data.get("state"), data.get("responseCode"))
    if result.get("code") in UNDECIDED_STATUS_CODES:
        return PaymentStatus.pending.value
    return PaymentStatus.failed.value


def next_status(current: str, observed: str) -> str:
    """Transition function: (current, observed) -> new status."""
    if observed == current:
        return current
    if observed not in ALLOWED_TRANSITIONS.get(current, []):
        raise InvalidTransition(
            f"Cannot move payment from {current} to {observed}",
            current=current,
            observed=observed,
        )
    return observed


def get_purchase_by_payment_id(session: Session, payment_id: str) -> AuthorshipPurchase:
    """
    Find the purchase a platform transaction id belongs to.

    A purchase keeps only its latest transaction id in payment_id. Ids from
    earlier initiations are resolved through their `initiated` events, so a
    payment made on an older redirect still reaches its purchase.
    """
    purchase = session.exec(
        select(AuthorshipPurchase).where(AuthorshipPurchase.payment_id == payment_id)
    ).first()
    if purchase:
        return purchase

    event = session.exec(
        select(PaymentEvent)
        .where(PaymentEvent.transaction_id == payment_id)
        .where(PaymentEvent.event_type == PaymentEventType.INITIATED.value)
    ).first()
    purchase = session.get(AuthorshipPurchase, event.purchase_id) if event else None
    if not purchase:
        raise NotFound("Purchase not found", transaction_id=payment_id)

    logger.info(f"Transaction {payment_id} resolved to purchase {purchase.id} from an earlier initiation")
    return purchase


def _observation_for(purchase: AuthorshipPurchase, transaction_id: str, observed: str) -> str:
    """
    A transaction replaced by a later initiation can still complete the
    purchase, but its failure says nothing about the current attempt.
    """
    if (
        transaction_id != purchase.payment_id
        and observed == PaymentStatus.failed.value
    ):
        logger.info(
            f"Ignoring failure of superseded transaction {transaction_id} "
            f"on purchase {purchase.id} (current {purchase.payment_id})"
        )
        return PaymentStatus.pending.value
    return observed


def apply_transition(
    session: Session,
    purchase: AuthorshipPurchase,
    expected: str,
    new_status: str,
    payment_details: Optional[dict] = None,
) -> bool:
    """
    Compare-and-set on payment_status. Commits on success.

    Returns False when the row is no longer in `expected`.
    """
    values = {"payment_status": new_status, "updated_at": datetime.utcnow()}
    if payment_details is not None:
        values["payment_details"] = payment_details

    try:
        result = session.execute(
            update(AuthorshipPurchase)
            .where(AuthorshipPurchase.id == purchase.id)
            .where(AuthorshipPurchase.payment_status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            return False
        session.commit()
    except IntegrityError:
        session.rollback()
        raise

    session.refresh(purchase)
    return True


def _record_anomaly(
    session: Session,
    purchase: AuthorshipPurchase,
    observed: str,
    source: str,
    transaction_id: Optional[str],
    reason: str,
    event_data: Optional[dict],
) -> ReconcileOutcome:
    logger.warning(
        f"Payment anomaly on purchase {purchase.id} (txn {transaction_id}): "
        f"{reason}; current={purchase.payment_status} observed={observed} via {source}"
    )
    log_payment_event(
        session,
        purchase_id=purchase.id,
        transaction_id=transaction_id,
        event_type=PaymentEventType.CONFLICT.value,
        event_data={
            "reason": reason,
            "source": source,
            "current_status": purchase.payment_status,
            "observed_status": observed,
            **(event_data or {}),
        },
    )
    return ReconcileOutcome(
        purchase=purchase,
        previous_status=purchase.payment_status,
        changed=False,
        anomaly=reason,
    )


def reconcile(
    session: Session,
    purchase: AuthorshipPurchase,
    observed: str,
    *,
    source: str,
    transaction_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    event_data: Optional[dict] = None,
    _retries: int = 1,
) -> ReconcileOutcome:
    """
    Fold one gateway observation into the purchase.

    The first terminal status wins. A later, different terminal observation
    is recorded as a conflict and never overwrites it; a pending observation
    never downgrades a terminal purchase.
    """
    session.refresh(purchase)
    current = purchase.payment_status

    if current in TERMINAL_STATUSES and observed == PaymentStatus.pending.value:
        logger.info(
            f"Ignoring pending observation for {current} purchase {purchase.id} via {source}"
        )
        return ReconcileOutcome(purchase=purchase, previous_status=current, changed=False)

    merged = None
    if details:
        merged = merge_payment_details(purchase.payment_details, purchase.payment_method, details)

    if observed == current:
        if merged is not None and merged != purchase.payment_details:
            if not apply_transition(session, purchase, current, current, merged) and _retries:
                return reconcile(
                    session, purchase, observed, source=source, transaction_id=transaction_id,
                    details=details, event_data=event_data, _retries=_retries - 1,
                )
        return ReconcileOutcome(purchase=purchase, previous_status=current, changed=False)

    try:
        next_status(current, observed)
    except InvalidTransition:
        return _record_anomaly(
            session, purchase, observed, source, transaction_id,
            "terminal_state_conflict", event_data,
        )

    if observed == PaymentStatus.completed.value and position_ledger.completion_conflict(session, purchase):
        return _record_anomaly(
            session, purchase, observed, source, transaction_id,
            "position_already_sold", event_data,
        )

    try:
        moved = apply_transition(session, purchase, current, observed, merged)
    except IntegrityError:
        return _record_anomaly(
            session, purchase, observed, source, transaction_id,
            "position_already_sold", event_data,
        )

    if not moved:
        # another trigger got there first; judge the observation against the new state
        if _retries:
            return reconcile(
                session, purchase, observed, source=source, transaction_id=transaction_id,
                details=details, event_data=event_data, _retries=_retries - 1,
            )
        session.refresh(purchase)
        return ReconcileOutcome(purchase=purchase, previous_status=current, changed=False)

    logger.info(f"Purchase {purchase.id} payment {current} -> {observed} via {source}")

    event_type = (
        PaymentEventType.COMPLETED.value
        if observed == PaymentStatus.completed.value
        else PaymentEventType.FAILED.value
    )
    log_payment_event(
        session,
        purchase_id=purchase.id,
        transaction_id=transaction_id or purchase.payment_id,
        event_type=event_type,
        event_data={"source": source, "previous_status": current, **(event_data or {})},
    )

    if observed == PaymentStatus.completed.value:
        send_purchase_completed_email(session, purchase)

    return ReconcileOutcome(purchase=purchase, previous_status=current, changed=True)


def handle_webhook(
    session: Session,
    x_verify: Optional[str],
    body: Dict[str, Any],
    gateway: WalletGateway,
) -> ReconcileOutcome:
    decoded = gateway.verify_webhook(x_verify, body)

    data = decoded.get("data")
    if not isinstance(data, dict):
        data = {}
    merchant_transaction_id = data.get("merchantTransactionId")
    if not merchant_transaction_id:
        raise NotFound("Webhook has no merchant transaction id")

    reported = map_gateway_state(data.get("state"), data.get("responseCode"))
    purchase = get_purchase_by_payment_id(session, merchant_transaction_id)
    observed = _observation_for(purchase, merchant_transaction_id, reported)

    event_data = {
        "payment_status": reported,
        "phonepe_state": data.get("state"),
        "response_code": data.get("responseCode"),
        "transaction_id": data.get("transactionId"),
        "amount": data.get("amount"),
    }

    outcome = reconcile(
        session,
        purchase,
        observed,
        source="webhook",
        transaction_id=merchant_transaction_id,
        details={
            "webhook_response": decoded,
            "gateway_transaction_id": data.get("transactionId"),
        },
        event_data=event_data,
    )

    log_payment_event(
        session,
        purchase_id=purchase.id,
        transaction_id=merchant_transaction_id,
        event_type=PaymentEventType.WEBHOOK_RECEIVED.value,
        event_data={**event_data, "resulting_status": outcome.status, "anomaly": outcome.anomaly},
    )
    return outcome


def poll_status(
    session: Session,
    purchase: AuthorshipPurchase,
    gateway: WalletGateway,
    transaction_id: Optional[str] = None,
) -> ReconcileOutcome:
    """Ask the wallet gateway for the latest state and reconcile it."""
    if purchase.payment_method != PaymentMethod.wallet.value:
        raise NotEligible(
            f"Status checks are only available for wallet payments, not {purchase.payment_method}",
            purchase_id=purchase.id,
        )

    transaction_id = transaction_id or purchase.payment_id
    if not transaction_id:
        raise NotFound("Payment not initiated for this purchase")

    result = gateway.check_status(transaction_id)
    reported = map_status_response(result)
    observed = _observation_for(purchase, transaction_id, reported)
    data = result.get("data") or {}

    outcome = reconcile(
        session,
        purchase,
        observed,
        source="poll",
        transaction_id=transaction_id,
        details={
            "status_check_response": result,
            "gateway_transaction_id": data.get("transactionId"),
        },
        event_data={"phonepe_state": data.get("state"), "response_code": data.get("responseCode")},
    )

    log_payment_event(
        session,
        purchase_id=purchase.id,
        transaction_id=transaction_id,
        event_type=PaymentEventType.STATUS_CHECKED.value,
        event_data={
            "observed_status": reported,
            "resulting_status": outcome.status,
            "changed": outcome.changed,
            "superseded": observed != reported,
            "code": result.get("code"),
        },
    )
    return outcome
