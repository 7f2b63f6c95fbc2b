import pytest
import requests
from sqlmodel import Session, select

from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.models.payment_event import PaymentEvent
from coauthor.services import position_ledger
from coauthor.services.errors import (
    AmountExceedsOriginal,
    NotEligible,
    NotFound,
    ValidationError,
)
from coauthor.services.payment_gateway import decode_payload
from coauthor.services.refund_service import refund_purchase


@pytest.fixture
def completed(book, buyer, make_purchase):
    return make_purchase(
        book, buyer, 2,
        status="completed",
        payment_id="TXN_1_abc",
        total_amount=8100,
        payment_details={"kind": "wallet", "gateway_transaction_id": "T2409181234"},
    )


def refund(session, purchase_id, admin, amount=8100, reason="duplicate", gateway=None):
    return refund_purchase(
        session=session,
        purchase_id=purchase_id,
        amount=amount,
        reason=reason,
        actor=admin,
        gateway=gateway,
    )


def test_refund_more_than_paid_is_rejected(session, admin, completed, wallet_gateway):
    with pytest.raises(AmountExceedsOriginal):
        refund(session, completed.id, admin, amount=9000, gateway=wallet_gateway)

    session.refresh(completed)
    assert completed.payment_status == "completed"


def test_full_refund_frees_the_position(session, http, admin, book, completed, wallet_gateway):
    http.reply({"success": True, "code": "PAYMENT_PENDING", "data": {"state": "PENDING"}})

    record = refund(session, completed.id, admin, gateway=wallet_gateway)

    assert record.refund_amount == 8100
    assert record.refund_status == "pending"
    assert record.refund_transaction_id.startswith("REF_")

    session.refresh(completed)
    assert completed.payment_status == "refunded"
    details = completed.payment_details["refund"]
    assert details["refund_reason"] == "duplicate"
    assert details["refund_transaction_id"] == record.refund_transaction_id
    assert details["initiated_by"] == admin.id

    payload = decode_payload(http.calls[0]["json"]["request"])
    assert payload["originalTransactionId"] == "T2409181234"
    assert payload["amount"] == 810000

    assert position_ledger.reserve(session, book, 2).price == 9000

    event = session.exec(
        select(PaymentEvent).where(PaymentEvent.event_type == "refund_initiated")
    ).one()
    assert event.purchase_id == completed.id
    assert event.created_by == f"admin:{admin.id}"
    assert event.event_data["original_transaction_id"] == "T2409181234"


def test_partial_refund(session, http, admin, completed, wallet_gateway):
    http.reply({"success": True, "code": "PAYMENT_PENDING"})

    record = refund(session, completed.id, admin, amount=4000, gateway=wallet_gateway)

    assert record.refund_amount == 4000
    session.refresh(completed)
    assert completed.payment_status == "refunded"


def test_rejected_gateway_refund_is_still_recorded(session, http, admin, completed, wallet_gateway):
    http.reply({"success": False, "code": "BAD_REQUEST", "message": "Refund not allowed"})

    record = refund(session, completed.id, admin, gateway=wallet_gateway)

    assert record.refund_status == "failed"
    session.refresh(completed)
    assert completed.payment_status == "refunded"
    assert completed.payment_details["refund"]["refund_status"] == "failed"


def test_timed_out_gateway_refund_is_unknown(session, http, admin, completed, wallet_gateway):
    http.reply(exc=requests.Timeout("read timed out"))

    record = refund(session, completed.id, admin, gateway=wallet_gateway)

    assert record.refund_status == "unknown"


def test_bank_verified_purchase_is_refunded_by_hand(session, http, admin, book, buyer, make_purchase, wallet_gateway):
    purchase = make_purchase(
        book, buyer, 1,
        status="completed",
        payment_id="CF_1_abc",
        payment_method="bank_verify",
        payment_details={"kind": "bank_verify", "utr": "1675412345"},
    )

    record = refund(session, purchase.id, admin, amount=10000, gateway=wallet_gateway)

    assert record.refund_status == "manual"
    assert http.calls == []


def test_only_completed_purchases_are_refunded(session, admin, book, buyer, make_purchase):
    purchase = make_purchase(book, buyer, 1, status="pending")

    with pytest.raises(NotEligible):
        refund(session, purchase.id, admin, amount=100)


def test_refund_twice_is_not_eligible(session, http, admin, completed, wallet_gateway):
    http.reply({"success": True, "code": "PAYMENT_PENDING"})
    refund(session, completed.id, admin, gateway=wallet_gateway)

    with pytest.raises(NotEligible):
        refund(session, completed.id, admin, gateway=wallet_gateway)


def test_unknown_purchase(session, admin):
    with pytest.raises(NotFound):
        refund(session, 999, admin)


@pytest.mark.parametrize("amount, reason", [(0, "duplicate"), (-5, "duplicate"), (100, "  ")])
def test_refund_input_is_validated(session, admin, completed, amount, reason):
    with pytest.raises(ValidationError):
        refund(session, completed.id, admin, amount=amount, reason=reason)


def test_concurrent_refund_cannot_claim_the_same_purchase(
    engine, session, http, admin, completed, wallet_gateway, monkeypatch
):
    http.reply({"success": True, "code": "PAYMENT_PENDING"})
    sent = []
    gateway_refund = wallet_gateway.refund

    def refund_while_in_flight(original_transaction_id, refund_transaction_id, amount):
        with Session(engine) as other:
            claimed = other.get(AuthorshipPurchase, completed.id)
            assert claimed.payment_status == "refunded"
            assert claimed.payment_details["refund"]["refund_status"] == "requested"

            with pytest.raises(NotEligible):
                refund(other, completed.id, admin, amount=4000, gateway=wallet_gateway)

        sent.append(refund_transaction_id)
        return gateway_refund(original_transaction_id, refund_transaction_id, amount)

    monkeypatch.setattr(wallet_gateway, "refund", refund_while_in_flight)

    record = refund(session, completed.id, admin, gateway=wallet_gateway)

    assert sent == [record.refund_transaction_id]
    assert len(http.calls) == 1

    session.refresh(completed)
    assert completed.payment_details["refund"]["refund_status"] == "pending"
    assert completed.payment_details["refund"]["refund_amount"] == 8100
