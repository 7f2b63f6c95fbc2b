import threading
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine

from coauthor.models.coupon import Coupon
from coauthor.services import coupon_service
from coauthor.services.errors import CouponExhausted, NotFound, ValidationError


def test_percentage_discount_on_base_price(session, make_coupon):
    make_coupon("SAVE10", "percentage", 10, max_uses=1)

    evaluation = coupon_service.evaluate(session, "save10", 9000)

    assert evaluation.coupon.code == "SAVE10"
    assert evaluation.discount_amount == 900


def test_percentage_discount_rounds_half_up():
    coupon = Coupon(code="ODD", discount_type="percentage", discount_value=15)

    # 15% of 8333 = 1249.95
    assert coupon_service.compute_discount(coupon, 8333) == 1250
    # 15% of 8330 = 1249.5
    assert coupon_service.compute_discount(coupon, 8330) == 1250
    # 15% of 8329 = 1249.35
    assert coupon_service.compute_discount(coupon, 8329) == 1249


def test_fixed_discount_is_capped_at_base_amount():
    coupon = Coupon(code="FLAT", discount_type="fixed", discount_value=12000)
    assert coupon_service.compute_discount(coupon, 9000) == 9000

    coupon.discount_value = 500
    assert coupon_service.compute_discount(coupon, 9000) == 500


def test_blank_code_is_a_validation_error(session):
    with pytest.raises(ValidationError):
        coupon_service.evaluate(session, "   ", 9000)


def test_unknown_code_is_not_found(session):
    with pytest.raises(NotFound) as exc:
        coupon_service.evaluate(session, "NOPE", 9000)
    assert not isinstance(exc.value, CouponExhausted)


def test_inactive_coupon_is_not_found(session, make_coupon):
    make_coupon("OFF", is_active=False)

    with pytest.raises(NotFound):
        coupon_service.evaluate(session, "OFF", 9000)


def test_expired_coupon_is_not_found(session, make_coupon):
    make_coupon("OLD", expires_at=datetime.utcnow() - timedelta(days=1))

    with pytest.raises(NotFound):
        coupon_service.evaluate(session, "OLD", 9000)


def test_exhausted_coupon(session, make_coupon):
    make_coupon("USED", max_uses=2, used_count=2)

    with pytest.raises(CouponExhausted):
        coupon_service.evaluate(session, "USED", 9000)


def test_redeem_is_limited_by_max_uses(session, make_coupon):
    coupon = make_coupon("SAVE10", max_uses=1)

    # both callers evaluated before either redeemed
    first = coupon_service.evaluate(session, "SAVE10", 9000)
    second = coupon_service.evaluate(session, "SAVE10", 10000)

    coupon_service.redeem(session, first.coupon)
    session.commit()

    with pytest.raises(CouponExhausted):
        coupon_service.redeem(session, second.coupon)
    session.rollback()

    session.refresh(coupon)
    assert coupon.used_count == 1


def test_concurrent_redemptions_never_exceed_max_uses(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'coupons.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        coupon = Coupon(code="RUSH", discount_type="fixed", discount_value=500, max_uses=3)
        session.add(coupon)
        session.commit()
        coupon_id = coupon.id

    attempts = 10
    start = threading.Barrier(attempts)
    redeemed, exhausted, errors = [], [], []

    def attempt():
        with Session(engine) as session:
            coupon = session.get(Coupon, coupon_id)
            start.wait()
            try:
                coupon_service.redeem(session, coupon)
                session.commit()
                redeemed.append(1)
            except CouponExhausted:
                session.rollback()
                exhausted.append(1)
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(redeemed) == 3
    assert len(exhausted) == attempts - 3
    with Session(engine) as session:
        assert session.get(Coupon, coupon_id).used_count == 3
    engine.dispose()


def test_unlimited_coupon_keeps_counting(session, make_coupon):
    coupon = make_coupon("OPEN", max_uses=None)

    for _ in range(3):
        coupon_service.redeem(session, coupon)
    session.commit()

    session.refresh(coupon)
    assert coupon.used_count == 3


def test_generated_codes_are_uppercase_alphanumeric():
    code = coupon_service.generate_coupon_code()
    assert len(code) == 8
    assert code.isalnum() and code.upper() == code
