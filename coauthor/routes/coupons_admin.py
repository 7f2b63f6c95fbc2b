from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from coauthor.database import get_session
from coauthor.dependencies.admin import require_admin
from coauthor.models.coupon import Coupon, DiscountType
from coauthor.models.user import User
from coauthor.schemas.coupon_schemas import CouponCreate, CouponUpdate
from coauthor.services.coupon_service import generate_coupon_code, normalize_code
from coauthor.services.errors import ValidationError

router = APIRouter()


def _check_value(discount_type: str, value: int) -> None:
    if discount_type == DiscountType.percentage.value and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100", field="discount_value")


def _save(session: Session, coupon: Coupon) -> Coupon:
    session.add(coupon)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(409, f"Coupon code {coupon.code} already exists")
    session.refresh(coupon)
    return coupon


@router.get("")
def list_coupons(
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    return session.exec(select(Coupon).order_by(Coupon.created_at.desc())).all()


@router.post("", status_code=201)
def create_coupon(
    payload: CouponCreate,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    _check_value(payload.discount_type.value, payload.discount_value)

    coupon = Coupon(
        code=normalize_code(payload.code) or generate_coupon_code(),
        description=payload.description,
        discount_type=payload.discount_type.value,
        discount_value=payload.discount_value,
        max_uses=payload.max_uses,
        used_count=0,
        is_active=payload.is_active,
        expires_at=payload.expires_at,
    )
    return _save(session, coupon)


@router.put("/{coupon_id}")
def update_coupon(
    coupon_id: int,
    payload: CouponUpdate,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    coupon = session.get(Coupon, coupon_id)
    if not coupon:
        raise HTTPException(404, "Coupon not found")

    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        data["code"] = normalize_code(data["code"]) or coupon.code
    if data.get("discount_type"):
        data["discount_type"] = data["discount_type"].value

    for key, value in data.items():
        if value is not None or key in ("max_uses", "expires_at", "description"):
            setattr(coupon, key, value)

    _check_value(coupon.discount_type, coupon.discount_value)
    return _save(session, coupon)


@router.post("/{coupon_id}/toggle")
def toggle_coupon(
    coupon_id: int,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    coupon = session.get(Coupon, coupon_id)
    if not coupon:
        raise HTTPException(404, "Coupon not found")

    coupon.is_active = not coupon.is_active
    coupon = _save(session, coupon)
    return {
        "message": f"Coupon {'activated' if coupon.is_active else 'deactivated'}",
        "coupon": coupon,
    }


@router.delete("/{coupon_id}")
def delete_coupon(
    coupon_id: int,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    coupon = session.get(Coupon, coupon_id)
    if not coupon:
        raise HTTPException(404, "Coupon not found")

    session.delete(coupon)
    session.commit()
    return {"message": "Coupon deleted successfully"}
