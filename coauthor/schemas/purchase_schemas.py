# coauthor/schemas/purchase_schemas.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from coauthor.models.authorship_purchase import PaymentMethod


class BuyerDetails(BaseModel):
    full_name: str
    phone_number: str
    bio: Optional[str] = None

    # bank_verify only
    bank_account_number: Optional[str] = None
    bank_ifsc_code: Optional[str] = None
    account_holder_name: Optional[str] = None


class PurchaseCreate(BaseModel):
    book_id: int
    position_number: int
    payment_method: PaymentMethod = PaymentMethod.wallet
    coupon_code: Optional[str] = None
    buyer: BuyerDetails


class PurchaseRead(BaseModel):
    id: int
    book_id: int
    user_id: int
    position_number: Optional[int]
    positions_purchased: int
    base_amount: int
    discount_amount: int
    total_amount: int
    payment_status: str
    payment_id: Optional[str]
    payment_method: str
    coupon_code: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
