from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Index, JSON, text
from sqlmodel import SQLModel, Field


class PaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class PaymentMethod(str, Enum):
    wallet = "wallet"
    bank_verify = "bank_verify"


class AuthorshipPurchase(SQLModel, table=True):
    __tablename__ = "authorship_purchase"
    __table_args__ = (
        # at most one completed purchase per position
        Index(
            "uq_authorship_purchase_completed_position",
            "book_id",
            "position_number",
            unique=True,
            postgresql_where=text("payment_status = 'completed'"),
            sqlite_where=text("payment_status = 'completed'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    book_id: int = Field(foreign_key="upcoming_book.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    # null only for legacy count-based rows
    position_number: Optional[int] = None
    positions_purchased: int = Field(default=1)

    base_amount: int
    discount_amount: int = Field(default=0)
    total_amount: int

    payment_status: str = Field(default=PaymentStatus.pending.value, index=True)
    payment_id: Optional[str] = Field(default=None, unique=True, index=True)
    payment_method: str = Field(default=PaymentMethod.wallet.value)
    payment_details: dict = Field(default_factory=dict, sa_column=Column(JSON))

    coupon_code: Optional[str] = None

    buyer_name: str
    phone_number: str
    bio: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
