from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    code: str = Field(index=True, unique=True)  # always uppercase
    description: Optional[str] = None

    discount_type: str = Field(default=DiscountType.percentage.value)
    discount_value: int

    max_uses: Optional[int] = None  # None = unlimited
    used_count: int = Field(default=0)
    is_active: bool = Field(default=True)
    expires_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.utcnow())

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.used_count >= self.max_uses
