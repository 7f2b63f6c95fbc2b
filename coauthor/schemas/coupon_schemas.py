from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from coauthor.models.coupon import DiscountType


class CouponCreate(BaseModel):
    code: Optional[str] = None  # blank -> generated
    description: Optional[str] = None
    discount_type: DiscountType = DiscountType.percentage
    discount_value: int = Field(gt=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True
    expires_at: Optional[datetime] = None


class CouponUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[int] = Field(default=None, gt=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None


class CouponPreviewRequest(BaseModel):
    code: str
    book_id: int
    position_number: int


class CouponPreviewResponse(BaseModel):
    code: str
    discount_type: str
    discount_value: int
    base_amount: int
    discount_amount: int
    final_amount: int
