from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class PaymentEventType(str, Enum):
    INITIATED = "initiated"
    WEBHOOK_RECEIVED = "webhook_received"
    STATUS_CHECKED = "status_checked"
    BANK_VERIFIED = "bank_verified"
    COMPLETED = "completed"
    FAILED = "failed"
    CONFLICT = "conflict"
    REFUND_INITIATED = "refund_initiated"


class PaymentEvent(SQLModel, table=True):
    __tablename__ = "payment_event"
    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)

    # no FK: the audit trail outlives deleted pending purchases
    purchase_id: int = Field(index=True)
    transaction_id: Optional[str] = Field(default=None, index=True)
    event_type: str = Field(index=True)

    event_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str = Field(default="system")
