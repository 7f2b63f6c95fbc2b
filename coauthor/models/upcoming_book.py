from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

COPIES_PER_POSITION = 2
MAX_POSITIONS = 10


class BookStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    sold_out = "sold_out"


class UpcomingBook(SQLModel, table=True):
    __tablename__ = "upcoming_book"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True)
    genre: str
    description: Optional[str] = None
    cover_image: Optional[str] = None  # object storage key

    total_positions: int = Field(default=1, ge=1, le=MAX_POSITIONS)
    # [{"number": 1, "price": 10000}, ...]
    position_pricing: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    status: str = Field(default=BookStatus.active.value)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def copies_per_position(self) -> int:
        return COPIES_PER_POSITION

    @property
    def total_copies(self) -> int:
        return COPIES_PER_POSITION * self.total_positions

    def price_for(self, number: int) -> Optional[int]:
        for entry in self.position_pricing or []:
            if entry.get("number") == number:
                return entry.get("price")
        return None
