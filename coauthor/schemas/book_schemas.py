from typing import List, Optional

from pydantic import BaseModel, Field

from coauthor.models.upcoming_book import MAX_POSITIONS, BookStatus


class PositionPrice(BaseModel):
    number: int = Field(ge=1)
    price: int = Field(gt=0)


class PositionView(BaseModel):
    number: int
    price: int
    available: bool


class BookSummary(BaseModel):
    id: int
    title: str
    slug: str
    genre: str
    cover_image: Optional[str] = None  # storage key
    cover_url: Optional[str] = None
    total_positions: int
    available_positions: int
    copies_per_position: int
    starting_price: Optional[int] = None
    status: str


class BookDetail(BookSummary):
    description: Optional[str] = None
    total_copies: int
    positions: List[PositionView]


class BookUpdate(BaseModel):
    title: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    status: Optional[BookStatus] = None
    total_positions: Optional[int] = Field(default=None, ge=1, le=MAX_POSITIONS)
    position_pricing: Optional[List[PositionPrice]] = None
