# coauthor/services/catalogue_service.py
import logging
from datetime import datetime
from typing import List, Optional, Set

from slugify import slugify
from sqlmodel import Session, select

from coauthor.models.authorship_purchase import AuthorshipPurchase, PaymentStatus
from coauthor.models.upcoming_book import MAX_POSITIONS, UpcomingBook
from coauthor.schemas.book_schemas import BookDetail, BookSummary, PositionPrice
from coauthor.services import position_ledger
from coauthor.services.errors import NotEligible, ValidationError
from coauthor.services.storage import cover_url

logger = logging.getLogger(__name__)

# highest price goes to position 1
DEFAULT_PRICE_STRUCTURE = {
    1: [16000],
    2: [10000, 9000],
    3: [8000, 7000, 6000],
    4: [7000, 6000, 5000, 4000],
}


def default_position_pricing(total_positions: int) -> List[dict]:
    prices = DEFAULT_PRICE_STRUCTURE.get(total_positions)
    if not prices:
        raise ValidationError(
            f"No default pricing for {total_positions} positions, pricing is required",
            field="position_pricing",
        )
    return [{"number": i, "price": price} for i, price in enumerate(prices, start=1)]


def normalize_pricing(total_positions: int, pricing: Optional[List]) -> List[dict]:
    if total_positions < 1 or total_positions > MAX_POSITIONS:
        raise ValidationError(
            f"Author positions must be between 1 and {MAX_POSITIONS}",
            field="total_positions",
        )

    if not pricing:
        return default_position_pricing(total_positions)

    positions = [p if isinstance(p, PositionPrice) else PositionPrice(**p) for p in pricing]
    numbers = sorted(p.number for p in positions)
    if numbers != list(range(1, total_positions + 1)):
        raise ValidationError(
            f"Pricing must cover positions 1 to {total_positions} exactly once",
            field="position_pricing",
        )

    return [p.model_dump() for p in sorted(positions, key=lambda p: p.number)]


def purchase_statuses(session: Session, book_id: int) -> List[str]:
    return session.exec(
        select(AuthorshipPurchase.payment_status).where(AuthorshipPurchase.book_id == book_id)
    ).all()


def check_pricing_edit(session: Session, book: UpcomingBook, total_positions: int,
                       pricing: List[dict]) -> None:
    """Refuse edits that would remove an already sold position."""
    sold: Set[int] = position_ledger.sold_position_numbers(session, book.id)
    kept = {entry["number"] for entry in pricing if entry["number"] <= total_positions}
    lost = sorted(sold - kept)
    if lost:
        raise ValidationError(
            f"Positions {lost} are already sold and cannot be removed",
            field="total_positions",
            sold_positions=lost,
        )


def build_slug(title: str, slug: Optional[str] = None) -> str:
    return slug.strip() if slug and slug.strip() else slugify(title)


def update_book(
    session: Session,
    book: UpcomingBook,
    *,
    title: Optional[str] = None,
    genre: Optional[str] = None,
    description: Optional[str] = None,
    status: Optional[str] = None,
    total_positions: Optional[int] = None,
    position_pricing: Optional[List] = None,
    cover_image: Optional[str] = None,
) -> UpcomingBook:
    if total_positions is not None or position_pricing is not None:
        new_total = total_positions if total_positions is not None else book.total_positions
        if position_pricing is None and new_total == book.total_positions:
            position_pricing = book.position_pricing
        pricing = normalize_pricing(new_total, position_pricing)
        check_pricing_edit(session, book, new_total, pricing)
        book.total_positions = new_total
        book.position_pricing = pricing

    if title is not None:
        if not title.strip():
            raise ValidationError("Title is required", field="title")
        book.title = title.strip()
    if genre is not None:
        if not genre.strip():
            raise ValidationError("Genre is required", field="genre")
        book.genre = genre.strip()
    if description is not None:
        book.description = description
    if status is not None:
        book.status = status
    if cover_image is not None:
        book.cover_image = cover_image

    book.updated_at = datetime.utcnow()
    session.add(book)
    session.commit()
    session.refresh(book)
    return book


def delete_book(session: Session, book: UpcomingBook, force: bool = False) -> int:
    """Delete a book and its unpaid purchases. Returns how many purchases went with it."""
    book_id = book.id
    statuses = purchase_statuses(session, book_id)

    settled = [
        s for s in statuses
        if s in (PaymentStatus.completed.value, PaymentStatus.refunded.value)
    ]
    if settled:
        raise NotEligible(
            f"This book has {len(settled)} completed or refunded purchase(s) and cannot be deleted",
            book_id=book_id,
        )

    if statuses and not force:
        raise NotEligible(
            f"This book has {len(statuses)} unpaid purchase(s); pass force=true to delete anyway",
            book_id=book_id,
        )

    purchases = session.exec(
        select(AuthorshipPurchase).where(AuthorshipPurchase.book_id == book_id)
    ).all()
    for purchase in purchases:
        session.delete(purchase)
    session.flush()

    session.delete(book)
    session.commit()
    logger.info(f"Deleted book {book_id} with {len(purchases)} unpaid purchase(s)")
    return len(purchases)


def book_summary(session: Session, book: UpcomingBook) -> BookSummary:
    positions = position_ledger.positions_of(book)
    return BookSummary(
        id=book.id,
        title=book.title,
        slug=book.slug,
        genre=book.genre,
        cover_image=book.cover_image,
        cover_url=cover_url(book.cover_image) if book.cover_image else None,
        total_positions=book.total_positions,
        available_positions=position_ledger.available_count(session, book),
        copies_per_position=book.copies_per_position,
        starting_price=min((p.price for p in positions), default=None),
        status=position_ledger.effective_status(session, book),
    )


def book_detail(session: Session, book: UpcomingBook) -> BookDetail:
    summary = book_summary(session, book)
    return BookDetail(
        **summary.model_dump(),
        description=book.description,
        total_copies=book.total_copies,
        positions=position_ledger.position_views(session, book),
    )
