# coauthor/services/position_ledger.py
"""
Derived view of which authorship positions of a book can still be bought.

Availability is always computed from completed purchase rows; nothing here
writes a counter. Pending purchases are soft holds: they do not block the
position, the completed-position unique index decides the winner.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from sqlmodel import Session, select

from coauthor.models.authorship_purchase import AuthorshipPurchase, PaymentStatus
from coauthor.models.upcoming_book import UpcomingBook
from coauthor.schemas.book_schemas import PositionPrice, PositionView
from coauthor.services.errors import InvalidPosition, SoldOut

logger = logging.getLogger(__name__)


@dataclass
class ReservationToken:
    book_id: int
    position_number: int
    price: int
    released: bool = False


def positions_of(book: UpcomingBook) -> List[PositionPrice]:
    positions = [PositionPrice(**entry) for entry in book.position_pricing or []]
    return sorted(
        (p for p in positions if p.number <= book.total_positions),
        key=lambda p: p.number,
    )


def sold_position_numbers(session: Session, book_id: int) -> Set[int]:
    rows = session.exec(
        select(AuthorshipPurchase.position_number)
        .where(AuthorshipPurchase.book_id == book_id)
        .where(AuthorshipPurchase.payment_status == PaymentStatus.completed.value)
    ).all()
    return {number for number in rows if number is not None}


def completed_purchase_count(session: Session, book_id: int) -> int:
    rows = session.exec(
        select(AuthorshipPurchase.id)
        .where(AuthorshipPurchase.book_id == book_id)
        .where(AuthorshipPurchase.payment_status == PaymentStatus.completed.value)
    ).all()
    return len(rows)


def available_positions(session: Session, book: UpcomingBook) -> List[PositionPrice]:
    sold = sold_position_numbers(session, book.id)
    return [p for p in positions_of(book) if p.number not in sold]


def available_count(session: Session, book: UpcomingBook) -> int:
    return max(0, book.total_positions - completed_purchase_count(session, book.id))


def position_views(session: Session, book: UpcomingBook) -> List[PositionView]:
    sold = sold_position_numbers(session, book.id)
    return [
        PositionView(number=p.number, price=p.price, available=p.number not in sold)
        for p in positions_of(book)
    ]


def effective_status(session: Session, book: UpcomingBook) -> str:
    if book.status == "active" and available_count(session, book) == 0:
        return "sold_out"
    return book.status


def _is_sold(session: Session, book_id: int, position_number: int) -> bool:
    return session.exec(
        select(AuthorshipPurchase.id)
        .where(AuthorshipPurchase.book_id == book_id)
        .where(AuthorshipPurchase.position_number == position_number)
        .where(AuthorshipPurchase.payment_status == PaymentStatus.completed.value)
    ).first() is not None


def reserve(session: Session, book: UpcomingBook, position_number: int) -> ReservationToken:
    if position_number < 1 or position_number > book.total_positions:
        raise InvalidPosition(
            f"Position must be between 1 and {book.total_positions}",
            position_number=position_number,
        )

    price = book.price_for(position_number)
    if price is None:
        raise InvalidPosition(
            f"Position {position_number} has no price set",
            position_number=position_number,
        )

    if _is_sold(session, book.id, position_number):
        raise SoldOut(
            f"Position {position_number} is already taken",
            book_id=book.id,
            position_number=position_number,
        )

    return ReservationToken(book_id=book.id, position_number=position_number, price=price)


def commit(session: Session, token: ReservationToken) -> None:
    """Re-check availability right before the pending purchase is inserted."""
    if token.released:
        raise InvalidPosition("Reservation was already released")

    if _is_sold(session, token.book_id, token.position_number):
        raise SoldOut(
            f"Position {token.position_number} is already taken",
            book_id=token.book_id,
            position_number=token.position_number,
        )


def release(token: Optional[ReservationToken]) -> None:
    if token is None or token.released:
        return
    token.released = True
    logger.info(
        f"Released hold on book {token.book_id} position {token.position_number}"
    )


def completion_conflict(session: Session, purchase: AuthorshipPurchase) -> bool:
    """True when someone else already completed this purchase's position."""
    if purchase.position_number is None:
        return False

    other = session.exec(
        select(AuthorshipPurchase.id)
        .where(AuthorshipPurchase.book_id == purchase.book_id)
        .where(AuthorshipPurchase.position_number == purchase.position_number)
        .where(AuthorshipPurchase.payment_status == PaymentStatus.completed.value)
        .where(AuthorshipPurchase.id != purchase.id)
    ).first()
    return other is not None
