from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from coauthor.database import get_session
from coauthor.models.upcoming_book import BookStatus, UpcomingBook
from coauthor.services.catalogue_service import book_detail, book_summary

router = APIRouter()


@router.get("")
def list_books(
    genre: str | None = None,
    session: Session = Depends(get_session),
):
    query = select(UpcomingBook).where(UpcomingBook.status != BookStatus.inactive.value)
    if genre:
        query = query.where(UpcomingBook.genre.ilike(genre))

    books = session.exec(query.order_by(UpcomingBook.created_at.desc())).all()

    return {
        "total": len(books),
        "results": [book_summary(session, book) for book in books],
    }


@router.get("/{book_id}")
def get_book(book_id: int, session: Session = Depends(get_session)):
    book = session.get(UpcomingBook, book_id)

    if not book or book.status == BookStatus.inactive.value:
        raise HTTPException(404, "Book not found")

    return book_detail(session, book)
