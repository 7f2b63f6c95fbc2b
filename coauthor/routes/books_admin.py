import json
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlmodel import Session, select

from coauthor.database import get_session
from coauthor.dependencies.admin import require_admin
from coauthor.models.upcoming_book import BookStatus, UpcomingBook
from coauthor.models.user import User
from coauthor.schemas.book_schemas import BookUpdate
from coauthor.services import catalogue_service
from coauthor.services.errors import ValidationError
from coauthor.services.storage import delete_file, upload_book_cover
from coauthor.utils.pagination import paginate

router = APIRouter()


def _get_book(session: Session, book_id: int) -> UpcomingBook:
    book = session.get(UpcomingBook, book_id)
    if not book:
        raise HTTPException(404, "Book not found")
    return book


def _parse_pricing(raw: str | None):
    if not raw:
        return None
    try:
        pricing = json.loads(raw)
    except ValueError:
        raise ValidationError("position_pricing must be a JSON list", field="position_pricing")
    if not isinstance(pricing, list):
        raise ValidationError("position_pricing must be a JSON list", field="position_pricing")
    return pricing


@router.post("", status_code=201)
def create_book(
    title: str = Form(...),
    genre: str = Form(...),
    description: str = Form(None),
    slug: str = Form(None),
    total_positions: int = Form(1),
    position_pricing: str = Form(None),
    status: BookStatus = Form(BookStatus.active),
    cover_image: UploadFile = File(None),
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    if not title.strip():
        raise ValidationError("Title is required", field="title")
    if not genre.strip():
        raise ValidationError("Genre is required", field="genre")

    pricing = catalogue_service.normalize_pricing(total_positions, _parse_pricing(position_pricing))

    r2_key = None
    if cover_image:
        r2_key = upload_book_cover(cover_image, title)

    book = UpcomingBook(
        title=title.strip(),
        slug=catalogue_service.build_slug(title, slug),
        genre=genre.strip(),
        description=description,
        cover_image=r2_key,
        total_positions=total_positions,
        position_pricing=pricing,
        status=status.value,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )

    session.add(book)
    session.commit()
    session.refresh(book)

    return catalogue_service.book_detail(session, book)


@router.get("")
def list_books_admin(
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    title: str | None = None,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    query = select(UpcomingBook)

    if status:
        query = query.where(UpcomingBook.status == status)
    if title:
        query = query.where(UpcomingBook.title.ilike(f"%{title}%"))

    return paginate(
        session=session,
        query=query.order_by(UpcomingBook.created_at.desc()),
        page=page,
        limit=limit,
        transform=lambda book: catalogue_service.book_summary(session, book),
    )


@router.get("/{book_id}")
def get_book_admin(
    book_id: int,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    return catalogue_service.book_detail(session, _get_book(session, book_id))


@router.put("/{book_id}")
def update_book(
    book_id: int,
    payload: BookUpdate,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    book = _get_book(session, book_id)

    book = catalogue_service.update_book(
        session,
        book,
        title=payload.title,
        genre=payload.genre,
        description=payload.description,
        status=payload.status.value if payload.status else None,
        total_positions=payload.total_positions,
        position_pricing=payload.position_pricing,
    )
    return catalogue_service.book_detail(session, book)


@router.put("/{book_id}/cover")
def update_book_cover(
    book_id: int,
    cover_image: UploadFile = File(...),
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    book = _get_book(session, book_id)
    old_key = book.cover_image

    key = upload_book_cover(cover_image, book.title)
    catalogue_service.update_book(session, book, cover_image=key)

    if old_key:
        delete_file(old_key)

    return {"message": "Cover updated", "cover_image": key}


@router.delete("/{book_id}")
def delete_book(
    book_id: int,
    force: bool = False,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    book = _get_book(session, book_id)
    cover = book.cover_image

    removed = catalogue_service.delete_book(session, book, force=force)

    if cover:
        delete_file(cover)

    return {"message": "Book deleted successfully", "purchases_removed": removed}
