from typing import Any, Callable, Dict, Optional

from sqlalchemy import func
from sqlmodel import select

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def paginate(
    *,
    session,
    query,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    transform: Optional[Callable[[Any], Any]] = None,
) -> Dict[str, Any]:
    """Run `query` one page at a time; `transform` shapes each row for the response."""
    page = max(page, 1)
    limit = DEFAULT_PAGE_SIZE if limit < 1 else min(limit, MAX_PAGE_SIZE)

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    rows = session.exec(query.offset((page - 1) * limit).limit(limit)).all()

    return {
        "total_items": total,
        "total_pages": (total + limit - 1) // limit,
        "current_page": page,
        "limit": limit,
        "results": [transform(row) for row in rows] if transform else rows,
    }
