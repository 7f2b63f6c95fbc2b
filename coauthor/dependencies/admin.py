import logging

from fastapi import Depends, HTTPException, status

from coauthor.models.user import User
from coauthor.utils.token import get_current_user

logger = logging.getLogger(__name__)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Back-office routes: admins only."""
    if current_user.role != "admin":
        logger.warning(f"User {current_user.id} tried an admin route")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
