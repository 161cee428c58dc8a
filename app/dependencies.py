from fastapi import Depends, Header, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import AuthenticationRequired
from app.models import User


class PaginationParams:
    """
    Reusable FastAPI dependency for simple (``has_more``) pagination.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Fixed at ``settings.PAGE_SIZE``; listings are not resizable.
    offset:
        Computed SQL OFFSET derived from *page* and *page_size*.
    """

    def __init__(
        self,
        page: int = Query(
            1,
            ge=1,
            description="Page number (1-based).",
        ),
    ) -> None:
        self.page = page
        self.page_size = settings.PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


async def get_viewer(
    x_user_id: int | None = Header(
        None,
        description="Id of the user making the request; omit for anonymous access.",
    ),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """
    Resolve the ``X-User-Id`` header to a ``User``.

    A missing header means an anonymous viewer.  An id that matches no user
    is rejected rather than silently downgraded to anonymous.
    """
    if x_user_id is None:
        return None
    user = (await db.execute(select(User).where(User.id == x_user_id))).scalar_one_or_none()
    if user is None:
        raise AuthenticationRequired("Unknown user")
    return user


async def require_viewer(viewer: User | None = Depends(get_viewer)) -> User:
    if viewer is None:
        raise AuthenticationRequired()
    return viewer
