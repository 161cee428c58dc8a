"""
User service: CRUD operations for the User aggregate.

Users are not cached: the list is small and the listings that depend on a
user are keyed by user id instead.
"""
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Article, User
from app.schemas import UserCreate


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _article_summary_to_dict(article: Article) -> dict:
    """Article summary embedded in a user detail; tags are omitted."""
    return {
        "id": article.id,
        "name": article.name,
        "slug": article.slug,
        "description": article.description,
        "is_published": article.is_published,
        "owner_id": article.owner_id,
        "created_at": article.created_at.isoformat(),
        "updated_at": article.updated_at.isoformat(),
        "tags": [],
    }


async def get_users(db: AsyncSession) -> list[dict]:
    q = select(User).order_by(User.id)
    result = await db.execute(q)
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: int, viewer: User | None = None) -> dict | None:
    """
    Return *user_id* with summaries of the articles *viewer* may see.

    Returns None when the user does not exist.
    """
    q = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.articles))
        # get_viewer may already hold this user with the noload collection.
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    user = result.unique().scalar_one_or_none()
    if user is None:
        return None

    data = _user_to_dict(user)
    data["articles"] = [
        _article_summary_to_dict(a)
        for a in user.articles
        if a.is_published or (viewer is not None and (viewer.is_admin or viewer.id == a.owner_id))
    ]
    return data


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a new user.  Email uniqueness is enforced by the database; the
    router turns the integrity error into a 409.
    """
    user = User(name=data.name, email=data.email, role=data.role.value)
    db.add(user)
    await db.flush()
    return _user_to_dict(user)
