"""
Article service: publication CRUD plus the change-history audit log.

Every update that changes a tracked field appends one ``ArticleHistory``
row (see ``app.events``); this module attributes it to the editor and
exposes the log.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.events import set_editor
from app.models import Article, ArticleHistory, User
from app.schemas import PublicationCreate, PublicationUpdate
from app.services import publication_service


def _history_to_dict(entry: ArticleHistory) -> dict:
    return {
        "id": entry.id,
        "article_id": entry.article_id,
        "user_id": entry.user_id,
        "editor": entry.editor.name if entry.editor is not None else None,
        "before": entry.before,
        "after": entry.after,
        "created_at": entry.created_at.isoformat(),
        "updated_at": entry.updated_at.isoformat(),
    }


async def get_articles(db: AsyncSession, viewer: User | None = None, page: int = 1) -> dict:
    return await publication_service.list_publications(db, Article, viewer, page)


async def get_article(db: AsyncSession, slug: str, viewer: User | None = None) -> dict | None:
    return await publication_service.get_publication(db, Article, slug, viewer)


async def create_article(db: AsyncSession, data: PublicationCreate, owner: User) -> dict:
    return await publication_service.create_publication(db, Article, data, owner)


async def update_article(
    db: AsyncSession, slug: str, data: PublicationUpdate, editor: User
) -> dict | None:
    set_editor(db, editor.id)
    return await publication_service.update_publication(db, Article, slug, data, editor)


async def delete_article(db: AsyncSession, slug: str, actor: User) -> bool:
    article = await publication_service.get_visible(db, Article, slug, actor)
    if article is not None and publication_service.can_modify(article, actor):
        await db.execute(delete(ArticleHistory).where(ArticleHistory.article_id == article.id))
    return await publication_service.delete_publication(db, Article, slug, actor)


async def get_history(
    db: AsyncSession, slug: str, viewer: User | None = None
) -> list[dict] | None:
    """
    Return the change log of the article, oldest first, or None when the
    article does not exist or is hidden from *viewer*.
    """
    article = await publication_service.get_visible(db, Article, slug, viewer)
    if article is None:
        return None
    q = (
        select(ArticleHistory)
        .where(ArticleHistory.article_id == article.id)
        .options(joinedload(ArticleHistory.editor))
        .order_by(ArticleHistory.updated_at, ArticleHistory.id)
    )
    entries = (await db.execute(q)).scalars().all()
    return [_history_to_dict(e) for e in entries]


async def last_change_in_history(
    db: AsyncSession, slug: str, viewer: User | None = None
) -> dict | None:
    """Return the most recent history entry, or None when there is none."""
    entries = await get_history(db, slug, viewer)
    if not entries:
        return None
    return entries[-1]
