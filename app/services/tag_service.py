"""
Tag service: tag lookup, per-tag listings and the cached tag cloud.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.models import Article, Publication, Tag, Tiding, User, taggables
from app.services import publication_service

TAG_CLOUD_KEY = "tags:cloud"


async def get_tag(db: AsyncSession, slug: str) -> Tag | None:
    return (await db.execute(select(Tag).where(Tag.slug == slug))).scalar_one_or_none()


async def list_by_tag(
    db: AsyncSession,
    model: type[Publication],
    tag_slug: str,
    viewer: User | None = None,
    page: int = 1,
) -> dict | None:
    """Return a page of *model* rows tagged *tag_slug*, or None for an unknown tag."""
    tag = await get_tag(db, tag_slug)
    if tag is None:
        return None
    return await publication_service.list_by_tag(db, model, tag, viewer, page)


async def tag_cloud(db: AsyncSession) -> list[dict]:
    """
    Return every tag attached to at least one article or tiding with its
    usage counts, ordered by name.

    Counts include drafts.  Cached under ``articles_tags`` and
    ``tidings_tags`` so any article or tiding write refreshes it.
    """

    async def produce() -> list[dict]:
        def usage(model: type[Publication]):
            return func.count().filter(taggables.c.taggable_type == model.morph_type)

        q = (
            select(
                Tag.id,
                Tag.name,
                Tag.slug,
                usage(Article).label("articles"),
                usage(Tiding).label("tidings"),
            )
            .join(taggables, taggables.c.tag_id == Tag.id)
            .group_by(Tag.id, Tag.name, Tag.slug)
            .order_by(Tag.name)
        )
        rows = (await db.execute(q)).mappings().all()
        return [dict(r) for r in rows]

    return await cache.remember(
        TAG_CLOUD_KEY,
        settings.CACHE_TTL,
        produce,
        tags=["articles_tags", "tidings_tags"],
    )
