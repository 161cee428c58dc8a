"""
Statistics service: reporting aggregates over articles.

Each aggregate is cached for ``settings.CACHE_TTL`` under a cache tag of
the same name; the article/comment lifecycle events listed in
``app.events.INVALIDATION`` flush exactly the tags they can affect.
Ties are broken by the lowest id so results are stable.
"""
import math

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.models import Article, ArticleHistory, Comment, User


async def _remember(name: str, producer):
    return await cache.remember(f"statistics:{name}", settings.CACHE_TTL, producer, tags=[name])


async def articles_count(db: AsyncSession) -> int:
    async def produce():
        return (await db.execute(select(func.count()).select_from(Article))).scalar_one()

    return await _remember("articles_count", produce)


def _per_owner_counts():
    return (
        select(Article.owner_id, User.name, func.count(Article.id).label("total"))
        .join(User, User.id == Article.owner_id)
        .group_by(Article.owner_id, User.name)
    )


async def max_count_articles_user(db: AsyncSession) -> dict | None:
    """The user who owns the most articles: ``{owner_id, name, total}``."""

    async def produce():
        q = _per_owner_counts().order_by(func.count(Article.id).desc(), Article.owner_id).limit(1)
        row = (await db.execute(q)).mappings().first()
        return dict(row) if row else None

    return await _remember("max_count_articles_user", produce)


async def _name_length(db: AsyncSession, longest: bool) -> dict | None:
    length = func.length(Article.name)
    q = (
        select(Article.name, Article.slug, length.label("length"))
        .order_by(length.desc() if longest else length.asc(), Article.id)
        .limit(1)
    )
    row = (await db.execute(q)).mappings().first()
    return dict(row) if row else None


async def article_max_length_name(db: AsyncSession) -> dict | None:
    async def produce():
        return await _name_length(db, longest=True)

    return await _remember("article_max_length_name", produce)


async def article_min_length_name(db: AsyncSession) -> dict | None:
    async def produce():
        return await _name_length(db, longest=False)

    return await _remember("article_min_length_name", produce)


async def avg_count_articles(db: AsyncSession) -> int:
    """
    Average article count over active users (more than one article),
    rounded half up; 0 when there are no active users.
    """

    async def produce():
        active = _per_owner_counts().having(func.count(Article.id) > 1).subquery()
        avg = (await db.execute(select(func.avg(active.c.total)))).scalar_one()
        return int(math.floor(float(avg) + 0.5)) if avg is not None else 0

    return await _remember("avg_count_articles", produce)


async def most_updated_article(db: AsyncSession) -> dict | None:
    """The article with the most history rows: ``{name, slug, total}``."""

    async def produce():
        total = func.count(ArticleHistory.id)
        q = (
            select(Article.name, Article.slug, total.label("total"))
            .join(ArticleHistory, ArticleHistory.article_id == Article.id)
            .group_by(Article.id, Article.name, Article.slug)
            .order_by(total.desc(), Article.id)
            .limit(1)
        )
        row = (await db.execute(q)).mappings().first()
        return dict(row) if row else None

    return await _remember("most_updated_article", produce)


async def most_discussed_article(db: AsyncSession) -> dict | None:
    """The article with the most comments: ``{name, slug, total}``."""

    async def produce():
        total = func.count(Comment.id)
        q = (
            select(Article.name, Article.slug, total.label("total"))
            .join(
                Comment,
                (Comment.commentable_id == Article.id)
                & (Comment.commentable_type == Article.morph_type),
            )
            .group_by(Article.id, Article.name, Article.slug)
            .order_by(total.desc(), Article.id)
            .limit(1)
        )
        row = (await db.execute(q)).mappings().first()
        return dict(row) if row else None

    return await _remember("most_discussed_article", produce)


async def get_statistics(db: AsyncSession) -> dict:
    return {
        "articles_count": await articles_count(db),
        "max_count_articles_user": await max_count_articles_user(db),
        "article_max_length_name": await article_max_length_name(db),
        "article_min_length_name": await article_min_length_name(db),
        "avg_count_articles": await avg_count_articles(db),
        "most_updated_article": await most_updated_article(db),
        "most_discussed_article": await most_discussed_article(db),
        "cache_info": cache.stats,
    }
