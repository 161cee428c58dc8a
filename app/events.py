"""
Model lifecycle hooks.

Two SQLAlchemy session events stand in for per-model ``created`` /
``updated`` / ``deleted`` callbacks:

- ``before_flush`` appends an ``ArticleHistory`` row for every dirty
  ``Article``, holding only the fields that actually changed.  The editor
  is read from ``session.info["editor_id"]`` (see ``set_editor``).
- ``after_flush`` looks every flushed instance up in ``INVALIDATION`` and
  collects the cache tags to drop into ``session.info``.

Collected tags are only acted on once the transaction is durable: ``commit``
commits the session and then flushes them from Redis.  Flushing earlier
would let a concurrent reader re-cache the old committed row.  A rollback
discards the collected tags.
"""
import enum
import logging

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from app.cache import cache
from app.models import Article, ArticleHistory, Comment, Tiding

logger = logging.getLogger(__name__)

EDITOR_KEY = "editor_id"
PENDING_TAGS_KEY = "pending_cache_tags"

# Columns whose changes are recorded in article history.
TRACKED_ARTICLE_FIELDS: tuple[str, ...] = (
    "name",
    "owner_id",
    "slug",
    "description",
    "text",
    "is_published",
)


class Lifecycle(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


_ARTICLE_TAGS_ON_CREATE = (
    "articles",
    "articles_count",
    "max_count_articles_user",
    "article_max_length_name",
    "article_min_length_name",
    "avg_count_articles",
    "articles_tags",
)
_ARTICLE_TAGS_ON_UPDATE = (
    "articles",
    "article_max_length_name",
    "article_min_length_name",
    "most_updated_article",
    "articles_tags",
)
_ARTICLE_TAGS_ON_DELETE = _ARTICLE_TAGS_ON_CREATE + (
    "most_updated_article",
    "most_discussed_article",
)
_TIDING_TAGS = ("tidings", "tidings_tags")
_COMMENT_TAGS = ("most_discussed_article",)

# model -> lifecycle event -> cache tags to flush
INVALIDATION: dict[type, dict[Lifecycle, tuple[str, ...]]] = {
    Article: {
        Lifecycle.CREATED: _ARTICLE_TAGS_ON_CREATE,
        Lifecycle.UPDATED: _ARTICLE_TAGS_ON_UPDATE,
        Lifecycle.DELETED: _ARTICLE_TAGS_ON_DELETE,
    },
    Tiding: {
        Lifecycle.CREATED: _TIDING_TAGS,
        Lifecycle.UPDATED: _TIDING_TAGS,
        Lifecycle.DELETED: _TIDING_TAGS,
    },
    Comment: {
        Lifecycle.CREATED: _COMMENT_TAGS,
        Lifecycle.UPDATED: _COMMENT_TAGS,
        Lifecycle.DELETED: _COMMENT_TAGS,
    },
}


def set_editor(db: AsyncSession, user_id: int | None) -> None:
    """Attribute the history rows written by the next flushes to *user_id*."""
    db.info[EDITOR_KEY] = user_id


def article_changes(article: Article) -> tuple[dict, dict]:
    """Return ``(before, after)`` for the tracked fields changed on *article*."""
    state = inspect(article)
    before: dict = {}
    after: dict = {}
    for field in TRACKED_ARTICLE_FIELDS:
        history = state.attrs[field].history
        if not history.has_changes():
            continue
        before[field] = history.deleted[0] if history.deleted else None
        after[field] = history.added[0] if history.added else None
    return before, after


@event.listens_for(Session, "before_flush")
def _record_article_history(session: Session, flush_context, instances) -> None:
    for obj in list(session.dirty):
        if not isinstance(obj, Article) or obj in session.deleted:
            continue
        before, after = article_changes(obj)
        if not after:
            continue
        session.add(
            ArticleHistory(
                article_id=obj.id,
                user_id=session.info.get(EDITOR_KEY),
                before=before,
                after=after,
            )
        )
        logger.debug("Recorded history for article id=%s fields=%s", obj.id, sorted(after))


@event.listens_for(Session, "after_flush")
def _collect_cache_tags(session: Session, flush_context) -> None:
    pending: set[str] = session.info.setdefault(PENDING_TAGS_KEY, set())
    batches = (
        (Lifecycle.CREATED, session.new),
        (Lifecycle.UPDATED, (o for o in session.dirty if session.is_modified(o))),
        (Lifecycle.DELETED, session.deleted),
    )
    for lifecycle, objects in batches:
        for obj in objects:
            table = INVALIDATION.get(type(obj))
            if table:
                pending.update(table[lifecycle])


@event.listens_for(Session, "after_soft_rollback")
def _discard_cache_tags(session: Session, previous_transaction) -> None:
    if not previous_transaction.nested:
        session.info.pop(PENDING_TAGS_KEY, None)


def pending_cache_tags(db: AsyncSession) -> set[str]:
    return set(db.info.get(PENDING_TAGS_KEY, ()))


async def flush_pending_cache_tags(db: AsyncSession) -> set[str]:
    """Flush every cache tag collected since the last call and return them."""
    tags: set[str] = db.info.pop(PENDING_TAGS_KEY, set())
    if tags:
        await cache.flush(*tags)
    return tags


async def commit(db: AsyncSession) -> set[str]:
    """Commit *db*, then drop the cache entries its writes invalidated."""
    await db.commit()
    return await flush_pending_cache_tags(db)
