"""
Publication service: the logic articles and tidings have in common.

Design notes
------------
- Listings and single-item lookups go through the tagged cache.  Listing
  keys encode the viewer (``user:<id>`` or ``no_auth``) and the page; item
  keys encode the slug.  Both are filed under the model's listing tag
  (``articles`` / ``tidings``), which every lifecycle event of the model
  flushes.
- Visibility is applied in SQL for listings and in Python for cached
  items, because a cached item is shared by every viewer.
- Tag links live in the polymorphic ``taggables`` table and are written
  here with Core statements; the ORM relationship is view-only.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer, which drops the
  invalidated cache entries once the commit succeeds.
"""
import re
from typing import Any

from sqlalchemy import and_, delete, insert, or_, select, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.cache import cache
from app.config import settings
from app.exceptions import PermissionDenied, SlugConflict
from app.models import Comment, Publication, Tag, User, taggables, utcnow
from app.schemas import PublicationCreate, PublicationUpdate

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def list_tag(model: type[Publication]) -> str:
    """Cache tag under which every cached entry of *model* is filed."""
    return f"{model.morph_type}s"


def list_cache_key(model: type[Publication], viewer: User | None, page: int) -> str:
    who = f"user:{viewer.id}" if viewer is not None else "no_auth"
    return f"{list_tag(model)}:{who}:page:{page}"


def item_cache_key(model: type[Publication], slug: str) -> str:
    return f"{model.morph_type}:{slug}"


def visible_to(model: type[Publication], viewer: User | None):
    """
    SQL criterion for the rows *viewer* may see.

    Anonymous viewers see published rows, signed-in users additionally see
    their own drafts, admins see everything.
    """
    if viewer is None:
        return model.is_published.is_(True)
    if viewer.is_admin:
        return true()
    return or_(model.is_published.is_(True), model.owner_id == viewer.id)


def can_view(item: dict, viewer: User | None) -> bool:
    if item["is_published"]:
        return True
    if viewer is None:
        return False
    return viewer.is_admin or item["owner_id"] == viewer.id


def can_modify(obj: Publication, viewer: User) -> bool:
    return viewer.is_admin or obj.owner_id == viewer.id


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _iso(value) -> str | None:
    return value.isoformat() if value else None


def serialize(obj: Publication) -> dict:
    """Serialise an article or tiding to a plain dict (list view)."""
    return {
        "id": obj.id,
        "name": obj.name,
        "slug": obj.slug,
        "description": obj.description,
        "is_published": obj.is_published,
        "owner_id": obj.owner_id,
        "created_at": _iso(obj.created_at),
        "updated_at": _iso(obj.updated_at),
        "tags": [{"id": t.id, "name": t.name, "slug": t.slug} for t in obj.tags],
    }


def serialize_detail(obj: Publication) -> dict:
    data = serialize(obj)
    data["text"] = obj.text
    data["owner"] = obj.owner.name if obj.owner is not None else None
    return data


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

async def load(db: AsyncSession, model: type[Publication], *criteria) -> Publication | None:
    """Load one row with owner and tags, refreshing an already-loaded instance."""
    q = (
        select(model)
        .where(*criteria)
        .options(joinedload(model.owner), selectinload(model.tags))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _slug_taken(
    db: AsyncSession, model: type[Publication], slug: str, exclude_id: int | None = None
) -> bool:
    q = select(model.id).where(model.slug == slug)
    if exclude_id is not None:
        q = q.where(model.id != exclude_id)
    return (await db.execute(q)).first() is not None


async def _flush_unique_slug(db: AsyncSession, slug: str) -> None:
    """Flush, reporting a unique-index race on the slug as a conflict."""
    try:
        await db.flush()
    except IntegrityError as exc:
        raise SlugConflict(f"Slug {slug!r} is already taken") from exc


async def _unique_slug(db: AsyncSession, model: type[Publication], name: str) -> str:
    """Derive a slug from *name*, appending ``-2``, ``-3``... on collision."""
    base = slugify(name) or model.morph_type
    slug, n = base, 1
    while await _slug_taken(db, model, slug):
        n += 1
        slug = f"{base}-{n}"
    return slug


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

async def resolve_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Return Tag rows for *names*, creating missing ones.

    Names are matched by slug so ``"Python"`` and ``"python"`` share a tag.
    Duplicates and names with no sluggable characters are dropped.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in names:
        name = raw.strip()
        slug = slugify(name)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        tag = (await db.execute(select(Tag).where(Tag.slug == slug))).scalar_one_or_none()
        if tag is None:
            tag = Tag(name=name, slug=slug)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


async def sync_tags(db: AsyncSession, obj: Publication, tags: list[Tag]) -> bool:
    """
    Make *tags* the exact tag set of *obj*.  Returns True when links changed.
    """
    link = and_(
        taggables.c.taggable_type == obj.morph_type,
        taggables.c.taggable_id == obj.id,
    )
    current = set((await db.execute(select(taggables.c.tag_id).where(link))).scalars().all())
    wanted = {t.id for t in tags}
    removed = current - wanted
    added = wanted - current
    if removed:
        await db.execute(delete(taggables).where(link, taggables.c.tag_id.in_(removed)))
    if added:
        await db.execute(
            insert(taggables),
            [
                {"tag_id": tag_id, "taggable_type": obj.morph_type, "taggable_id": obj.id}
                for tag_id in sorted(added)
            ],
        )
    return bool(removed or added)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_publications(
    db: AsyncSession,
    model: type[Publication],
    viewer: User | None = None,
    page: int = 1,
) -> dict:
    """
    Return one page of *model* rows visible to *viewer*, newest first.

    Cached for ``settings.CACHE_TTL`` under the model's listing tag.
    """

    async def produce() -> dict:
        return await _page(
            db,
            select(model).where(visible_to(model, viewer)),
            model,
            page,
        )

    return await cache.remember(
        list_cache_key(model, viewer, page),
        settings.CACHE_TTL,
        produce,
        tags=[list_tag(model)],
    )


async def list_by_tag(
    db: AsyncSession,
    model: type[Publication],
    tag: Tag,
    viewer: User | None = None,
    page: int = 1,
) -> dict:
    """Return one page of *model* rows carrying *tag*, newest first."""
    q = (
        select(model)
        .join(
            taggables,
            and_(
                taggables.c.taggable_id == model.id,
                taggables.c.taggable_type == model.morph_type,
            ),
        )
        .where(taggables.c.tag_id == tag.id, visible_to(model, viewer))
    )
    return await _page(db, q, model, page)


async def _page(db: AsyncSession, q, model: type[Publication], page: int) -> dict:
    page_size = settings.PAGE_SIZE
    q = (
        q.options(selectinload(model.tags))
        .order_by(model.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size + 1)
    )
    rows = (await db.execute(q)).scalars().all()
    return {
        "items": [serialize(r) for r in rows[:page_size]],
        "page": page,
        "page_size": page_size,
        "has_more": len(rows) > page_size,
    }


async def get_publication(
    db: AsyncSession,
    model: type[Publication],
    slug: str,
    viewer: User | None = None,
) -> dict | None:
    """
    Return the detail dict for *slug*, or None when it does not exist or
    *viewer* may not see it.
    """

    async def produce() -> dict | None:
        obj = await load(db, model, model.slug == slug)
        return serialize_detail(obj) if obj is not None else None

    data = await cache.remember(
        item_cache_key(model, slug),
        settings.CACHE_TTL,
        produce,
        tags=[list_tag(model)],
    )
    if data is None or not can_view(data, viewer):
        return None
    return data


async def get_visible(
    db: AsyncSession,
    model: type[Publication],
    slug: str,
    viewer: User | None,
) -> Publication | None:
    """Load the ORM row for *slug* if *viewer* may see it (uncached)."""
    return await load(db, model, model.slug == slug, visible_to(model, viewer))


async def create_publication(
    db: AsyncSession,
    model: type[Publication],
    data: PublicationCreate,
    owner: User,
) -> dict:
    """
    Create a row owned by *owner* and return its detail dict.

    An explicit slug must be free (``SlugConflict`` otherwise); a derived
    one is made unique with a numeric suffix.
    """
    if data.slug:
        if await _slug_taken(db, model, data.slug):
            raise SlugConflict(f"Slug {data.slug!r} is already taken")
        slug = data.slug
    else:
        slug = await _unique_slug(db, model, data.name)

    obj = model(
        name=data.name,
        slug=slug,
        description=data.description,
        text=data.text,
        is_published=data.is_published,
        owner_id=owner.id,
    )
    db.add(obj)
    await _flush_unique_slug(db, slug)

    if data.tags:
        await sync_tags(db, obj, await resolve_tags(db, data.tags))

    obj = await load(db, model, model.id == obj.id)
    return serialize_detail(obj)


async def update_publication(
    db: AsyncSession,
    model: type[Publication],
    slug: str,
    data: PublicationUpdate,
    editor: User,
) -> dict | None:
    """
    Partially update the row identified by *slug*.

    Returns None when it does not exist or is hidden from *editor*; raises
    ``PermissionDenied`` when *editor* can see but not modify it.  Only
    fields present in the payload are touched; a ``tags`` list replaces the
    current tag set.
    """
    obj = await get_visible(db, model, slug, editor)
    if obj is None:
        return None
    if not can_modify(obj, editor):
        raise PermissionDenied()

    update_data: dict[str, Any] = data.model_dump(exclude_unset=True)
    tag_names: list[str] | None = update_data.pop("tags", None)

    new_slug = update_data.get("slug")
    if new_slug is None:
        update_data.pop("slug", None)
    elif new_slug != obj.slug and await _slug_taken(db, model, new_slug, exclude_id=obj.id):
        raise SlugConflict(f"Slug {new_slug!r} is already taken")

    for field in ("name", "text"):
        if field in update_data and update_data[field] is None:
            update_data.pop(field)
    if update_data.get("is_published") is None:
        update_data.pop("is_published", None)

    for field, value in update_data.items():
        setattr(obj, field, value)
    await _flush_unique_slug(db, obj.slug)

    if tag_names is not None:
        changed = await sync_tags(db, obj, await resolve_tags(db, tag_names))
        if changed:
            # Tag links are Core rows; touching the parent makes the change a
            # lifecycle "updated" event of the row itself.
            obj.updated_at = utcnow()

    await db.flush()
    obj = await load(db, model, model.id == obj.id)
    return serialize_detail(obj)


async def delete_publication(
    db: AsyncSession,
    model: type[Publication],
    slug: str,
    actor: User,
) -> bool:
    """
    Delete the row identified by *slug* with its tag links and comments.

    Returns False when it does not exist or is hidden from *actor*.
    """
    obj = await get_visible(db, model, slug, actor)
    if obj is None:
        return False
    if not can_modify(obj, actor):
        raise PermissionDenied()

    await db.execute(
        delete(taggables).where(
            taggables.c.taggable_type == obj.morph_type,
            taggables.c.taggable_id == obj.id,
        )
    )
    await db.execute(
        delete(Comment).where(
            Comment.commentable_type == obj.morph_type,
            Comment.commentable_id == obj.id,
        )
    )
    await db.delete(obj)
    await db.flush()
    return True
