"""
Tag-based cache tests.

The first group exercises ``TaggedCache`` directly; the second checks that
model lifecycle events flush exactly the tags ``INVALIDATION`` declares,
so cached listings and items never outlive a correlated write.
"""
import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.cache import TaggedCache, cache
from app.database import Base
from app.events import INVALIDATION, Lifecycle, commit, pending_cache_tags
from app.models import Article, Comment, Tiding, User
from app.schemas import CommentCreate, PublicationCreate, PublicationUpdate
from app.services import article_service, comment_service, tiding_service

from conftest import as_user, create_article, create_user, make_user


class Counter:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


# ---------------------------------------------------------------------------
# TaggedCache
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_remember_computes_once(redis_cache):
    producer = Counter({"answer": 42})
    assert await cache.remember("k", 60, producer, tags=["t"]) == {"answer": 42}
    assert await cache.remember("k", 60, producer, tags=["t"]) == {"answer": 42}
    assert producer.calls == 1
    assert cache.stats["hits"] == 1


@pytest.mark.asyncio
async def test_remember_sets_ttl(redis_cache):
    await cache.remember("ttl", 120, Counter([1]), tags=["t"])
    ttl = await redis_cache.ttl("cache:ttl")
    assert 0 < ttl <= 120


@pytest.mark.asyncio
async def test_none_is_not_stored(redis_cache):
    producer = Counter(None)
    assert await cache.remember("missing", 60, producer) is None
    assert await cache.remember("missing", 60, producer) is None
    assert producer.calls == 2


@pytest.mark.asyncio
async def test_flush_drops_only_entries_under_the_tag(redis_cache):
    await cache.put("a", 1, tags=["one"])
    await cache.put("b", 2, tags=["one", "two"])
    await cache.put("c", 3, tags=["two"])
    await cache.put("d", 4)

    await cache.flush("one")

    assert await cache.get("a") is None
    assert await cache.get("b") is None
    assert await cache.get("c") == 3
    assert await cache.get("d") == 4
    assert await redis_cache.exists("cache:tag:one") == 0


@pytest.mark.asyncio
async def test_forget(redis_cache):
    await cache.put("gone", "x")
    await cache.forget("gone")
    assert await cache.get("gone") is None


@pytest.mark.asyncio
async def test_disabled_cache_is_pass_through():
    local = TaggedCache(prefix="off")
    producer = Counter("fresh")
    assert await local.remember("k", 60, producer) == "fresh"
    assert await local.remember("k", 60, producer) == "fresh"
    assert producer.calls == 2
    await local.flush("anything")
    assert local.stats["misses"] == 2


@pytest.mark.asyncio
async def test_flush_never_orphans_a_concurrent_entry(redis_cache):
    """Every entry that survives a flush is still filed under its tag."""
    for i in range(20):
        await cache.put(f"old:{i}", i, tags=["busy"])

    await asyncio.gather(
        cache.flush("busy"),
        *(cache.put(f"new:{i}", i, tags=["busy"]) for i in range(20)),
    )

    members = await redis_cache.smembers("cache:tag:busy")
    entries = {k for k in await redis_cache.keys("cache:*") if not k.startswith("cache:tag:")}
    assert entries <= members

    await cache.flush("busy")
    assert await redis_cache.keys("cache:*") == []


# ---------------------------------------------------------------------------
# Invalidation table
# ---------------------------------------------------------------------------

def test_article_invalidation_table():
    table = INVALIDATION[Article]
    assert set(table[Lifecycle.CREATED]) == {
        "articles",
        "articles_count",
        "max_count_articles_user",
        "article_max_length_name",
        "article_min_length_name",
        "avg_count_articles",
        "articles_tags",
    }
    assert set(table[Lifecycle.UPDATED]) == {
        "articles",
        "article_max_length_name",
        "article_min_length_name",
        "most_updated_article",
        "articles_tags",
    }
    assert set(table[Lifecycle.DELETED]) == set(table[Lifecycle.CREATED]) | {
        "most_updated_article",
        "most_discussed_article",
    }
    assert set(INVALIDATION[Tiding][Lifecycle.CREATED]) == {"tidings", "tidings_tags"}
    assert set(INVALIDATION[Comment][Lifecycle.CREATED]) == {"most_discussed_article"}


async def _tag_exists(client, tag: str) -> bool:
    return bool(await client.exists(f"cache:tag:{tag}"))


@pytest.mark.asyncio
async def test_article_update_flushes_declared_tags_only(redis_cache, db_session: AsyncSession):
    owner = await make_user(db_session)
    await article_service.create_article(
        db_session, PublicationCreate(name="Cached", text="x", is_published=True), owner
    )
    await commit(db_session)
    for tag in ("articles", "articles_count", "most_updated_article", "tidings"):
        await cache.put(f"sample:{tag}", 1, tags=[tag])

    await article_service.update_article(
        db_session, "cached", PublicationUpdate(text="y"), owner
    )
    await commit(db_session)

    assert not await _tag_exists(redis_cache, "articles")
    assert not await _tag_exists(redis_cache, "most_updated_article")
    # Not correlated with an update:
    assert await _tag_exists(redis_cache, "articles_count")
    assert await _tag_exists(redis_cache, "tidings")


@pytest.mark.asyncio
async def test_comment_flushes_most_discussed(redis_cache, db_session: AsyncSession):
    owner = await make_user(db_session)
    await article_service.create_article(
        db_session, PublicationCreate(name="Debated", text="x", is_published=True), owner
    )
    await commit(db_session)
    await cache.put("sample:discussed", 1, tags=["most_discussed_article"])
    await cache.put("sample:articles", 1, tags=["articles"])

    await comment_service.add_comment(
        db_session, Article, "debated", CommentCreate(body="hot take"), owner
    )
    await commit(db_session)

    assert await cache.get("sample:discussed") is None
    assert await cache.get("sample:articles") == 1


@pytest.mark.asyncio
async def test_tiding_write_leaves_article_caches(redis_cache, db_session: AsyncSession):
    owner = await make_user(db_session)
    await cache.put("sample:articles", 1, tags=["articles"])
    await cache.put("sample:tidings", 1, tags=["tidings"])

    await tiding_service.create_tiding(
        db_session, PublicationCreate(name="News", text="x", is_published=True), owner
    )
    await commit(db_session)

    assert await cache.get("sample:articles") == 1
    assert await cache.get("sample:tidings") is None


@pytest.mark.asyncio
async def test_invalidation_waits_for_commit(redis_cache, db_session: AsyncSession):
    owner = await make_user(db_session)
    await cache.put("sample:articles", 1, tags=["articles"])

    await article_service.create_article(
        db_session, PublicationCreate(name="Pending", text="x", is_published=True), owner
    )
    assert "articles" in pending_cache_tags(db_session)
    assert await cache.get("sample:articles") == 1

    flushed = await commit(db_session)
    assert "articles_count" in flushed
    assert await cache.get("sample:articles") is None
    assert pending_cache_tags(db_session) == set()


@pytest.mark.asyncio
async def test_rollback_discards_collected_tags(redis_cache, db_session: AsyncSession):
    owner = await make_user(db_session)
    await cache.put("sample:articles", 1, tags=["articles"])

    await article_service.create_article(
        db_session, PublicationCreate(name="Abandoned", text="x"), owner
    )
    await db_session.rollback()

    assert pending_cache_tags(db_session) == set()
    assert await commit(db_session) == set()
    assert await cache.get("sample:articles") == 1


@pytest.mark.asyncio
async def test_reader_before_commit_cannot_pin_the_old_row(redis_cache, tmp_path):
    """
    A reader running between the writer's flush and its commit caches the
    old committed row; the commit must still drop that entry.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'blog.db'}")
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        async with sessions() as setup:
            owner = await make_user(setup, "Racer")
            await article_service.create_article(
                setup, PublicationCreate(name="Old", slug="raced", text="x", is_published=True), owner
            )
            await commit(setup)

        async with sessions() as writer:
            editor = await writer.get(User, owner.id)
            await article_service.update_article(
                writer, "raced", PublicationUpdate(name="New"), editor
            )
            async with sessions() as reader:
                seen = await article_service.get_article(reader, "raced")
            assert seen["name"] == "Old"
            assert await redis_cache.exists("cache:article:raced")
            await commit(writer)

        async with sessions() as later:
            fresh = await article_service.get_article(later, "raced")
        assert fresh["name"] == "New"
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# End to end through the API
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_anonymous_listing_is_cached_and_invalidated(redis_cache, async_client: AsyncClient):
    owner = await create_user(async_client, "Cache Author")
    await create_article(async_client, owner, name="First post")

    first = (await async_client.get("/api/v1/articles")).json()
    assert await redis_cache.exists("cache:articles:no_auth:page:1")
    assert [a["name"] for a in first["items"]] == ["First post"]

    await create_article(async_client, owner, name="Second post")

    second = (await async_client.get("/api/v1/articles")).json()
    assert [a["name"] for a in second["items"]] == ["Second post", "First post"]


@pytest.mark.asyncio
async def test_listing_cache_is_keyed_by_viewer(redis_cache, async_client: AsyncClient):
    owner = await create_user(async_client, "Keyed")
    await create_article(async_client, owner, name="Private", is_published=False)

    anon = (await async_client.get("/api/v1/articles")).json()
    mine = (await async_client.get("/api/v1/articles", headers=as_user(owner))).json()

    assert anon["items"] == []
    assert [a["name"] for a in mine["items"]] == ["Private"]
    assert await redis_cache.exists(f"cache:articles:user:{owner['id']}:page:1")


@pytest.mark.asyncio
async def test_cached_article_refreshes_after_update(redis_cache, async_client: AsyncClient):
    owner = await create_user(async_client, "Refresher")
    await create_article(async_client, owner, name="Volatile", text="old")

    assert (await async_client.get("/api/v1/articles/volatile")).json()["text"] == "old"
    assert await redis_cache.exists("cache:article:volatile")

    await async_client.put(
        "/api/v1/articles/volatile", json={"text": "new"}, headers=as_user(owner)
    )
    assert (await async_client.get("/api/v1/articles/volatile")).json()["text"] == "new"


@pytest.mark.asyncio
async def test_cached_draft_still_gated_per_viewer(redis_cache, async_client: AsyncClient):
    owner = await create_user(async_client, "Gatekeeper")
    await create_article(async_client, owner, name="Gated", is_published=False)

    # The owner's read fills the shared item cache...
    resp = await async_client.get("/api/v1/articles/gated", headers=as_user(owner))
    assert resp.status_code == 200
    assert await redis_cache.exists("cache:article:gated")
    # ...which must not leak the draft to anonymous readers.
    assert (await async_client.get("/api/v1/articles/gated")).status_code == 404


@pytest.mark.asyncio
async def test_tag_change_refreshes_listing(redis_cache, async_client: AsyncClient):
    owner = await create_user(async_client, "Retagger")
    await create_article(async_client, owner, name="Retag me", tags=["before"])
    await async_client.get("/api/v1/articles")
    await async_client.get("/api/v1/tags")

    await async_client.put(
        "/api/v1/articles/retag-me", json={"tags": ["after"]}, headers=as_user(owner)
    )

    items = (await async_client.get("/api/v1/articles")).json()["items"]
    assert [t["slug"] for t in items[0]["tags"]] == ["after"]
    cloud = (await async_client.get("/api/v1/tags")).json()
    assert [t["slug"] for t in cloud] == ["after"]
