"""
Test infrastructure for the Blog CMS API.

Strategy
--------
- SQLite in-memory via aiosqlite; StaticPool makes every session share the
  one connection that holds the in-memory database.
- The app's get_db dependency is overridden with the test session factory;
  like get_db it commits through ``app.events.commit``, so cache tags are
  flushed only after the commit.
- Tables are created before and dropped after each test.
- The cache is disabled by default (``cache.use(None)``), which turns every
  ``remember`` into a plain call of its producer.  Tests that exercise
  caching request the ``redis_cache`` fixture, which plugs in fakeredis.
"""
import fakeredis
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.cache import cache
from app.database import Base, get_db
from app.events import commit
from app.main import app
from app.middleware import install_query_counter
from app.models import User, UserRole

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache.use(None)
    cache.reset_stats()
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    cache.use(None)


@pytest_asyncio.fixture
async def redis_cache():
    """Back the shared cache with an in-process fake Redis for one test."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    cache.use(client)
    yield client
    await client.flushall()
    cache.use(None)
    await client.aclose()


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Helpers shared by the endpoint tests
# ---------------------------------------------------------------------------

async def create_user(
    client: AsyncClient, name: str, role: str = UserRole.USER.value
) -> dict:
    resp = await client.post("/api/v1/users", json={
        "name": name,
        "email": f"{name.lower().replace(' ', '_')}@example.com",
        "role": role,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def as_user(user: dict) -> dict:
    """Request headers identifying *user* as the viewer."""
    return {"X-User-Id": str(user["id"])}


async def create_article(client: AsyncClient, owner: dict, **fields) -> dict:
    payload = {"name": "An article", "text": "Body", "is_published": True}
    payload.update(fields)
    resp = await client.post("/api/v1/articles", json=payload, headers=as_user(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def make_user(db: AsyncSession, name: str = "Service User", admin: bool = False) -> User:
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '_')}@example.com",
        role=UserRole.ADMIN.value if admin else UserRole.USER.value,
    )
    db.add(user)
    await db.flush()
    return user
