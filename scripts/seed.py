"""Database seeder: users with articles, tidings and random tags."""
import argparse
import asyncio
import logging
import random
import time

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.database import engine, async_session, Base
from app.events import commit
from app.logging_config import configure_logging
from app.models import Article, Tag, Tiding, User, UserRole, taggables
from app.services.publication_service import slugify

logger = logging.getLogger("seed")

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

WORDS = ["quick", "guide", "deep", "dive", "notes", "release", "cache", "query",
         "design", "review", "update", "launch", "tips", "patterns", "lessons"]


def _title(rng: random.Random) -> str:
    return " ".join(rng.choice(WORDS) for _ in range(rng.randint(2, 6))).capitalize()


async def populate(
    session: AsyncSession,
    users: int = 5,
    articles_per_user: int = 10,
    tidings_per_user: int = 7,
    rng: random.Random | None = None,
) -> dict[str, int]:
    """
    Add an admin, *users* authors, their articles and tidings, and attach
    1-5 random tags to every article.  Flushes but does not commit.
    """
    rng = rng or random.Random()

    tags = [Tag(name=name, slug=slugify(name)) for name in TAGS]
    session.add_all(tags)
    session.add(User(name="Admin", email="admin@example.com", role=UserRole.ADMIN.value))
    authors = [
        User(name=f"User {i}", email=f"user_{i:04d}@example.com")
        for i in range(users)
    ]
    session.add_all(authors)
    await session.flush()

    counter = 0
    links = []
    for author in authors:
        for model, count in ((Article, articles_per_user), (Tiding, tidings_per_user)):
            for _ in range(count):
                counter += 1
                name = _title(rng)
                obj = model(
                    name=name,
                    slug=f"{slugify(name)}-{counter}",
                    description=f"A short note about {name.lower()}.",
                    text=f"{name}. " * 20,
                    is_published=rng.random() > 0.2,
                    owner_id=author.id,
                )
                session.add(obj)
                await session.flush()
                if model is Article:
                    for tag in rng.sample(tags, k=rng.randint(1, 5)):
                        links.append(
                            {"tag_id": tag.id, "taggable_type": model.morph_type,
                             "taggable_id": obj.id}
                        )

    if links:
        await session.execute(insert(taggables), links)
    await session.flush()
    return {
        "users": users + 1,
        "articles": users * articles_per_user,
        "tidings": users * tidings_per_user,
        "tag_links": len(links),
    }


async def seed(users: int = 5, articles_per_user: int = 10, tidings_per_user: int = 7,
               seed_value: int | None = None) -> None:
    logger.info(
        "Seeding: %d users, %d articles and %d tidings per user",
        users, articles_per_user, tidings_per_user,
    )
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    await cache.connect()
    try:
        async with async_session() as session:
            counts = await populate(
                session, users, articles_per_user, tidings_per_user, random.Random(seed_value)
            )
            flushed = await commit(session)
    finally:
        await cache.disconnect()
    logger.info("Flushed cache tags: %s", ", ".join(sorted(flushed)))
    logger.info("Seeding complete in %.1fs: %s", time.perf_counter() - start, counts)


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--users", type=int, default=5)
    parser.add_argument("--articles", type=int, default=10, help="Articles per user")
    parser.add_argument("--tidings", type=int, default=7, help="Tidings per user")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(seed(args.users, args.articles, args.tidings, args.seed))


if __name__ == "__main__":
    main()
