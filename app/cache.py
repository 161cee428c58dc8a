import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[Any]]

# KEYS: tag sets.  Deletes every member entry and the sets in one step so a
# concurrent put cannot be dropped from its tag set while its entry survives.
FLUSH_TAGS_LUA = """
local dropped = 0
for _, tag_key in ipairs(KEYS) do
    for _, entry_key in ipairs(redis.call("SMEMBERS", tag_key)) do
        dropped = dropped + redis.call("DEL", entry_key)
    end
    redis.call("DEL", tag_key)
end
return dropped
"""


class TaggedCache:
    """
    Tag-aware cache backed by Redis.

    Every entry is a JSON document stored under ``<prefix>:<key>``.  When an
    entry is stored with tags, its key is also added to one Redis set per tag
    (``<prefix>:tag:<tag>``), so ``flush(tag)`` can drop every entry filed
    under that tag without knowing the individual keys.

    When Redis is unavailable reads miss, writes are skipped and
    ``remember`` simply calls the producer; a cache failure never breaks a
    request.
    """

    def __init__(self, prefix: str | None = None) -> None:
        self._redis: redis.Redis | None = None
        self._flush_script = None
        self._prefix = prefix or settings.CACHE_PREFIX
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """Open the connection pool.  Called once at application startup."""
        url = url or settings.REDIS_URL
        self._redis = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            self._flush_script = self._redis.register_script(FLUSH_TAGS_LUA)
            logger.info("Redis connected: %s", url)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None
            self._flush_script = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._flush_script = None

    def use(self, client: redis.Redis | None) -> None:
        """Swap the underlying client (``None`` disables caching)."""
        self._redis = client
        self._flush_script = client.register_script(FLUSH_TAGS_LUA) if client is not None else None

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _entry_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self._prefix}:tag:{tag}"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or None on a miss or error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(self._entry_key(key))
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def put(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        """Store *value* under *key* and file the key under each of *tags*."""
        if not self._redis:
            return
        ttl = ttl or settings.CACHE_TTL
        entry_key = self._entry_key(key)
        try:
            serialised = json.dumps(value, default=str)
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(entry_key, serialised, ex=ttl)
                for tag in tags:
                    tag_key = self._tag_key(tag)
                    pipe.sadd(tag_key, entry_key)
                    pipe.expire(tag_key, ttl)
                await pipe.execute()
        except Exception as exc:
            logger.debug("Cache PUT error for key=%r: %s", key, exc)

    async def remember(
        self,
        key: str,
        ttl: int | None,
        producer: Producer,
        tags: Iterable[str] = (),
    ) -> Any:
        """
        Return the cached value for *key*, computing and storing it with
        *producer* on a miss.

        ``None`` results are returned but never stored, so a lookup for a
        row that does not exist yet is not pinned for a week.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await producer()
        if value is not None:
            await self.put(key, value, ttl=ttl, tags=tags)
        return value

    async def forget(self, key: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(self._entry_key(key))
        except Exception as exc:
            logger.debug("Cache FORGET error for key=%r: %s", key, exc)

    async def flush(self, *tags: str) -> None:
        """Drop every entry filed under any of *tags*."""
        if not self._redis or not tags:
            return
        try:
            tag_keys = [self._tag_key(tag) for tag in sorted(set(tags))]
            dropped = await self._flush_script(keys=tag_keys)
            logger.debug("Cache flushed %d key(s) for tags %s", dropped, sorted(tags))
        except Exception as exc:
            logger.debug("Cache FLUSH error for tags=%r: %s", tags, exc)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0


# Module-level singleton shared across all request handlers.
cache = TaggedCache()
