"""
Redis layer: seat holds, hold indexes, live seat events and cached room layouts.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Optional, Tuple

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError
from redis.exceptions import ConnectionError as RedisConnectionError

from .config import get_settings
from .utils.exceptions import CacheServiceError

logger = logging.getLogger(__name__)


# Set the hold when free, refresh it when the caller already owns it.
# Returns 1 when the caller holds the key afterwards, 0 otherwise.
ACQUIRE_HOLD_SCRIPT = """
local current = redis.call("GET", KEYS[1])
if not current then
    redis.call("SET", KEYS[1], ARGV[1], "PX", ARGV[2])
    return 1
end
if current == ARGV[1] then
    redis.call("PEXPIRE", KEYS[1], ARGV[2])
    return 1
end
return 0
"""

# Delete the key only when it still carries the caller's value
COMPARE_AND_DELETE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""


# Delete the caller's hold, then drop the seat from both hold indexes unless
# the key is still held (by anyone). Returns {deleted, unindexed}.
# KEYS: hold key, showtime index, expiry index. ARGV: holder, seat member, expiry member
RELEASE_HOLD_SCRIPT = """
local released = 0
local unindexed = 0
if ARGV[1] ~= "" and redis.call("GET", KEYS[1]) == ARGV[1] then
    redis.call("DEL", KEYS[1])
    released = 1
end
if redis.call("EXISTS", KEYS[1]) == 0 then
    redis.call("ZREM", KEYS[2], ARGV[2])
    redis.call("ZREM", KEYS[3], ARGV[3])
    unindexed = 1
end
return {released, unindexed}
"""


class CacheKeyBuilder:
    """Helper class for building consistent cache keys."""

    @staticmethod
    def seat_hold(showtime_id: str, seat_id: str) -> str:
        """Key whose value is the holder token and whose TTL is the hold lifetime."""
        return f"hold:{showtime_id}:{seat_id}"

    @staticmethod
    def showtime_holds(showtime_id: str) -> str:
        """Sorted set of held seat ids for a showtime, scored by expiry (ms)."""
        return f"holds:showtime:{showtime_id}"

    @staticmethod
    def hold_expiry_index() -> str:
        """Global sorted set of "showtime:seat" members scored by expiry (ms)."""
        return "holds:expiry"

    @staticmethod
    def seat_events_channel(showtime_id: str) -> str:
        """Pub/sub channel carrying seat-update events for one showtime."""
        return f"seat-events:{showtime_id}"

    @staticmethod
    def seat_events_sequence(showtime_id: str) -> str:
        """Counter used to number seat-update events per showtime."""
        return f"seat-events:seq:{showtime_id}"

    @staticmethod
    def room_layout(room_id: str) -> str:
        """Build cache key for a room with its seats and layout."""
        return f"room:layout:{room_id}"

    @staticmethod
    def booking_lock(showtime_id: str, holder: str) -> str:
        """Build cache key for booking process locks."""
        return f"lock:booking:{showtime_id}:{holder}"

    @staticmethod
    def hold_sweep_lock() -> str:
        """Lock taken by the expired-hold sweeper."""
        return "lock:hold-sweep"


class RedisCache:
    """Owns the Redis client used for seat holds, seat events and layout caching."""

    def __init__(self, client: Optional[Redis] = None):
        self.client: Optional[Redis] = client
        self.pool: Optional[redis.ConnectionPool] = None

    async def initialize(self) -> None:
        settings = get_settings()
        self.pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            retry_on_timeout=True,
            socket_keepalive=True,
            health_check_interval=30,
            decode_responses=True,
        )
        self.client = Redis(connection_pool=self.pool)
        try:
            await self.client.ping()
        except RedisConnectionError as e:
            logger.error("Redis unreachable at %s: %s", settings.redis_url, e)
            raise
        logger.info("Redis connected; seat holds enabled")

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        self.client = None
        self.pool = None

    def require_client(self) -> Redis:
        """Return the client or raise.

        Hold and event operations must fail without Redis; layout reads
        just fall back to SQL.
        """
        if not self.client:
            raise CacheServiceError("Redis client not initialized")
        return self.client

    async def get_json(self, key: str) -> Optional[Any]:
        """Cached JSON value, or None on a miss or any Redis problem."""
        if not self.client:
            return None
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable cache entry %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.client:
            return False
        try:
            await self.client.set(key, json.dumps(value, default=str), ex=ttl)
        except (RedisError, TypeError) as e:
            logger.warning("Cache write failed for %s: %s", key, e)
            return False
        return True

    async def acquire_hold(self, key: str, holder: str, ttl_ms: int) -> bool:
        """Claim ``key`` for ``holder``, or extend the holder's own claim."""
        client = self.require_client()
        try:
            result = await client.eval(ACQUIRE_HOLD_SCRIPT, 1, key, holder, ttl_ms)
        except RedisError as e:
            logger.error("Hold script failed on %s: %s", key, e)
            raise CacheServiceError(f"Failed to acquire hold: {e}")
        return bool(result)

    async def compare_and_delete(self, key: str, value: str) -> bool:
        """Delete ``key`` only while it still carries ``value``."""
        client = self.require_client()
        try:
            result = await client.eval(COMPARE_AND_DELETE_SCRIPT, 1, key, value)
        except RedisError as e:
            logger.error("Release script failed on %s: %s", key, e)
            raise CacheServiceError(f"Failed to release key: {e}")
        return bool(result)

    async def release_hold(self, showtime_id: str, seat_id: str, holder: str = "") -> Tuple[bool, bool]:
        """
        Drop ``holder``'s hold on a seat and unindex it in one step.

        The index entries stay while any hold key exists, so a re-hold racing
        this call keeps its place in the held list. With an empty ``holder``
        only stale index entries are removed.

        Returns:
            (whether the caller's hold was deleted, whether the seat is now unindexed)
        """
        client = self.require_client()
        keys = (
            CacheKeyBuilder.seat_hold(showtime_id, seat_id),
            CacheKeyBuilder.showtime_holds(showtime_id),
            CacheKeyBuilder.hold_expiry_index(),
        )
        try:
            result = await client.eval(
                RELEASE_HOLD_SCRIPT, len(keys), *keys, holder, seat_id, f"{showtime_id}:{seat_id}"
            )
        except RedisError as e:
            logger.error("Release script failed on %s: %s", keys[0], e)
            raise CacheServiceError(f"Failed to release hold: {e}")
        released, unindexed = result
        return bool(released), bool(unindexed)


class DistributedLock:
    """
    SET NX lock with an expiry, released only by the instance that took it.

    Used to keep one booking per holder and showtime in flight, and one
    hold sweep across workers.
    """

    def __init__(self, cache: RedisCache, key: str, timeout: int = 30):
        self.cache = cache
        self.key = key
        self.timeout = timeout
        self.identifier = uuid.uuid4().hex

    async def acquire(self, blocking: bool = True, timeout: Optional[float] = None) -> bool:
        client = self.cache.require_client()
        deadline = time.monotonic() + timeout if timeout else None

        while True:
            try:
                if await client.set(self.key, self.identifier, nx=True, ex=self.timeout):
                    return True
            except RedisError as e:
                logger.warning("Lock %s unavailable: %s", self.key, e)
                return False

            if not blocking or (deadline and time.monotonic() >= deadline):
                return False
            await asyncio.sleep(0.1)

    async def release(self) -> bool:
        try:
            return await self.cache.compare_and_delete(self.key, self.identifier)
        except CacheServiceError as e:
            logger.warning("Lock %s not released: %s", self.key, e)
            return False


cache = RedisCache()


async def init_cache() -> None:
    await cache.initialize()


async def close_cache() -> None:
    await cache.close()


def get_cache() -> RedisCache:
    return cache


class CacheTTL:
    """Expiry, in seconds, for cached entries and locks."""

    ROOM_LAYOUT = 600
    LOCK_TIMEOUT = 30
