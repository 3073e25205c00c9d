"""
Tests for the periodic expired-hold sweep.
"""

from uuid import uuid4

from cinema_pos.cache import CacheKeyBuilder
from cinema_pos.tasks.hold_tasks import sweep_expired_holds


async def test_sweep_announces_index_entries_without_hold_key(cache, redis_client):
    showtime_id, seat_id = uuid4(), uuid4()
    member = f"{showtime_id}:{seat_id}"
    await redis_client.zadd(CacheKeyBuilder.hold_expiry_index(), {member: 1})
    await redis_client.zadd(CacheKeyBuilder.showtime_holds(str(showtime_id)), {str(seat_id): 1})

    result = await sweep_expired_holds(cache)

    assert result == {"released_count": 1}
    assert await redis_client.zcard(CacheKeyBuilder.hold_expiry_index()) == 0
    assert await redis_client.zcard(CacheKeyBuilder.showtime_holds(str(showtime_id))) == 0


async def test_sweep_keeps_live_holds(cache, redis_client):
    showtime_id, seat_id = uuid4(), uuid4()
    await redis_client.zadd(CacheKeyBuilder.hold_expiry_index(), {f"{showtime_id}:{seat_id}": 1})
    await redis_client.set(CacheKeyBuilder.seat_hold(str(showtime_id), str(seat_id)), "terminal-1", px=60_000)

    assert await sweep_expired_holds(cache) == {"released_count": 0}
    assert await redis_client.zcard(CacheKeyBuilder.hold_expiry_index()) == 1
