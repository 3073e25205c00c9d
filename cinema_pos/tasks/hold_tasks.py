"""
Celery tasks for seat hold expiry.
"""

import asyncio
import logging
from typing import Dict, Optional

from .celery_app import celery_app
from ..cache import RedisCache
from ..services.seat_hold_service import SeatHoldService

logger = logging.getLogger(__name__)


async def sweep_expired_holds(cache: Optional[RedisCache] = None) -> Dict[str, int]:
    """
    Announce holds whose Redis key already expired.

    Uses its own Redis connection unless one is given, since every task run
    gets a fresh event loop.
    """
    owned = cache is None
    if owned:
        cache = RedisCache()
        await cache.initialize()

    try:
        # Sweeping reads Redis only
        service = SeatHoldService(None, cache=cache)
        swept = await service.sweep_expired_holds()
        return {"released_count": swept}
    finally:
        if owned:
            await cache.close()


@celery_app.task(name="sweep_expired_holds_task")
def sweep_expired_holds_task():
    """
    Periodic task releasing expired seat holds.

    The hold key's TTL already made the seat holdable again; this task
    removes the stale index entries and tells viewers the seat is free.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(sweep_expired_holds())
    except Exception as e:
        logger.error(f"Error in hold sweep task: {e}")
        raise
    finally:
        loop.close()

    if result["released_count"]:
        logger.info(f"Hold sweep released {result['released_count']} seat(s)")
    return result
