"""
Live seat events: publishing seat-update messages and streaming them as SSE.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional
from uuid import UUID

from redis.exceptions import RedisError

from ..cache import CacheKeyBuilder, RedisCache, get_cache
from ..schemas.seat import SeatEventStatus, SeatUpdateEvent
from ..utils.exceptions import CacheServiceError

logger = logging.getLogger(__name__)

SEAT_UPDATE_EVENT = "seat-update"


def format_sse(event: str, data: str, event_id: Optional[str] = None) -> str:
    """Format one Server-Sent Event frame."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    for chunk in data.splitlines() or [""]:
        lines.append(f"data: {chunk}")
    return "\n".join(lines) + "\n\n"


class SeatEventPublisher:
    """Publishes seat-update events on the showtime's Redis channel."""

    def __init__(self, cache: Optional[RedisCache] = None):
        self.cache = cache or get_cache()

    async def publish(
        self,
        showtime_id: UUID,
        seat_id: UUID,
        status: SeatEventStatus,
        expires_at: Optional[datetime] = None,
    ) -> Optional[SeatUpdateEvent]:
        """
        Publish a seat-update event.

        Seat state itself lives in Redis keys and the database, so a failed
        publish is logged and viewers catch up on their next re-fetch.

        Returns:
            The published event, or None if publishing failed
        """
        try:
            client = self.cache.require_client()
            sequence = await client.incr(CacheKeyBuilder.seat_events_sequence(str(showtime_id)))
            event = SeatUpdateEvent(
                showtime_id=showtime_id,
                seat_id=seat_id,
                status=status,
                expires_at=expires_at,
                sequence=sequence,
            )
            await client.publish(
                CacheKeyBuilder.seat_events_channel(str(showtime_id)),
                event.model_dump_json(),
            )
            return event
        except (RedisError, CacheServiceError) as e:
            logger.error(
                "Failed to publish %s event for seat %s of showtime %s: %s",
                status.value, seat_id, showtime_id, e
            )
            return None


async def seat_event_stream(
    showtime_id: UUID,
    cache: Optional[RedisCache] = None,
    keepalive_seconds: float = 15.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    poll_timeout: float = 1.0,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for a showtime's seat events until the client disconnects.

    A comment frame is sent on connect and after every quiet
    ``keepalive_seconds`` so proxies keep the connection open.
    """
    cache = cache or get_cache()
    client = cache.require_client()
    channel = CacheKeyBuilder.seat_events_channel(str(showtime_id))
    pubsub = client.pubsub()
    await pubsub.subscribe(channel)
    logger.debug("SSE subscriber attached to %s", channel)

    loop = asyncio.get_running_loop()
    try:
        yield f": connected {datetime.now(timezone.utc).isoformat()}\n\n"
        last_sent = loop.time()

        while True:
            if is_disconnected is not None and await is_disconnected():
                break

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=poll_timeout)
            if message and message.get("type") == "message":
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                try:
                    event_id = str(json.loads(data).get("sequence"))
                except ValueError:
                    logger.warning("Skipping malformed seat event on %s", channel)
                    continue
                yield format_sse(SEAT_UPDATE_EVENT, data, event_id)
                last_sent = loop.time()
            elif loop.time() - last_sent >= keepalive_seconds:
                yield ": keepalive\n\n"
                last_sent = loop.time()
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.debug("SSE subscriber detached from %s", channel)
