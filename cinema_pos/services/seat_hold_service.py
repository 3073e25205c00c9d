"""
Seat hold service: time-bounded exclusive holds kept in Redis.

A hold is the key ``hold:{showtime}:{seat}`` whose value is the holder and
whose TTL is the hold lifetime, so expiry needs no cleanup to take effect.
Two sorted sets index live holds by expiry: one per showtime for the held
seat list, one global for the sweeper that announces expired holds.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheKeyBuilder, CacheTTL, DistributedLock, RedisCache, get_cache
from ..config import get_settings
from ..models import BookingSeat, Seat, SeatType
from ..schemas.seat import (
    HeldSeatListResponse,
    HeldSeatResponse,
    SeatEventStatus,
    SeatHoldResponse,
    SeatReleaseResponse,
)
from ..utils.exceptions import (
    CacheServiceError,
    SeatAlreadyBookedError,
    SeatConflictError,
    SeatNotFoundError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from .catalog_service import CatalogService
from .seat_events import SeatEventPublisher

logger = logging.getLogger(__name__)

HOLDABLE_TYPES = (SeatType.NORMAL, SeatType.VIP, SeatType.COUPLE)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _from_ms(value: float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class SeatHoldService:
    """Service class for seat hold operations."""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[RedisCache] = None,
        publisher: Optional[SeatEventPublisher] = None,
        hold_ttl_seconds: Optional[int] = None,
    ):
        """Initialize the seat hold service with database session and cache."""
        self.db = db
        self.cache = cache or get_cache()
        self.publisher = publisher or SeatEventPublisher(self.cache)
        self.hold_ttl_seconds = hold_ttl_seconds or get_settings().seat_hold_ttl_seconds
        self.catalog = CatalogService(db, self.cache)

    async def hold_seat(self, showtime_id: UUID, seat_id: UUID, holder: str) -> SeatHoldResponse:
        """
        Hold a seat for a showtime.

        Holding a seat the caller already holds succeeds and extends the hold.

        Raises:
            ShowtimeNotFoundError: If the showtime does not exist
            SeatNotFoundError: If the seat is not part of the showtime's room
            SeatAlreadyBookedError: If the seat is booked for the showtime
            SeatConflictError: If another holder holds the seat
        """
        showtime = await self.catalog.get_showtime(showtime_id)
        seat = await self.db.get(Seat, seat_id)
        if seat is None or seat.room_id != showtime.room_id:
            raise SeatNotFoundError(str(seat_id))
        if seat.seat_type not in HOLDABLE_TYPES:
            raise ValidationError(f"Seat {seat.seat_number} cannot be booked")

        if await self.is_booked(showtime_id, seat_id):
            raise SeatAlreadyBookedError(str(seat_id))

        key = CacheKeyBuilder.seat_hold(str(showtime_id), str(seat_id))
        ttl_ms = self.hold_ttl_seconds * 1000
        if not await self.cache.acquire_hold(key, holder, ttl_ms):
            raise SeatConflictError(str(seat_id), current_status="held")

        # A booking may have committed between the first check and the claim
        if await self.is_booked(showtime_id, seat_id):
            await self.cache.compare_and_delete(key, holder)
            raise SeatAlreadyBookedError(str(seat_id))

        expiry_ms = _now_ms() + ttl_ms
        await self._index_hold(showtime_id, seat_id, expiry_ms)
        expires_at = _from_ms(expiry_ms)

        await self.publisher.publish(showtime_id, seat_id, SeatEventStatus.HELD, expires_at)
        log_business_event(
            "seat_held",
            {"showtime_id": str(showtime_id), "seat_id": str(seat_id), "seat_number": seat.seat_number},
            user_id=holder,
        )

        return SeatHoldResponse(
            showtime_id=showtime_id,
            seat_id=seat_id,
            expires_at=expires_at,
            hold_duration_seconds=self.hold_ttl_seconds,
        )

    async def release_seat(self, showtime_id: UUID, seat_id: UUID, holder: str) -> SeatReleaseResponse:
        """
        Release the caller's hold on a seat.

        Idempotent: releasing an expired, foreign or already released hold
        changes nothing, and a booked seat is never affected.
        """
        released, _ = await self.cache.release_hold(str(showtime_id), str(seat_id), holder)

        if released:
            await self.publisher.publish(showtime_id, seat_id, SeatEventStatus.RELEASED)
            log_business_event(
                "seat_released",
                {"showtime_id": str(showtime_id), "seat_id": str(seat_id)},
                user_id=holder,
            )
        else:
            logger.debug("Release of seat %s for showtime %s was a no-op", seat_id, showtime_id)

        return SeatReleaseResponse(showtime_id=showtime_id, seat_id=seat_id, released=released)

    async def get_held_seats(self, showtime_id: UUID, holder: Optional[str] = None) -> HeldSeatListResponse:
        """List live holds of a showtime. The hold keys, not the index, decide what is live."""
        client = self.cache.require_client()
        try:
            seat_ids = await client.zrange(CacheKeyBuilder.showtime_holds(str(showtime_id)), 0, -1)
            holders = await self._read_holds(showtime_id, seat_ids)
        except RedisError as e:
            raise CacheServiceError(f"Failed to read holds: {e}")

        now_ms = _now_ms()
        seats = [
            HeldSeatResponse(
                seat_id=UUID(seat_id),
                expires_at=_from_ms(now_ms + ttl_ms),
                held_by_me=holder is not None and value == holder,
            )
            for seat_id, (value, ttl_ms) in holders.items()
        ]
        return HeldSeatListResponse(showtime_id=showtime_id, seats=seats)

    async def get_holders(self, showtime_id: UUID, seat_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        """Map each seat id to its current holder, or None when not held."""
        client = self.cache.require_client()
        seat_ids = list(seat_ids)
        try:
            async with client.pipeline(transaction=False) as pipe:
                for seat_id in seat_ids:
                    pipe.get(CacheKeyBuilder.seat_hold(str(showtime_id), seat_id))
                values = await pipe.execute()
        except RedisError as e:
            raise CacheServiceError(f"Failed to read holds: {e}")
        return dict(zip(seat_ids, values))

    async def complete_holds(self, showtime_id: UUID, seat_ids: Iterable[str], holder: str) -> None:
        """Drop the caller's holds on seats that were just booked and announce them as booked."""
        for seat_id in seat_ids:
            try:
                await self.cache.release_hold(str(showtime_id), seat_id, holder)
            except CacheServiceError as e:
                # The booked row already wins over the hold; expiry removes the key
                logger.warning("Failed to clear hold on seat %s after booking: %s", seat_id, e)
            await self.publisher.publish(showtime_id, UUID(seat_id), SeatEventStatus.BOOKED)

    async def is_booked(self, showtime_id: UUID, seat_id: UUID) -> bool:
        result = await self.db.execute(
            select(BookingSeat.id).where(
                BookingSeat.showtime_id == showtime_id,
                BookingSeat.seat_id == seat_id,
            )
        )
        return result.first() is not None

    async def sweep_expired_holds(self, now_ms: Optional[int] = None) -> int:
        """
        Remove index entries of holds whose key already expired and announce the release.

        Returns:
            Number of expired holds announced
        """
        client = self.cache.require_client()
        lock = DistributedLock(self.cache, CacheKeyBuilder.hold_sweep_lock(), timeout=CacheTTL.LOCK_TIMEOUT)
        if not await lock.acquire(blocking=False):
            logger.debug("Hold sweep already running elsewhere")
            return 0

        swept = 0
        try:
            cutoff = now_ms if now_ms is not None else _now_ms()
            members = await client.zrangebyscore(CacheKeyBuilder.hold_expiry_index(), "-inf", cutoff)

            for member in members:
                showtime_part, _, seat_part = member.partition(":")
                # Only removed while no hold key exists; a re-held seat keeps its entries
                _, unindexed = await self.cache.release_hold(showtime_part, seat_part)
                if not unindexed:
                    continue

                await self.publisher.publish(UUID(showtime_part), UUID(seat_part), SeatEventStatus.RELEASED)
                swept += 1
        except RedisError as e:
            raise CacheServiceError(f"Failed to sweep holds: {e}")
        finally:
            await lock.release()

        if swept:
            logger.info("Released %d expired seat hold(s)", swept)
        return swept

    async def _read_holds(self, showtime_id: UUID, seat_ids: List[str]) -> Dict[str, tuple]:
        client = self.cache.client
        async with client.pipeline(transaction=False) as pipe:
            for seat_id in seat_ids:
                key = CacheKeyBuilder.seat_hold(str(showtime_id), seat_id)
                pipe.get(key)
                pipe.pttl(key)
            results = await pipe.execute()

        holds = {}
        for index, seat_id in enumerate(seat_ids):
            value, ttl_ms = results[2 * index], results[2 * index + 1]
            if value is None or ttl_ms is None or ttl_ms < 0:
                continue
            holds[seat_id] = (value, ttl_ms)
        return holds

    async def _index_hold(self, showtime_id: UUID, seat_id: UUID, expiry_ms: int) -> None:
        client = self.cache.require_client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.zadd(CacheKeyBuilder.showtime_holds(str(showtime_id)), {str(seat_id): expiry_ms})
                pipe.zadd(CacheKeyBuilder.hold_expiry_index(), {f"{showtime_id}:{seat_id}": expiry_ms})
                await pipe.execute()
        except RedisError as e:
            raise CacheServiceError(f"Failed to index hold: {e}")

