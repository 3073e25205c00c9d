"""
Booking service: converts a holder's seat holds into a booking exactly once.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheKeyBuilder, CacheTTL, DistributedLock, RedisCache, get_cache
from ..models.booking import Booking, BookingFoodDrink, BookingSeat, BookingStatus
from ..pos.pricing import calculate_price
from ..schemas.booking import BookingCreateRequest, BookingFoodDrinkResponse, BookingResponse
from ..schemas.seat import BookedSeatListResponse, BookedSeatResponse
from ..utils.dependencies import Operator
from ..utils.exceptions import (
    BookingInProgressError,
    BookingNotFoundError,
    SeatNotFoundError,
    StaleSelectionError,
)
from ..utils.logging_config import log_business_event
from .catalog_service import CatalogService
from .seat_hold_service import SeatHoldService

logger = logging.getLogger(__name__)


class BookingService:
    """Service for creating bookings from held seats."""

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[RedisCache] = None,
        hold_service: Optional[SeatHoldService] = None,
    ):
        self.session = session
        self.cache = cache or get_cache()
        self.catalog = CatalogService(session, self.cache)
        self.holds = hold_service or SeatHoldService(session, self.cache)

    async def create_booking(self, request: BookingCreateRequest, operator: Operator) -> BookingResponse:
        """
        Create a booking for seats the operator holds.

        Every seat must still be held by the caller. Booked rows are inserted
        before the holds are dropped, and the unique (showtime, seat)
        constraint rejects a seat booked concurrently.

        Raises:
            BookingInProgressError: If the same holder is already booking this showtime
            StaleSelectionError: If a seat is no longer held by the caller or got booked
            FoodDrinkNotFoundError: If a food/drink item is unknown or unavailable
        """
        lock = DistributedLock(
            self.cache,
            CacheKeyBuilder.booking_lock(str(request.showtime_id), operator.holder),
            timeout=CacheTTL.LOCK_TIMEOUT,
        )
        if not await lock.acquire(blocking=False):
            raise BookingInProgressError()

        try:
            return await self._create_booking(request, operator)
        finally:
            await lock.release()

    async def _create_booking(self, request: BookingCreateRequest, operator: Operator) -> BookingResponse:
        showtime = await self.catalog.get_showtime(request.showtime_id)
        seat_ids = [str(seat_id) for seat_id in request.seat_ids]

        holders = await self.holds.get_holders(request.showtime_id, seat_ids)
        stale = [seat_id for seat_id in seat_ids if holders.get(seat_id) != operator.holder]
        if stale:
            logger.info("Rejecting booking for showtime %s: stale holds on %s", showtime.id, stale)
            raise StaleSelectionError(stale)

        catalog = await self.catalog.get_seat_catalog(showtime.room_id)
        seats = []
        for seat_id in seat_ids:
            seat = catalog.seat_by_id(seat_id)
            if seat is None:
                raise SeatNotFoundError(seat_id)
            seats.append(seat)

        food_quantities = self._merge_food_lines(request)
        food_prices = await self.catalog.get_food_prices(UUID(food_id) for food_id in food_quantities)
        price = calculate_price(seats, catalog, showtime.price, food_quantities, food_prices)

        booking = Booking(
            user_id=request.user_id or operator.user_id,
            showtime_id=showtime.id,
            type=request.type,
            status=BookingStatus.PENDING,
            payment_method=request.payment_method,
            total_price=price.total,
        )
        booking.booking_seats = [
            BookingSeat(showtime_id=showtime.id, seat_id=UUID(seat_id)) for seat_id in seat_ids
        ]
        booking.booking_food_drinks = [
            BookingFoodDrink(
                food_drink_id=UUID(line.food_drink_id),
                quantity=line.quantity,
                total_price=line.amount,
            )
            for line in price.food_lines
        ]

        self.session.add(booking)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            booked = await self._already_booked(showtime.id, seat_ids)
            logger.warning("Booking for showtime %s lost a race on %s: %s", showtime.id, booked, e.orig)
            raise StaleSelectionError(
                booked or seat_ids,
                message="Some seats were booked by another operator",
            )

        await self.session.refresh(booking)
        await self.holds.complete_holds(showtime.id, seat_ids, operator.holder)

        log_business_event(
            "booking_created",
            {
                "booking_id": str(booking.id),
                "customer_id": booking.user_id,
                "showtime_id": str(showtime.id),
                "seat_count": len(seat_ids),
                "total_price": str(price.total),
                "payment_method": request.payment_method.value,
            },
            user_id=operator.user_id,
        )
        return self.to_response(booking)

    async def get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.session.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def get_booked_seats(self, showtime_id: UUID) -> BookedSeatListResponse:
        """List permanently booked seats of a showtime."""
        await self.catalog.get_showtime(showtime_id)
        result = await self.session.execute(
            select(BookingSeat.seat_id).where(BookingSeat.showtime_id == showtime_id)
        )
        return BookedSeatListResponse(
            showtime_id=showtime_id,
            seats=[BookedSeatResponse(seat_id=seat_id) for seat_id in result.scalars().all()],
        )

    @staticmethod
    def to_response(booking: Booking) -> BookingResponse:
        return BookingResponse(
            id=booking.id,
            user_id=booking.user_id,
            showtime_id=booking.showtime_id,
            type=booking.type,
            status=booking.status,
            payment_method=booking.payment_method,
            total_price=booking.total_price,
            seat_ids=[seat.seat_id for seat in booking.booking_seats],
            food_drinks=[
                BookingFoodDrinkResponse.model_validate(line) for line in booking.booking_food_drinks
            ],
            created_at=booking.created_at,
        )

    @staticmethod
    def _merge_food_lines(request: BookingCreateRequest) -> Dict[str, int]:
        quantities: Dict[str, int] = OrderedDict()
        for line in request.food_drinks:
            if line.quantity == 0:
                continue
            key = str(line.food_drink_id)
            quantities[key] = quantities.get(key, 0) + line.quantity
        return quantities

    async def _already_booked(self, showtime_id: UUID, seat_ids: List[str]) -> List[str]:
        result = await self.session.execute(
            select(BookingSeat.seat_id).where(
                BookingSeat.showtime_id == showtime_id,
                BookingSeat.seat_id.in_([UUID(seat_id) for seat_id in seat_ids]),
            )
        )
        return [str(seat_id) for seat_id in result.scalars().all()]
