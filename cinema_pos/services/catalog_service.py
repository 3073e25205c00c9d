"""
Catalog lookups: rooms with their layout, showtimes and food/drinks.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..cache import CacheKeyBuilder, CacheTTL, RedisCache, get_cache
from ..models import FoodDrink, Room, Showtime
from ..pos.catalog import Room as RoomLayout, SeatCatalog, build_catalog
from ..schemas.catalog import FoodDrinkListResponse, FoodDrinkResponse, RoomResponse, ShowtimeResponse
from ..utils.exceptions import FoodDrinkNotFoundError, RoomNotFoundError, ShowtimeNotFoundError

logger = logging.getLogger(__name__)


class CatalogService:
    """Read-only access to catalog data needed by the seat flow."""

    def __init__(self, db: AsyncSession, cache: Optional[RedisCache] = None):
        """Initialize the catalog service with database session."""
        self.db = db
        self.cache = cache or get_cache()

    async def get_room(self, room_id: UUID) -> RoomResponse:
        """
        Get a room with its seats and layout grid.

        Raises:
            RoomNotFoundError: If the room does not exist or is inactive
        """
        cache_key = CacheKeyBuilder.room_layout(str(room_id))
        cached = await self.cache.get_json(cache_key)
        if cached:
            return RoomResponse.model_validate(cached)

        result = await self.db.execute(
            select(Room)
            .options(selectinload(Room.seats))
            .where(Room.id == room_id, Room.is_active.is_(True))
        )
        room = result.scalar_one_or_none()
        if room is None:
            raise RoomNotFoundError(str(room_id))

        response = RoomResponse.model_validate(room)
        await self.cache.set_json(cache_key, response.model_dump(mode="json"), ttl=CacheTTL.ROOM_LAYOUT)
        return response

    async def get_seat_catalog(self, room_id: UUID) -> SeatCatalog:
        """Build the same seat catalog the terminals resolve, for server-side pricing."""
        room = await self.get_room(room_id)
        return build_catalog(RoomLayout.from_payload(room.model_dump(mode="json")))

    async def get_showtime(self, showtime_id: UUID) -> Showtime:
        """
        Raises:
            ShowtimeNotFoundError: If the showtime does not exist or is inactive
        """
        showtime = await self.db.get(Showtime, showtime_id)
        if showtime is None or not showtime.is_active:
            raise ShowtimeNotFoundError(str(showtime_id))
        return showtime

    async def get_showtime_response(self, showtime_id: UUID) -> ShowtimeResponse:
        return ShowtimeResponse.model_validate(await self.get_showtime(showtime_id))

    async def list_food_drinks(self) -> FoodDrinkListResponse:
        result = await self.db.execute(
            select(FoodDrink)
            .where(FoodDrink.is_available.is_(True))
            .order_by(FoodDrink.type, FoodDrink.name)
        )
        items = [FoodDrinkResponse.model_validate(item) for item in result.scalars().all()]
        return FoodDrinkListResponse(items=items, total=len(items))

    async def get_food_prices(self, food_drink_ids: Iterable[UUID]) -> Dict[str, Decimal]:
        """
        Get unit prices of available food/drinks, keyed by string id.

        Raises:
            FoodDrinkNotFoundError: If an item is missing or unavailable
        """
        ids = set(food_drink_ids)
        if not ids:
            return {}

        result = await self.db.execute(
            select(FoodDrink).where(FoodDrink.id.in_(ids), FoodDrink.is_available.is_(True))
        )
        prices = {str(item.id): item.price for item in result.scalars().all()}

        missing = [food_id for food_id in ids if str(food_id) not in prices]
        if missing:
            raise FoodDrinkNotFoundError(str(missing[0]))
        return prices
