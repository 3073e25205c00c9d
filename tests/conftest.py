"""
Shared fixtures: the POS flow over an in-memory backend, and the service
layer over fakeredis and a throwaway SQLite database.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict
from uuid import UUID

import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis

from cinema_pos.cache import RedisCache
from cinema_pos.database import create_database_engine, create_session_factory, create_tables
from cinema_pos.models import FoodDrink, Room, Seat, SeatType, Showtime
from cinema_pos.models.showtime import FoodDrinkType
from cinema_pos.pos.aggregator import SeatStateAggregator
from cinema_pos.pos.catalog import build_catalog
from cinema_pos.pos.coordinator import HoldReleaseCoordinator
from cinema_pos.pos.finalizer import BookingFinalizer
from cinema_pos.pos.selection import Selection
from cinema_pos.utils.dependencies import Operator
from tests.fakes import LAYOUT, SEAT_ROWS, SHOWTIME_ID, FakeGateway, InMemoryStore


# POS flow over the in-memory backend

@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def gateway(store) -> FakeGateway:
    return FakeGateway(store, holder="terminal-1")


@pytest.fixture
def catalog(store):
    return build_catalog(store.room)


@pytest.fixture
def selection() -> Selection:
    return Selection()


@pytest.fixture
def aggregator(gateway, catalog) -> SeatStateAggregator:
    return SeatStateAggregator(gateway, SHOWTIME_ID, catalog)


@pytest.fixture
def coordinator(gateway, catalog, aggregator, selection) -> HoldReleaseCoordinator:
    return HoldReleaseCoordinator(gateway, catalog, aggregator, selection, SHOWTIME_ID)


@pytest.fixture
def finalizer(gateway, aggregator, selection, catalog, store) -> BookingFinalizer:
    food_prices = {item.id: item.price for item in store.food}
    return BookingFinalizer(gateway, aggregator, selection, catalog, store.showtime, food_prices)


# Service layer over fakeredis and SQLite

@dataclass
class SeededCinema:
    room_id: UUID
    showtime_id: UUID
    seats: Dict[str, UUID]
    popcorn_id: UUID
    cola_id: UUID


@pytest_asyncio.fixture
async def redis_client():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(redis_client) -> RedisCache:
    return RedisCache(client=redis_client)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'cinema_pos.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def cinema(session_factory) -> SeededCinema:
    """A room laid out like the in-memory one, a showtime and two food items."""
    async with session_factory() as session:
        room = Room(
            name="Room 1",
            seat_layout=LAYOUT,
            vip_price=Decimal("15000"),
            couple_price=Decimal("25000"),
        )
        room.seats = [
            Seat(seat_number=number, seat_type=SeatType(seat_type), extra_price=Decimal(extra))
            for number, seat_type, extra in SEAT_ROWS
        ]
        session.add(room)
        await session.flush()

        showtime = Showtime(
            room_id=room.id,
            start_time=datetime.now(timezone.utc) + timedelta(hours=2),
            price=Decimal("100000"),
        )
        popcorn = FoodDrink(name="Popcorn", price=Decimal("25000"), type=FoodDrinkType.SNACK)
        cola = FoodDrink(name="Cola", price=Decimal("30000"), type=FoodDrinkType.DRINK)
        session.add_all([showtime, popcorn, cola])
        await session.commit()

        return SeededCinema(
            room_id=room.id,
            showtime_id=showtime.id,
            seats={seat.seat_number: seat.id for seat in room.seats},
            popcorn_id=popcorn.id,
            cola_id=cola.id,
        )


@pytest.fixture
def operator() -> Operator:
    return Operator(user_id="cashier-1", holder="terminal-1")


@pytest.fixture
def other_operator() -> Operator:
    return Operator(user_id="cashier-2", holder="terminal-2")
