"""
Tests for seat holds in Redis: exclusivity, release semantics, events and expiry.
"""

import asyncio
import json
from uuid import uuid4

import pytest

from cinema_pos.cache import CacheKeyBuilder
from cinema_pos.models import Booking, BookingSeat
from cinema_pos.models.booking import BookingType, PaymentMethod
from cinema_pos.services.seat_hold_service import SeatHoldService
from cinema_pos.utils.exceptions import (
    SeatAlreadyBookedError,
    SeatConflictError,
    SeatNotFoundError,
    ShowtimeNotFoundError,
)


async def drain(pubsub):
    messages = []
    while True:
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if message is None:
            return messages
        messages.append(json.loads(message["data"]))


@pytest.fixture
def holds(db_session, cache) -> SeatHoldService:
    return SeatHoldService(db_session, cache=cache)


class TestHoldSeat:
    async def test_hold_is_stored_with_ttl(self, holds, cinema, redis_client):
        seat = cinema.seats["A1"]

        response = await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        key = CacheKeyBuilder.seat_hold(str(cinema.showtime_id), str(seat))
        assert await redis_client.get(key) == "terminal-1"
        assert 0 < await redis_client.pttl(key) <= 600_000
        assert response.hold_duration_seconds == 600
        assert response.seat_id == seat

    async def test_held_list_marks_own_holds(self, holds, cinema, session_factory, cache):
        await holds.hold_seat(cinema.showtime_id, cinema.seats["A1"], "terminal-1")
        async with session_factory() as other_session:
            await SeatHoldService(other_session, cache=cache).hold_seat(
                cinema.showtime_id, cinema.seats["A2"], "terminal-2"
            )

        held = await holds.get_held_seats(cinema.showtime_id, holder="terminal-1")

        by_seat = {item.seat_id: item.held_by_me for item in held.seats}
        assert by_seat == {cinema.seats["A1"]: True, cinema.seats["A2"]: False}
        assert all(item.expires_at is not None for item in held.seats)

    async def test_concurrent_holds_grant_exactly_one(self, cinema, session_factory, cache):
        async def attempt(holder):
            async with session_factory() as session:
                try:
                    await SeatHoldService(session, cache=cache).hold_seat(
                        cinema.showtime_id, cinema.seats["A1"], holder
                    )
                    return holder
                except SeatConflictError:
                    return None

        results = await asyncio.gather(*(attempt(f"terminal-{n}") for n in range(5)))

        assert len([result for result in results if result]) == 1

    async def test_holding_again_extends_own_hold(self, holds, cinema, redis_client):
        seat = cinema.seats["A1"]
        key = CacheKeyBuilder.seat_hold(str(cinema.showtime_id), str(seat))
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")
        await redis_client.pexpire(key, 1000)

        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        assert await redis_client.pttl(key) > 1000

    async def test_seat_held_by_another_terminal(self, holds, cinema):
        await holds.hold_seat(cinema.showtime_id, cinema.seats["A1"], "terminal-1")

        with pytest.raises(SeatConflictError):
            await holds.hold_seat(cinema.showtime_id, cinema.seats["A1"], "terminal-2")

    async def test_booked_seat_cannot_be_held(self, holds, cinema, db_session):
        booking = Booking(
            user_id="cashier-9",
            showtime_id=cinema.showtime_id,
            type=BookingType.OFFLINE,
            payment_method=PaymentMethod.PAY_ON_PICKUP,
            total_price=0,
        )
        booking.booking_seats = [BookingSeat(showtime_id=cinema.showtime_id, seat_id=cinema.seats["A3"])]
        db_session.add(booking)
        await db_session.commit()

        with pytest.raises(SeatAlreadyBookedError):
            await holds.hold_seat(cinema.showtime_id, cinema.seats["A3"], "terminal-1")

    async def test_unknown_seat(self, holds, cinema):
        with pytest.raises(SeatNotFoundError):
            await holds.hold_seat(cinema.showtime_id, uuid4(), "terminal-1")

    async def test_unknown_showtime(self, holds, cinema):
        with pytest.raises(ShowtimeNotFoundError):
            await holds.hold_seat(uuid4(), cinema.seats["A1"], "terminal-1")


class TestReleaseSeat:
    async def test_release_frees_the_seat(self, holds, cinema):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        response = await holds.release_seat(cinema.showtime_id, seat, "terminal-1")

        assert response.released
        assert (await holds.get_held_seats(cinema.showtime_id)).seats == []
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-2")

    async def test_release_is_idempotent(self, holds, cinema):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        await holds.release_seat(cinema.showtime_id, seat, "terminal-1")
        second = await holds.release_seat(cinema.showtime_id, seat, "terminal-1")

        assert not second.released

    async def test_foreign_release_changes_nothing(self, holds, cinema, redis_client):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        response = await holds.release_seat(cinema.showtime_id, seat, "terminal-2")

        assert not response.released
        key = CacheKeyBuilder.seat_hold(str(cinema.showtime_id), str(seat))
        assert await redis_client.get(key) == "terminal-1"


class TestSeatEvents:
    async def test_hold_and_release_are_published_in_order(self, holds, cinema, redis_client):
        pubsub = redis_client.pubsub()
        await pubsub.subscribe(CacheKeyBuilder.seat_events_channel(str(cinema.showtime_id)))
        seat = cinema.seats["A1"]

        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")
        await holds.release_seat(cinema.showtime_id, seat, "terminal-2")
        await holds.release_seat(cinema.showtime_id, seat, "terminal-1")

        events = await drain(pubsub)
        await pubsub.aclose()
        assert [(event["status"], event["sequence"]) for event in events] == [("held", 1), ("released", 2)]
        assert events[0]["seat_id"] == str(seat)
        assert events[0]["expires_at"] is not None

    async def test_complete_holds_announces_booked(self, holds, cinema, redis_client):
        pubsub = redis_client.pubsub()
        await pubsub.subscribe(CacheKeyBuilder.seat_events_channel(str(cinema.showtime_id)))
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        await holds.complete_holds(cinema.showtime_id, [str(seat)], "terminal-1")

        events = await drain(pubsub)
        await pubsub.aclose()
        assert [event["status"] for event in events] == ["held", "booked"]
        assert (await holds.get_held_seats(cinema.showtime_id)).seats == []


class TestSweep:
    async def test_expired_holds_are_announced_once(self, holds, cinema, redis_client):
        expired, live = cinema.seats["A1"], cinema.seats["A2"]
        await holds.hold_seat(cinema.showtime_id, expired, "terminal-1")
        await holds.hold_seat(cinema.showtime_id, live, "terminal-1")
        # Simulate the TTL running out on A1 only
        await redis_client.delete(CacheKeyBuilder.seat_hold(str(cinema.showtime_id), str(expired)))

        pubsub = redis_client.pubsub()
        await pubsub.subscribe(CacheKeyBuilder.seat_events_channel(str(cinema.showtime_id)))
        far_future = 2 ** 50

        assert await holds.sweep_expired_holds(now_ms=far_future) == 1
        assert await holds.sweep_expired_holds(now_ms=far_future) == 0

        events = await drain(pubsub)
        await pubsub.aclose()
        assert [(event["seat_id"], event["status"]) for event in events] == [(str(expired), "released")]
        held = await holds.get_held_seats(cinema.showtime_id)
        assert [item.seat_id for item in held.seats] == [live]

    async def test_expired_hold_is_not_listed(self, holds, cinema, redis_client):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")
        await redis_client.delete(CacheKeyBuilder.seat_hold(str(cinema.showtime_id), str(seat)))

        assert (await holds.get_held_seats(cinema.showtime_id)).seats == []

    async def test_sweep_skipped_while_another_sweep_runs(self, holds, redis_client):
        await redis_client.set(CacheKeyBuilder.hold_sweep_lock(), "other")

        assert await holds.sweep_expired_holds(now_ms=2 ** 50) == 0

    async def test_seat_held_again_during_sweep_stays_listed(
        self, holds, cinema, redis_client, session_factory, cache, monkeypatch
    ):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")
        await redis_client.delete(CacheKeyBuilder.seat_hold(str(cinema.showtime_id), str(seat)))
        pubsub = redis_client.pubsub()
        await pubsub.subscribe(CacheKeyBuilder.seat_events_channel(str(cinema.showtime_id)))

        read_index = redis_client.zrangebyscore

        async def read_then_rehold(*args, **kwargs):
            members = await read_index(*args, **kwargs)
            # Another terminal grabs the seat after the sweep listed the stale entry
            async with session_factory() as other_session:
                await SeatHoldService(other_session, cache=cache).hold_seat(cinema.showtime_id, seat, "terminal-2")
            return members

        monkeypatch.setattr(redis_client, "zrangebyscore", read_then_rehold)

        assert await holds.sweep_expired_holds(now_ms=2 ** 50) == 0

        events = await drain(pubsub)
        await pubsub.aclose()
        assert [event["status"] for event in events] == ["held"]
        held = await holds.get_held_seats(cinema.showtime_id, holder="terminal-2")
        assert [(item.seat_id, item.held_by_me) for item in held.seats] == [(seat, True)]


class TestReleaseHoldScript:
    async def test_foreign_live_hold_keeps_its_index_entries(self, holds, cinema, cache, redis_client):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-2")

        released, unindexed = await cache.release_hold(str(cinema.showtime_id), str(seat), "terminal-1")

        assert (released, unindexed) == (False, False)
        assert await redis_client.zscore(CacheKeyBuilder.showtime_holds(str(cinema.showtime_id)), str(seat))
        assert await redis_client.zscore(CacheKeyBuilder.hold_expiry_index(), f"{cinema.showtime_id}:{seat}")

    async def test_own_hold_is_deleted_and_unindexed_together(self, holds, cinema, cache, redis_client):
        seat = cinema.seats["A1"]
        await holds.hold_seat(cinema.showtime_id, seat, "terminal-1")

        assert await cache.release_hold(str(cinema.showtime_id), str(seat), "terminal-1") == (True, True)
        assert await redis_client.zcard(CacheKeyBuilder.showtime_holds(str(cinema.showtime_id))) == 0
        assert await redis_client.zcard(CacheKeyBuilder.hold_expiry_index()) == 0
