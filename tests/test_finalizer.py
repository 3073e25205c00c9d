"""
Tests for booking finalization.
"""

import asyncio
from decimal import Decimal

import pytest

from cinema_pos.models.booking import PaymentMethod
from cinema_pos.utils.exceptions import (
    BookingInProgressError,
    EmptySelectionError,
    PaymentServiceError,
    StaleSelectionError,
)
from tests.fakes import seat_id


async def select(coordinator, catalog, *numbers):
    for number in numbers:
        await coordinator.click(catalog.position_for_number(number))


class TestQuote:
    async def test_quote_follows_the_selection(self, finalizer, coordinator, catalog, selection):
        assert finalizer.quote().total == Decimal("0")

        await select(coordinator, catalog, "A1", "B1")
        selection.set_food_quantity("food-popcorn", 2)

        # 100000 + 2 * (100000 + 30000) + 2 * 25000
        assert finalizer.quote().total == Decimal("410000")


class TestFinalize:
    async def test_creates_booking_and_clears_selection(
        self, finalizer, coordinator, aggregator, catalog, selection, store
    ):
        await select(coordinator, catalog, "A1", "B2")
        selection.set_food_quantity("food-popcorn", 2)

        result = await finalizer.finalize()

        assert result.booking.id == "booking-1"
        assert result.price.total == Decimal("410000")
        assert not result.awaiting_payment
        assert selection.is_empty()
        assert selection.food_order == {}
        assert store.booked == {seat_id("A1"), seat_id("B1"), seat_id("B2")}
        assert store.holds == {}
        assert aggregator.is_booked(seat_id("B1"))

        request = store.bookings[0]
        assert set(request.seat_ids) == {seat_id("A1"), seat_id("B1"), seat_id("B2")}
        assert request.food_drinks == (("food-popcorn", 2),)
        assert request.user_id is None
        assert "user_id" not in request.to_payload()

    async def test_booking_for_a_chosen_customer(self, finalizer, coordinator, catalog, store):
        await select(coordinator, catalog, "A1")

        await finalizer.finalize(customer_id="customer-42")

        assert store.bookings[0].user_id == "customer-42"
        assert store.bookings[0].to_payload()["user_id"] == "customer-42"

    async def test_rejected_booking_keeps_selection(self, finalizer, coordinator, aggregator, catalog, selection, store):
        await select(coordinator, catalog, "A1", "A2")
        # The hold on A2 expired and another terminal took it
        store.holds[seat_id("A2")] = "terminal-2"

        with pytest.raises(StaleSelectionError) as exc_info:
            await finalizer.finalize()

        assert exc_info.value.seat_ids == [seat_id("A2")]
        assert selection.seat_ids == [seat_id("A1"), seat_id("A2")]
        assert store.bookings == []
        assert not aggregator.is_held_by_me(seat_id("A2"))

    async def test_second_finalize_while_in_flight_is_refused(self, finalizer, coordinator, catalog, store):
        await select(coordinator, catalog, "A1")
        store.booking_gate = asyncio.Event()

        first = asyncio.create_task(finalizer.finalize())
        await asyncio.sleep(0)
        assert finalizer.in_flight

        with pytest.raises(BookingInProgressError):
            await finalizer.finalize()

        store.booking_gate.set()
        await first
        assert len(store.bookings) == 1
        assert not finalizer.in_flight

    async def test_empty_selection(self, finalizer, gateway):
        with pytest.raises(EmptySelectionError):
            await finalizer.finalize()
        assert gateway.count("create_booking") == 0

    async def test_no_showtime(self, finalizer, coordinator, catalog):
        await select(coordinator, catalog, "A1")
        finalizer.showtime = None

        with pytest.raises(EmptySelectionError):
            await finalizer.finalize()


class TestPrepaid:
    async def test_checkout_is_started_after_booking(self, finalizer, coordinator, catalog, store):
        await select(coordinator, catalog, "A1")

        result = await finalizer.finalize(payment_method=PaymentMethod.PREPAID)

        assert result.awaiting_payment
        assert result.checkout.payment_id == "pay-booking-1"
        assert finalizer.pending_payments == {"pay-booking-1": "booking-1"}
        assert store.checkout_amounts == [Decimal("100000")]

    async def test_checkout_failure_keeps_the_booking(self, finalizer, coordinator, catalog, selection, store):
        await select(coordinator, catalog, "A1")
        store.checkout_error = PaymentServiceError("gateway down")

        result = await finalizer.finalize(payment_method=PaymentMethod.PREPAID)

        assert result.booking.id == "booking-1"
        assert not result.awaiting_payment
        assert "gateway down" in result.payment_error
        assert selection.is_empty()
        assert finalizer.pending_payments == {}
