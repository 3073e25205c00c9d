"""
Booking finalization: turns the held selection into a booking exactly once.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional, TYPE_CHECKING

from ..models.booking import BookingType, PaymentMethod
from ..utils.exceptions import (
    BookingInProgressError,
    CinemaPosError,
    EmptySelectionError,
    ExternalServiceError,
    SeatConflictError,
    StaleSelectionError,
)
from .aggregator import SeatStateAggregator
from .catalog import SeatCatalog, Showtime
from .gateway import BookingRequest, BookingResult, CheckoutResult
from .pricing import PriceBreakdown, calculate_price
from .selection import Selection

if TYPE_CHECKING:
    from .gateway import BookingGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizeResult:
    booking: BookingResult
    price: PriceBreakdown
    checkout: Optional[CheckoutResult] = None
    payment_error: Optional[str] = None

    @property
    def awaiting_payment(self) -> bool:
        return self.checkout is not None


class BookingFinalizer:
    """
    Submits the selection as a booking.

    The selection is cleared only when the booking was created. A rejected
    booking leaves selection and holds untouched and refreshes seat state so
    the operator can see which seats are still valid.
    """

    def __init__(
        self,
        gateway: "BookingGateway",
        aggregator: SeatStateAggregator,
        selection: Selection,
        catalog: SeatCatalog,
        showtime: Optional[Showtime],
        food_prices: Optional[Mapping[str, Decimal]] = None,
    ):
        self.gateway = gateway
        self.aggregator = aggregator
        self.selection = selection
        self.catalog = catalog
        self.showtime = showtime
        self.food_prices: Dict[str, Decimal] = dict(food_prices or {})
        # payment id -> booking id, reconciled once the payment provider reports back
        self.pending_payments: Dict[str, str] = {}
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def quote(self) -> PriceBreakdown:
        """Price the current selection. Recomputed on every call."""
        base_price = self.showtime.price if self.showtime else Decimal("0")
        return calculate_price(
            self.selection.seats,
            self.catalog,
            base_price,
            self.selection.food_order,
            self.food_prices,
        )

    async def finalize(
        self,
        payment_method: PaymentMethod = PaymentMethod.PAY_ON_PICKUP,
        booking_type: BookingType = BookingType.OFFLINE,
        customer_id: Optional[str] = None,
    ) -> FinalizeResult:
        """
        Create the booking for the current selection.

        The booking belongs to ``customer_id`` when a customer was picked at
        the counter, otherwise to the operator.

        Raises:
            BookingInProgressError: If a finalize call is already pending
            EmptySelectionError: If no showtime is open or no seat is selected
            StaleSelectionError: If the backing store rejected one of the holds
        """
        if self._in_flight:
            raise BookingInProgressError()
        if self.showtime is None or self.selection.is_empty():
            raise EmptySelectionError()

        self._in_flight = True
        try:
            price = self.quote()
            request = BookingRequest(
                showtime_id=self.showtime.id,
                seat_ids=tuple(self.selection.seat_ids),
                food_drinks=tuple(self.selection.food_order.items()),
                type=booking_type,
                payment_method=payment_method,
                user_id=customer_id,
            )

            try:
                booking = await self.gateway.create_booking(request)
            except (StaleSelectionError, SeatConflictError) as e:
                logger.warning("Booking rejected for showtime %s: %s", self.showtime.id, e.message)
                await self._refresh_quietly()
                if isinstance(e, StaleSelectionError):
                    raise
                raise StaleSelectionError([e.seat_id], message=e.message) from e

            self.selection.clear()
            self.aggregator.mark_booked(request.seat_ids)
            logger.info(
                "Booking %s created for showtime %s (%d seats, total %s)",
                booking.id, self.showtime.id, len(request.seat_ids), booking.total_price
            )

            if payment_method != PaymentMethod.PREPAID:
                return FinalizeResult(booking=booking, price=price)

            try:
                amount = booking.total_price or price.total
                checkout = await self.gateway.checkout(amount, booking.id)
            except ExternalServiceError as e:
                logger.error("Payment initiation failed for booking %s: %s", booking.id, e.message)
                return FinalizeResult(booking=booking, price=price, payment_error=e.message)

            self.pending_payments[checkout.payment_id] = booking.id
            return FinalizeResult(booking=booking, price=price, checkout=checkout)

        finally:
            self._in_flight = False

    async def _refresh_quietly(self) -> None:
        try:
            await self.aggregator.refresh()
        except CinemaPosError as e:
            logger.warning("Seat state refresh after rejected booking failed: %s", e.message)
