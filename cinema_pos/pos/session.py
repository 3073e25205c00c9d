"""
Point-of-sale booking session: owns the seat flow of one terminal for one showtime.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Union, TYPE_CHECKING

from ..models.booking import BookingType, PaymentMethod
from ..schemas.seat import SeatEventStatus
from ..utils.exceptions import (
    CatalogLoadError,
    CinemaPosError,
    EmptySelectionError,
    NotFoundError,
)
from .aggregator import DisplayState, SeatStateAggregator, SeatStateSnapshot
from .catalog import SeatCatalog, SeatCatalogResolver, SeatPosition, Showtime
from .coordinator import ClickOutcome, ClickResult, HoldReleaseCoordinator
from .finalizer import BookingFinalizer, FinalizeResult
from .live_channel import LiveUpdateChannel, SeatUpdateEvent
from .pricing import PriceBreakdown
from .selection import Selection

if TYPE_CHECKING:
    from .gateway import BookingGateway

logger = logging.getLogger(__name__)


class PosBookingSession:
    """
    Booking flow of one terminal.

    ``open`` mounts the flow for a showtime (catalog, seat state, live
    updates); ``close`` unmounts it and releases every seat still held.
    """

    def __init__(self, gateway: "BookingGateway", channel: Optional[LiveUpdateChannel] = None):
        self.gateway = gateway
        self.channel = channel
        self.selection = Selection()
        self.showtime: Optional[Showtime] = None
        self.catalog: Optional[SeatCatalog] = None
        self.catalog_error: Optional[CatalogLoadError] = None
        self.aggregator: Optional[SeatStateAggregator] = None
        self.coordinator: Optional[HoldReleaseCoordinator] = None
        self.finalizer: Optional[BookingFinalizer] = None
        self.food_prices: Dict[str, Decimal] = {}
        self._listeners: List[Callable[[], None]] = []

    @property
    def is_open(self) -> bool:
        return self.showtime is not None

    @property
    def seat_interaction_enabled(self) -> bool:
        return self.coordinator is not None

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register a re-render callback, kept across showtime changes."""
        self._listeners.append(listener)
        if self.aggregator is not None:
            self.aggregator.add_listener(listener)

    async def open(self, showtime_id: str) -> SeatCatalog:
        """
        Mount the booking flow for a showtime.

        Raises:
            CatalogLoadError: If the showtime's room layout cannot be loaded;
                seat interaction stays disabled
        """
        if self.is_open:
            await self.close()

        self.catalog_error = None
        try:
            showtime = await self.gateway.get_showtime(showtime_id)
        except NotFoundError:
            self.catalog_error = CatalogLoadError(None, f"showtime {showtime_id} not found")
            raise self.catalog_error

        try:
            catalog = await SeatCatalogResolver(self.gateway).resolve(showtime)
        except CatalogLoadError as e:
            self.catalog_error = e
            logger.error("Seat selection disabled for showtime %s: %s", showtime_id, e.message)
            raise

        self.showtime = showtime
        self.catalog = catalog
        # A hold from the previous showtime that lands late must not reach this selection
        self.selection = Selection()
        self.food_prices = await self._load_food_prices()

        self.aggregator = SeatStateAggregator(self.gateway, showtime.id, catalog)
        for listener in self._listeners:
            self.aggregator.add_listener(listener)
        self.coordinator = HoldReleaseCoordinator(
            self.gateway, catalog, self.aggregator, self.selection, showtime.id
        )
        self.finalizer = BookingFinalizer(
            self.gateway, self.aggregator, self.selection, catalog, showtime, self.food_prices
        )

        if self.channel is not None:
            await self.channel.join(showtime.id, self._on_seat_event, self._resync)

        try:
            await self.aggregator.refresh()
        except CinemaPosError as e:
            logger.warning("Initial seat state load failed for showtime %s: %s", showtime.id, e.message)

        logger.info("Opened booking flow for showtime %s", showtime.id)
        return catalog

    async def close(self) -> int:
        """
        Unmount the flow: leave the live channel and release every held seat.

        Returns:
            Number of release calls issued
        """
        if not self.is_open:
            return 0

        showtime_id = self.showtime.id
        if self.channel is not None:
            await self.channel.leave(showtime_id)

        released = await self.coordinator.close() if self.coordinator else 0
        self.selection = Selection()
        self.showtime = None
        self.catalog = None
        self.aggregator = None
        self.coordinator = None
        self.finalizer = None
        logger.info("Closed booking flow for showtime %s (%d release calls)", showtime_id, released)
        return released

    async def change_showtime(self, showtime_id: str) -> SeatCatalog:
        await self.close()
        return await self.open(showtime_id)

    def snapshot(self) -> SeatStateSnapshot:
        if self.aggregator is None:
            raise EmptySelectionError("No showtime is open")
        return self.aggregator.snapshot(self.selection)

    def display_state(self, position: SeatPosition) -> DisplayState:
        if self.aggregator is None:
            return DisplayState.UNAVAILABLE
        return self.aggregator.display_state(position, self.snapshot())

    async def click(self, seat: Union[SeatPosition, str]) -> ClickResult:
        """Toggle a seat given its grid position or seat number."""
        label = seat if isinstance(seat, str) else seat.label
        if self.coordinator is None or self.catalog is None:
            return ClickResult(ClickOutcome.UNAVAILABLE, label, "Seat selection is disabled")

        position = self.catalog.position_for_number(seat) if isinstance(seat, str) else seat
        if position is None:
            return ClickResult(ClickOutcome.UNAVAILABLE, label, f"Seat {label} does not exist")
        return await self.coordinator.click(position)

    def set_food_quantity(self, food_drink_id: str, quantity: int) -> None:
        self.selection.set_food_quantity(food_drink_id, quantity)
        if self.aggregator is not None:
            self.aggregator.notify()

    def quote(self) -> PriceBreakdown:
        if self.finalizer is None:
            raise EmptySelectionError("No showtime is open")
        return self.finalizer.quote()

    async def finalize(
        self,
        payment_method: PaymentMethod = PaymentMethod.PAY_ON_PICKUP,
        booking_type: BookingType = BookingType.OFFLINE,
        customer_id: Optional[str] = None,
    ) -> FinalizeResult:
        if self.finalizer is None:
            raise EmptySelectionError()
        return await self.finalizer.finalize(
            payment_method=payment_method, booking_type=booking_type, customer_id=customer_id
        )

    async def _load_food_prices(self) -> Dict[str, Decimal]:
        try:
            items = await self.gateway.get_food_drinks()
        except CinemaPosError as e:
            logger.warning("Food and drink list unavailable: %s", e.message)
            return {}
        return {item.id: item.price for item in items}

    async def _on_seat_event(self, event: SeatUpdateEvent) -> None:
        """Reconcile local state with a seat update, always from a fresh fetch."""
        if self.showtime is None or event.showtime_id != self.showtime.id:
            return

        aggregator, coordinator = self.aggregator, self.coordinator
        booked = event.status == SeatEventStatus.BOOKED
        try:
            await aggregator.refresh(held_only=not booked)
        except CinemaPosError as e:
            logger.warning("Seat state refresh after %s event failed: %s", event.status.value, e.message)
            return

        if booked:
            await self._drop_booked_from_selection()
        elif event.status == SeatEventStatus.RELEASED:
            seat_id = event.seat_id
            if (
                seat_id in self.selection
                and not aggregator.is_held_by_me(seat_id)
                and not coordinator.was_released_by_me(seat_id)
            ):
                seat = self.catalog.seat_by_id(seat_id)
                logger.info("Hold on %s was lost, dropping it from the selection", self.catalog.label_for(seat))
                # Releases the partner half too, so a couple never stays half held
                await coordinator.request_release(seat)

    async def _resync(self) -> None:
        if self.aggregator is None:
            return
        try:
            await self.aggregator.refresh()
        except CinemaPosError as e:
            logger.warning("Seat state resync failed: %s", e.message)
            return
        await self._drop_booked_from_selection()

    async def _drop_booked_from_selection(self) -> None:
        lost = [seat_id for seat_id in self.selection.seat_ids if self.aggregator.is_booked(seat_id)]
        for seat_id in lost:
            seat = self.catalog.seat_by_id(seat_id)
            if seat is None or seat_id not in self.selection:
                continue
            # Frees a couple partner that is still held; the booked half is untouched
            await self.coordinator.request_release(seat)
        if lost:
            logger.info("Dropped %d seat(s) booked by another operator", len(lost))
