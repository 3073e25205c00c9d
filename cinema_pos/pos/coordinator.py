"""
Hold/release coordination for the point-of-sale terminal.

Seats join the selection only after every hold of their unit was
acknowledged (confirm-then-select). Couple pairs are held and released as a
whole; a half that was held while the other half failed is released again.
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from ..utils.exceptions import CinemaPosError, SeatAlreadyBookedError, SeatConflictError
from .aggregator import DisplayState, SeatStateAggregator
from .catalog import Seat, SeatCatalog, SeatPosition
from .selection import Selection

if TYPE_CHECKING:
    from .gateway import BookingGateway

logger = logging.getLogger(__name__)


class ClickOutcome(str, enum.Enum):
    """Result of a click on a seat position."""
    HELD = "held"
    RELEASED = "released"
    CONFLICT = "conflict"
    REJECTED = "rejected"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


@dataclass(frozen=True)
class ClickResult:
    outcome: ClickOutcome
    label: str
    message: Optional[str] = None
    seat_ids: Tuple[str, ...] = ()

    @property
    def changed_selection(self) -> bool:
        return self.outcome in (ClickOutcome.HELD, ClickOutcome.RELEASED)


class HoldReleaseCoordinator:
    """Issues hold and release calls and keeps the selection consistent with them."""

    # How long a release issued by this terminal is remembered
    OWN_RELEASE_WINDOW_SECONDS = 30.0

    def __init__(
        self,
        gateway: "BookingGateway",
        catalog: SeatCatalog,
        aggregator: SeatStateAggregator,
        selection: Selection,
        showtime_id: str,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.aggregator = aggregator
        self.selection = selection
        self.showtime_id = showtime_id
        self._in_flight: Set[str] = set()
        self._own_releases: Dict[str, float] = {}
        self.closed = False

    def is_busy(self, seat_ids: Iterable[str]) -> bool:
        return any(seat_id in self._in_flight for seat_id in seat_ids)

    async def request_hold(self, seat: Seat) -> Tuple[Seat, ...]:
        """
        Hold a seat, or both halves of its couple pair.

        Returns:
            The seats added to the selection; empty when the coordinator was closed
            while the hold was in flight (the hold is released again)

        Raises:
            SeatConflictError: If any seat of the unit is held or booked by someone else
            TransientNetworkError: If the backing store could not be reached
        """
        unit = self.catalog.unit_for(seat)
        results = await asyncio.gather(
            *(self.gateway.hold_seat(self.showtime_id, half.id) for half in unit),
            return_exceptions=True,
        )

        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            succeeded = [half for half, result in zip(unit, results) if not isinstance(result, BaseException)]
            if succeeded:
                logger.info(
                    "Rolling back %d partial hold(s) for %s",
                    len(succeeded), self.catalog.label_for(seat)
                )
                await self._release_quietly(succeeded)

            conflicts = [failure for failure in failures if isinstance(failure, SeatConflictError)]
            raise conflicts[0] if conflicts else failures[0]

        if self.closed:
            logger.info(
                "Releasing late hold on %s, showtime %s was closed", self.catalog.label_for(seat), self.showtime_id
            )
            await self._release_quietly(unit)
            return ()

        self.selection.add(unit)
        self.aggregator.notify()
        logger.info("Held %s for showtime %s", self.catalog.label_for(seat), self.showtime_id)
        return unit

    async def request_release(self, seat: Seat) -> int:
        """
        Release a seat, or both halves of its couple pair.

        Safe on seats whose hold already expired. Failures are logged only,
        since the backing store expires holds on its own.

        Returns:
            Number of release calls issued
        """
        unit = self.catalog.unit_for(seat)
        self.selection.remove(half.id for half in unit)
        self._remember_releases(unit)
        self.aggregator.notify()
        return await self._release_quietly(unit)

    async def release_all(self) -> int:
        """Release every seat in the selection, one call per seat. Never raises."""
        seats = self.selection.clear_seats()
        if not seats:
            return 0

        self._remember_releases(seats)
        self.aggregator.notify()
        issued = await self._release_quietly(seats)
        logger.info("Released %d held seat(s) for showtime %s", issued, self.showtime_id)
        return issued

    async def close(self) -> int:
        """Stop accepting holds and release the selection. Holds still in flight release themselves."""
        self.closed = True
        return await self.release_all()

    async def click(self, position: SeatPosition) -> ClickResult:
        """Toggle a seat position. Every outcome, failures included, is a ClickResult."""
        label = position.label
        seat_ids = position.seat_ids

        if self.closed:
            return ClickResult(ClickOutcome.UNAVAILABLE, label, "Seat selection is closed")

        if not position.is_bookable:
            return ClickResult(ClickOutcome.UNAVAILABLE, label, f"Seat {label} cannot be booked")

        if self.is_busy(seat_ids):
            return ClickResult(ClickOutcome.BUSY, label, f"Seat {label} is being updated", seat_ids)

        snapshot = self.aggregator.snapshot(self.selection)
        state = self.aggregator.display_state(position, snapshot)

        if state == DisplayState.BOOKED:
            return ClickResult(ClickOutcome.REJECTED, label, f"Seat {label} is already booked", seat_ids)
        if state == DisplayState.HELD:
            return ClickResult(
                ClickOutcome.REJECTED, label, f"Seat {label} is being held by another operator", seat_ids
            )

        self._in_flight.update(seat_ids)
        try:
            if state == DisplayState.SELECTED:
                await self.request_release(position.seat)
                return ClickResult(ClickOutcome.RELEASED, label, None, seat_ids)

            if not await self.request_hold(position.seat):
                return ClickResult(ClickOutcome.UNAVAILABLE, label, "Seat selection is closed", seat_ids)
            return ClickResult(ClickOutcome.HELD, label, None, seat_ids)

        except SeatConflictError as e:
            logger.info("Hold conflict on %s: %s", label, e.message)
            await self._refresh_quietly(held_only=not isinstance(e, SeatAlreadyBookedError))
            return ClickResult(ClickOutcome.CONFLICT, label, f"Seat {label} is no longer available", seat_ids)
        except CinemaPosError as e:
            logger.warning("Hold request for %s failed: %s", label, e.message)
            return ClickResult(ClickOutcome.ERROR, label, e.message, seat_ids)
        finally:
            self._in_flight.difference_update(seat_ids)

    def was_released_by_me(self, seat_id: str) -> bool:
        """Whether this terminal released the seat recently."""
        self._forget_old_releases()
        return seat_id in self._own_releases

    def _remember_releases(self, seats: Sequence[Seat]) -> None:
        now = time.monotonic()
        for seat in seats:
            self._own_releases[seat.id] = now

    def _forget_old_releases(self) -> None:
        cutoff = time.monotonic() - self.OWN_RELEASE_WINDOW_SECONDS
        for seat_id, released_at in list(self._own_releases.items()):
            if released_at < cutoff:
                del self._own_releases[seat_id]

    async def _release_quietly(self, seats: Sequence[Seat]) -> int:
        results = await asyncio.gather(
            *(self.gateway.release_seat(self.showtime_id, seat.id) for seat in seats),
            return_exceptions=True,
        )
        for seat, result in zip(seats, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Failed to release seat %s for showtime %s: %s",
                    seat.seat_number, self.showtime_id, result
                )
        return len(seats)

    async def _refresh_quietly(self, held_only: bool) -> None:
        try:
            await self.aggregator.refresh(held_only=held_only)
        except CinemaPosError as e:
            logger.warning("Seat state refresh failed: %s", e.message)
