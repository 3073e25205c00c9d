"""
Seat state aggregation: booked, held and selected seats of one showtime.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set, TYPE_CHECKING

from .catalog import SeatCatalog, SeatPosition
from .selection import Selection

if TYPE_CHECKING:
    from .gateway import BookingGateway

logger = logging.getLogger(__name__)


class DisplayState(str, enum.Enum):
    """How a grid position is rendered."""
    AVAILABLE = "available"
    SELECTED = "selected"
    HELD = "held"
    BOOKED = "booked"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class HeldSeat:
    """A currently held seat as reported by the backing store."""
    seat_id: str
    expires_at: Optional[datetime] = None
    held_by_me: bool = False

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "HeldSeat":
        expires_at = data.get("expires_at")
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        return cls(
            seat_id=str(data["seat_id"]),
            expires_at=expires_at,
            held_by_me=bool(data.get("held_by_me", False)),
        )


@dataclass(frozen=True)
class SeatStateSnapshot:
    """Pairwise disjoint seat number sets consumed by rendering."""
    booked_numbers: FrozenSet[str]
    held_by_others_numbers: FrozenSet[str]
    selected_numbers: FrozenSet[str]


class SeatStateAggregator:
    """
    Combines the booked list, the held list and the local selection.

    Precedence is booked > selected > held by others, so a seat this terminal
    holds is always shown as selected even though the store reports it held.
    """

    def __init__(self, gateway: "BookingGateway", showtime_id: str, catalog: SeatCatalog):
        self.gateway = gateway
        self.showtime_id = showtime_id
        self.catalog = catalog
        self.booked_ids: Set[str] = set()
        self.held: Dict[str, HeldSeat] = {}
        self._listeners: List[Callable[[], None]] = []
        self._generation = 0
        self._held_generation = 0
        self._booked_generation = 0

    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self) -> None:
        """Tell every listener that the displayed state changed."""
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Seat state listener failed")

    async def refresh(self, held_only: bool = False) -> bool:
        """
        Re-fetch seat state from the backing store.

        Responses older than the last applied one are discarded, so two
        overlapping refreshes can never roll the state back.

        Returns:
            True if anything was applied
        """
        self._generation += 1
        generation = self._generation

        if held_only:
            held_payload = await self.gateway.get_held_seats(self.showtime_id)
            booked_payload = None
        else:
            held_payload, booked_payload = await asyncio.gather(
                self.gateway.get_held_seats(self.showtime_id),
                self.gateway.get_booked_seats(self.showtime_id),
            )

        applied = False
        if generation > self._held_generation:
            self._held_generation = generation
            self.held = {item.seat_id: item for item in held_payload}
            applied = True
        else:
            logger.debug("Discarding stale held list (generation %d)", generation)

        if booked_payload is not None:
            if generation > self._booked_generation:
                self._booked_generation = generation
                self.booked_ids = {str(seat_id) for seat_id in booked_payload}
                applied = True
            else:
                logger.debug("Discarding stale booked list (generation %d)", generation)

        if applied:
            self.notify()
        return applied

    def mark_booked(self, seat_ids: Iterable[str]) -> None:
        """Record seats this terminal just booked."""
        for seat_id in seat_ids:
            self.booked_ids.add(str(seat_id))
            self.held.pop(str(seat_id), None)
        self.notify()

    def is_booked(self, seat_id: str) -> bool:
        return seat_id in self.booked_ids

    def is_held_by_me(self, seat_id: str) -> bool:
        entry = self.held.get(seat_id)
        return bool(entry and entry.held_by_me)

    def snapshot(self, selection: Selection) -> SeatStateSnapshot:
        booked = set(self.catalog.numbers_for_ids(sorted(self.booked_ids)))
        selected = {number for number in selection.seat_numbers if number not in booked}
        held = set(self.catalog.numbers_for_ids(sorted(self.held)))
        held_by_others = held - booked - selected
        return SeatStateSnapshot(
            booked_numbers=frozenset(booked),
            held_by_others_numbers=frozenset(held_by_others),
            selected_numbers=frozenset(selected),
        )

    def display_state(self, position: SeatPosition, snapshot: SeatStateSnapshot) -> DisplayState:
        if not position.is_bookable:
            return DisplayState.UNAVAILABLE

        numbers = self.catalog.numbers_for_ids(position.seat_ids)
        if any(number in snapshot.booked_numbers for number in numbers):
            return DisplayState.BOOKED
        if any(number in snapshot.selected_numbers for number in numbers):
            return DisplayState.SELECTED
        if any(number in snapshot.held_by_others_numbers for number in numbers):
            return DisplayState.HELD
        return DisplayState.AVAILABLE
