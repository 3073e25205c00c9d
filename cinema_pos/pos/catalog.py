"""
Seat catalog resolution for the point-of-sale terminal.

Turns a room payload (seat rows plus the layout grid) into a lookup the rest
of the POS flow works against: seats by id and by number, a 2-D grid of
positions, and couple pairs merged into single units such as ``"A5-6"``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..models.cinema import SeatType
from ..utils.exceptions import CatalogLoadError, ExternalServiceError, NotFoundError

if TYPE_CHECKING:
    from .gateway import BookingGateway

logger = logging.getLogger(__name__)

# Cell types an operator can hold and book
BOOKABLE_TYPES = frozenset({SeatType.NORMAL, SeatType.VIP, SeatType.COUPLE})


def to_decimal(value: Any) -> Decimal:
    """Convert an API number (int, float or string) to Decimal without float noise."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Seat:
    """A physical seat of a room."""
    id: str
    seat_number: str
    seat_type: SeatType
    extra_price: Decimal = Decimal("0")

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Seat":
        return cls(
            id=str(data["id"]),
            seat_number=data["seat_number"],
            seat_type=SeatType(data.get("seat_type", SeatType.NORMAL.value)),
            extra_price=to_decimal(data.get("extra_price")),
        )


@dataclass(frozen=True)
class LayoutCell:
    """One cell of the room layout grid, e.g. ``{"row": "A", "col": 1, "type": "VIP"}``."""
    row: str
    col: int
    type: SeatType

    @property
    def row_index(self) -> int:
        return ord(self.row.upper()) - ord("A")

    @property
    def seat_number(self) -> str:
        return f"{self.row.upper()}{self.col}"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "LayoutCell":
        return cls(row=str(data["row"]), col=int(data["col"]), type=SeatType(data["type"]))


@dataclass(frozen=True)
class Room:
    """Room payload as returned by ``get_room``."""
    id: str
    name: str
    seats: Tuple[Seat, ...]
    layout: Tuple[LayoutCell, ...]
    vip_price: Decimal = Decimal("0")
    couple_price: Decimal = Decimal("0")

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Room":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            seats=tuple(Seat.from_payload(item) for item in data.get("seats") or []),
            layout=tuple(LayoutCell.from_payload(item) for item in data.get("seat_layout") or []),
            vip_price=to_decimal(data.get("vip_price")),
            couple_price=to_decimal(data.get("couple_price")),
        )


@dataclass(frozen=True)
class Showtime:
    """A scheduled screening as seen by the terminal."""
    id: str
    room_id: str
    price: Decimal
    start_time: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Showtime":
        start_time = data.get("start_time")
        if isinstance(start_time, str):
            start_time = datetime.fromisoformat(start_time.replace("Z", "+00:00"))
        return cls(
            id=str(data["id"]),
            room_id=str(data["room_id"]),
            price=to_decimal(data.get("price")),
            start_time=start_time,
        )


@dataclass(frozen=True)
class SeatPosition:
    """A rendered grid position.

    ``seat_ids`` lists every seat of the holdable unit: one id for a regular
    seat, both halves for a couple pair. ``couple_with`` is the partner column.
    """
    row: int
    col: int
    row_label: str
    seat_type: SeatType
    seat_number: str
    label: str
    extra_price: Decimal = Decimal("0")
    seat: Optional[Seat] = None
    couple_with: Optional[int] = None
    seat_ids: Tuple[str, ...] = ()

    @property
    def is_couple_pair(self) -> bool:
        return self.couple_with is not None

    @property
    def is_bookable(self) -> bool:
        """Whether the operator can interact with this position at all."""
        if self.seat_type not in BOOKABLE_TYPES or self.seat is None:
            return False
        expected = 2 if self.is_couple_pair else 1
        return len(self.seat_ids) == expected


@dataclass
class SeatCatalog:
    """Normalized lookup over one room's seats and layout."""
    room: Room
    grid: List[List[SeatPosition]]
    seats_by_id: Dict[str, Seat] = field(default_factory=dict)
    seats_by_number: Dict[str, Seat] = field(default_factory=dict)
    positions_by_number: Dict[str, SeatPosition] = field(default_factory=dict)

    def seat_by_id(self, seat_id: str) -> Optional[Seat]:
        return self.seats_by_id.get(str(seat_id))

    def seat_by_number(self, seat_number: str) -> Optional[Seat]:
        return self.seats_by_number.get(seat_number)

    def position_for_number(self, seat_number: str) -> Optional[SeatPosition]:
        return self.positions_by_number.get(seat_number)

    def position_for_seat(self, seat: Seat) -> Optional[SeatPosition]:
        return self.positions_by_number.get(seat.seat_number)

    def unit_for(self, seat: Seat) -> Tuple[Seat, ...]:
        """Return every seat that is held, released and booked together with ``seat``."""
        position = self.position_for_seat(seat)
        if position is None or not position.is_couple_pair:
            return (seat,)
        halves = tuple(self.seats_by_id[seat_id] for seat_id in position.seat_ids if seat_id in self.seats_by_id)
        return halves or (seat,)

    def label_for(self, seat: Seat) -> str:
        position = self.position_for_seat(seat)
        return position.label if position else seat.seat_number

    def extra_price_for(self, seat: Seat) -> Decimal:
        """Surcharge of a seat: its own extra price, else the room's per-type price, else 0."""
        if seat.extra_price:
            return seat.extra_price
        if seat.seat_type == SeatType.VIP:
            return self.room.vip_price
        if seat.seat_type == SeatType.COUPLE:
            return self.room.couple_price
        return Decimal("0")

    def numbers_for_ids(self, seat_ids: Sequence[str]) -> List[str]:
        """Map seat ids to seat numbers, skipping ids this room does not know."""
        numbers = []
        for seat_id in seat_ids:
            seat = self.seats_by_id.get(str(seat_id))
            if seat is None:
                logger.debug("Ignoring unknown seat id %s for room %s", seat_id, self.room.id)
                continue
            numbers.append(seat.seat_number)
        return numbers

    def positions(self) -> Iterator[SeatPosition]:
        for row in self.grid:
            yield from row


def _pair_couples(cells: List[LayoutCell]) -> Dict[int, int]:
    """Pair adjacent COUPLE cells of one row, scanning left to right.

    Returns a column -> partner column map covering both halves of every pair.
    """
    partners: Dict[int, int] = {}
    for current, following in zip(cells, cells[1:]):
        if current.type != SeatType.COUPLE or following.type != SeatType.COUPLE:
            continue
        if current.col in partners or following.col in partners:
            continue
        if following.col != current.col + 1:
            continue
        partners[current.col] = following.col
        partners[following.col] = current.col
    return partners


def build_catalog(room: Optional[Room]) -> SeatCatalog:
    """
    Build the seat catalog of a room.

    Raises:
        CatalogLoadError: If the room, its seats or its layout are missing
    """
    if room is None:
        raise CatalogLoadError(None, "room not found")
    if not room.seats:
        raise CatalogLoadError(room.id, "room has no seats")
    if not room.layout:
        raise CatalogLoadError(room.id, "room has no seat layout")

    seats_by_number = {seat.seat_number: seat for seat in room.seats}
    seats_by_id = {seat.id: seat for seat in room.seats}
    catalog = SeatCatalog(room=room, grid=[], seats_by_id=seats_by_id, seats_by_number=seats_by_number)

    rows: Dict[int, List[LayoutCell]] = {}
    for cell in room.layout:
        rows.setdefault(cell.row_index, []).append(cell)

    for row_index in sorted(rows):
        cells = sorted(rows[row_index], key=lambda c: c.col)
        partners = _pair_couples(cells)
        grid_row: List[SeatPosition] = []

        for cell in cells:
            seat = seats_by_number.get(cell.seat_number)
            partner_col = partners.get(cell.col)
            row_label = cell.row.upper()

            if partner_col is not None:
                low, high = sorted((cell.col, partner_col))
                label = f"{row_label}{low}-{high}"
                unit_seats = [seats_by_number.get(f"{row_label}{low}"), seats_by_number.get(f"{row_label}{high}")]
                seat_ids = tuple(s.id for s in unit_seats if s is not None)
            else:
                label = cell.seat_number
                seat_ids = (seat.id,) if seat else ()

            if seat is None and cell.type in BOOKABLE_TYPES:
                logger.warning("Layout cell %s of room %s has no seat row", cell.seat_number, room.id)

            position = SeatPosition(
                row=row_index,
                col=cell.col,
                row_label=row_label,
                seat_type=cell.type,
                seat_number=cell.seat_number,
                label=label,
                extra_price=catalog.extra_price_for(seat) if seat else Decimal("0"),
                seat=seat,
                couple_with=partner_col,
                seat_ids=seat_ids,
            )
            grid_row.append(position)
            catalog.positions_by_number[cell.seat_number] = position

        catalog.grid.append(grid_row)

    return catalog


class SeatCatalogResolver:
    """Loads a showtime's room through the gateway and builds its catalog."""

    def __init__(self, gateway: "BookingGateway"):
        self.gateway = gateway

    async def resolve(self, showtime: Showtime) -> SeatCatalog:
        """
        Resolve the seat catalog for a showtime.

        Raises:
            CatalogLoadError: If the room cannot be loaded or has no usable layout
        """
        if not showtime.room_id:
            raise CatalogLoadError(None, "showtime has no room")

        try:
            room = await self.gateway.get_room(showtime.room_id)
        except NotFoundError:
            raise CatalogLoadError(showtime.room_id, "room not found")
        except ExternalServiceError as e:
            raise CatalogLoadError(showtime.room_id, f"room could not be loaded: {e.message}")

        catalog = build_catalog(room)
        logger.info(
            "Resolved seat catalog for showtime %s (room %s, %d seats)",
            showtime.id, catalog.room.id, len(catalog.seats_by_id)
        )
        return catalog
