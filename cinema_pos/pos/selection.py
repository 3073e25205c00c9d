"""
Operator selection: acknowledged seat holds plus the food/drink order.
"""

from typing import Dict, Iterable, List

from ..utils.exceptions import ValidationError
from .catalog import Seat


class Selection:
    """Ordered set of seats this terminal holds, with the pending food order.

    Seats are only added once the backing store acknowledged their hold.
    """

    def __init__(self) -> None:
        self._seats: Dict[str, Seat] = {}
        self.food_order: Dict[str, int] = {}

    def __contains__(self, seat_id: object) -> bool:
        return seat_id in self._seats

    def __len__(self) -> int:
        return len(self._seats)

    @property
    def seats(self) -> List[Seat]:
        return list(self._seats.values())

    @property
    def seat_ids(self) -> List[str]:
        return list(self._seats)

    @property
    def seat_numbers(self) -> List[str]:
        return [seat.seat_number for seat in self._seats.values()]

    def is_empty(self) -> bool:
        return not self._seats

    def add(self, seats: Iterable[Seat]) -> None:
        for seat in seats:
            self._seats[seat.id] = seat

    def remove(self, seat_ids: Iterable[str]) -> List[Seat]:
        """Remove seats by id and return the ones that were selected."""
        removed = []
        for seat_id in seat_ids:
            seat = self._seats.pop(seat_id, None)
            if seat is not None:
                removed.append(seat)
        return removed

    def set_food_quantity(self, food_drink_id: str, quantity: int) -> None:
        """Set a food/drink line. Quantity 0 removes the line."""
        if quantity < 0:
            raise ValidationError(
                "Quantity must not be negative",
                field_errors={"quantity": ["must be greater than or equal to 0"]}
            )
        if quantity == 0:
            self.food_order.pop(food_drink_id, None)
        else:
            self.food_order[food_drink_id] = quantity

    def clear_seats(self) -> List[Seat]:
        seats = self.seats
        self._seats.clear()
        return seats

    def clear(self) -> None:
        self._seats.clear()
        self.food_order.clear()
