"""
Pricing engine shared by the terminal's summary panel and the booking service.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Sequence, Set, Tuple

from ..utils.exceptions import ValidationError
from .catalog import Seat, SeatCatalog, to_decimal


@dataclass(frozen=True)
class PriceLine:
    """One priced line: a seat, a couple pair or a food/drink item."""
    label: str
    unit_price: Decimal
    quantity: int
    amount: Decimal
    seat_ids: Tuple[str, ...] = ()
    food_drink_id: Optional[str] = None


@dataclass(frozen=True)
class PriceBreakdown:
    """Priced selection, line by line."""
    seat_lines: Tuple[PriceLine, ...]
    food_lines: Tuple[PriceLine, ...]

    @property
    def seats_total(self) -> Decimal:
        return sum((line.amount for line in self.seat_lines), Decimal("0"))

    @property
    def food_total(self) -> Decimal:
        return sum((line.amount for line in self.food_lines), Decimal("0"))

    @property
    def total(self) -> Decimal:
        return self.seats_total + self.food_total


def _non_negative(value, field_name: str) -> Decimal:
    amount = to_decimal(value)
    if amount < 0:
        raise ValidationError(
            f"{field_name} must not be negative",
            field_errors={field_name: ["must be greater than or equal to 0"]}
        )
    return amount


def calculate_price(
    seats: Sequence[Seat],
    catalog: SeatCatalog,
    base_price,
    food_items: Optional[Mapping[str, int]] = None,
    food_prices: Optional[Mapping[str, Decimal]] = None,
) -> PriceBreakdown:
    """
    Price a seat selection and food/drink order.

    A regular seat costs ``base + extra``. A couple pair whose two halves are
    both selected is one line of ``2 x (base + pair extra)``, the pair extra
    being the left half's resolved surcharge. Each food line costs
    ``unit price x quantity``; quantity 0 lines are skipped.

    Raises:
        ValidationError: On negative prices or quantities, or an unpriced food item
    """
    base = _non_negative(base_price, "base_price")
    food_items = food_items or {}
    food_prices = food_prices or {}

    selected_ids = {seat.id for seat in seats}
    consumed: Set[str] = set()
    seat_lines = []

    for seat in seats:
        if seat.id in consumed:
            continue

        unit = catalog.unit_for(seat)
        if len(unit) == 2 and all(half.id in selected_ids for half in unit):
            left = min(unit, key=lambda half: _column(catalog, half))
            unit_price = base + _non_negative(catalog.extra_price_for(left), "extra_price")
            seat_lines.append(PriceLine(
                label=catalog.label_for(seat),
                unit_price=unit_price,
                quantity=2,
                amount=unit_price * 2,
                seat_ids=tuple(half.id for half in unit),
            ))
            consumed.update(half.id for half in unit)
            continue

        unit_price = base + _non_negative(catalog.extra_price_for(seat), "extra_price")
        seat_lines.append(PriceLine(
            label=seat.seat_number,
            unit_price=unit_price,
            quantity=1,
            amount=unit_price,
            seat_ids=(seat.id,),
        ))
        consumed.add(seat.id)

    food_lines = []
    for food_drink_id, quantity in food_items.items():
        if quantity < 0:
            raise ValidationError(
                "Quantity must not be negative",
                field_errors={"quantity": [f"{food_drink_id}: must be greater than or equal to 0"]}
            )
        if quantity == 0:
            continue
        if food_drink_id not in food_prices:
            raise ValidationError(
                f"No price known for food/drink {food_drink_id}",
                field_errors={"food_drink_id": [food_drink_id]}
            )
        unit_price = _non_negative(food_prices[food_drink_id], "unit_price")
        food_lines.append(PriceLine(
            label=str(food_drink_id),
            unit_price=unit_price,
            quantity=quantity,
            amount=unit_price * quantity,
            food_drink_id=str(food_drink_id),
        ))

    return PriceBreakdown(seat_lines=tuple(seat_lines), food_lines=tuple(food_lines))


def _column(catalog: SeatCatalog, seat: Seat) -> int:
    position = catalog.position_for_seat(seat)
    return position.col if position else 0
