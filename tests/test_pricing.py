"""
Tests for the pricing engine.
"""

from decimal import Decimal

import pytest

from cinema_pos.pos.pricing import calculate_price
from cinema_pos.utils.exceptions import ValidationError

BASE_PRICE = Decimal("100000")
FOOD_PRICES = {"food-popcorn": Decimal("25000"), "food-cola": Decimal("30000")}


def seats(catalog, *numbers):
    return [catalog.seat_by_number(number) for number in numbers]


class TestCalculatePrice:
    def test_mixed_selection_totals_530000(self, catalog):
        """NORMAL + VIP (20,000) + couple pair (30,000 per seat) + 2 x food at 25,000."""
        price = calculate_price(
            seats(catalog, "A1", "A3", "B1", "B2"),
            catalog,
            BASE_PRICE,
            {"food-popcorn": 2},
            FOOD_PRICES,
        )

        assert [line.amount for line in price.seat_lines] == [
            Decimal("100000"),
            Decimal("120000"),
            Decimal("260000"),
        ]
        assert price.food_total == Decimal("50000")
        assert price.total == Decimal("530000")

    def test_couple_pair_is_one_line(self, catalog):
        price = calculate_price(seats(catalog, "B2", "B1"), catalog, BASE_PRICE)

        assert len(price.seat_lines) == 1
        line = price.seat_lines[0]
        assert line.label == "B1-2"
        assert line.quantity == 2
        assert line.unit_price == Decimal("130000")
        assert set(line.seat_ids) == {"seat-B1", "seat-B2"}

    def test_lone_couple_half_is_priced_as_one_seat(self, catalog):
        price = calculate_price(seats(catalog, "B1"), catalog, BASE_PRICE)

        assert price.total == Decimal("130000")
        assert price.seat_lines[0].quantity == 1

    def test_unpaired_couple_cell_uses_room_couple_price(self, catalog):
        price = calculate_price(seats(catalog, "B3"), catalog, BASE_PRICE)
        assert price.total == Decimal("125000")

    def test_zero_quantity_food_lines_are_skipped(self, catalog):
        price = calculate_price(
            seats(catalog, "A1"), catalog, BASE_PRICE, {"food-popcorn": 0, "food-cola": 1}, FOOD_PRICES
        )

        assert [line.food_drink_id for line in price.food_lines] == ["food-cola"]
        assert price.total == Decimal("130000")

    def test_empty_selection_costs_nothing(self, catalog):
        assert calculate_price([], catalog, BASE_PRICE).total == Decimal("0")

    def test_negative_quantity_is_rejected(self, catalog):
        with pytest.raises(ValidationError):
            calculate_price([], catalog, BASE_PRICE, {"food-popcorn": -1}, FOOD_PRICES)

    def test_negative_base_price_is_rejected(self, catalog):
        with pytest.raises(ValidationError):
            calculate_price(seats(catalog, "A1"), catalog, Decimal("-1"))

    def test_unpriced_food_item_is_rejected(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            calculate_price([], catalog, BASE_PRICE, {"food-nachos": 1}, FOOD_PRICES)
        assert exc_info.value.field_errors == {"food_drink_id": ["food-nachos"]}

    def test_string_prices_are_accepted(self, catalog):
        price = calculate_price(seats(catalog, "A1"), catalog, "100000.50")
        assert price.total == Decimal("100000.50")
