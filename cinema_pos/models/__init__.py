"""
Database models for the Cinema POS seat reservation service.
"""

from .base import Base
from .cinema import Room, Seat, SeatType
from .showtime import Showtime, FoodDrink, FoodDrinkType
from .booking import (
    Booking,
    BookingSeat,
    BookingFoodDrink,
    BookingStatus,
    BookingType,
    Payment,
    PaymentMethod,
    PaymentStatus,
)

__all__ = [
    "Base",
    "Room",
    "Seat",
    "SeatType",
    "Showtime",
    "FoodDrink",
    "FoodDrinkType",
    "Booking",
    "BookingSeat",
    "BookingFoodDrink",
    "BookingStatus",
    "BookingType",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
