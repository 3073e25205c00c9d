"""Business logic services for the Cinema POS seat reservation service."""

from .catalog_service import CatalogService
from .seat_hold_service import SeatHoldService
from .seat_events import SeatEventPublisher, seat_event_stream
from .booking_service import BookingService
from .payment_service import PaymentService

__all__ = [
    "CatalogService",
    "SeatHoldService",
    "SeatEventPublisher",
    "seat_event_stream",
    "BookingService",
    "PaymentService",
]
