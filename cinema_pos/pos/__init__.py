"""Point-of-sale seat reservation flow run by front-of-house terminals."""

from .aggregator import DisplayState, HeldSeat, SeatStateAggregator, SeatStateSnapshot
from .catalog import Room, Seat, SeatCatalog, SeatCatalogResolver, SeatPosition, Showtime, build_catalog
from .coordinator import ClickOutcome, ClickResult, HoldReleaseCoordinator
from .finalizer import BookingFinalizer, FinalizeResult
from .gateway import BookingGateway, BookingRequest, BookingResult, CheckoutResult, HttpBookingGateway
from .live_channel import LiveUpdateChannel, SeatUpdateEvent
from .pricing import PriceBreakdown, PriceLine, calculate_price
from .selection import Selection
from .session import PosBookingSession

__all__ = [
    "BookingFinalizer",
    "BookingGateway",
    "BookingRequest",
    "BookingResult",
    "CheckoutResult",
    "ClickOutcome",
    "ClickResult",
    "DisplayState",
    "FinalizeResult",
    "HeldSeat",
    "HoldReleaseCoordinator",
    "HttpBookingGateway",
    "LiveUpdateChannel",
    "PosBookingSession",
    "PriceBreakdown",
    "PriceLine",
    "Room",
    "Seat",
    "SeatCatalog",
    "SeatCatalogResolver",
    "SeatPosition",
    "SeatStateAggregator",
    "SeatStateSnapshot",
    "SeatUpdateEvent",
    "Selection",
    "Showtime",
    "build_catalog",
    "calculate_price",
]
