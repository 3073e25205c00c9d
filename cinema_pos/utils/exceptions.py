"""
Custom exceptions for the Cinema POS seat reservation service.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the platform."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Seat reservation errors
    SEAT_NOT_AVAILABLE = "SEAT_NOT_AVAILABLE"
    SEAT_ALREADY_BOOKED = "SEAT_ALREADY_BOOKED"
    SEAT_HOLD_EXPIRED = "SEAT_HOLD_EXPIRED"
    CATALOG_UNAVAILABLE = "CATALOG_UNAVAILABLE"
    EMPTY_SELECTION = "EMPTY_SELECTION"
    BOOKING_IN_PROGRESS = "BOOKING_IN_PROGRESS"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PAYMENT_SERVICE_ERROR = "PAYMENT_SERVICE_ERROR"
    CACHE_SERVICE_ERROR = "CACHE_SERVICE_ERROR"


class CinemaPosError(Exception):
    """Base exception class for the Cinema POS platform."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(CinemaPosError):
    """Exception raised for validation errors."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        details = kwargs.pop("details", None)
        if field_errors:
            details = {"field_errors": field_errors}
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(CinemaPosError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class RoomNotFoundError(NotFoundError):
    """Exception raised when a room is not found."""

    def __init__(self, room_id: str, **kwargs):
        super().__init__(
            f"Room {room_id} not found",
            resource_type="room",
            resource_id=room_id,
            **kwargs
        )


class ShowtimeNotFoundError(NotFoundError):
    """Exception raised when a showtime is not found."""

    def __init__(self, showtime_id: str, **kwargs):
        super().__init__(
            f"Showtime {showtime_id} not found",
            resource_type="showtime",
            resource_id=showtime_id,
            suggestions=["Check the showtime ID", "Pick another showtime"],
            **kwargs
        )


class SeatNotFoundError(NotFoundError):
    """Exception raised when a seat is not found."""

    def __init__(self, seat_id: str, **kwargs):
        super().__init__(
            f"Seat {seat_id} not found",
            resource_type="seat",
            resource_id=seat_id,
            **kwargs
        )


class BookingNotFoundError(NotFoundError):
    """Exception raised when a booking is not found."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} not found",
            resource_type="booking",
            resource_id=booking_id,
            **kwargs
        )


class FoodDrinkNotFoundError(NotFoundError):
    """Exception raised when a food or drink item is not found or unavailable."""

    def __init__(self, food_drink_id: str, **kwargs):
        super().__init__(
            f"Food/drink {food_drink_id} not found",
            resource_type="food_drink",
            resource_id=food_drink_id,
            **kwargs
        )


class AuthenticationError(CinemaPosError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Check the terminal token", "Login again"],
            **kwargs
        )


class BusinessLogicError(CinemaPosError):
    """Base exception for business logic violations."""
    pass


class SeatConflictError(BusinessLogicError):
    """Exception raised when a seat is held or booked by someone else."""

    def __init__(self, seat_id: str, current_status: str = "held", **kwargs):
        super().__init__(
            f"Seat {seat_id} is not available (status: {current_status})",
            error_code=kwargs.pop("error_code", ErrorCode.SEAT_NOT_AVAILABLE),
            details={"seat_id": seat_id, "current_status": current_status},
            suggestions=["Choose a different seat", "Refresh seat availability"],
            **kwargs
        )
        self.seat_id = seat_id
        self.current_status = current_status


class SeatAlreadyBookedError(SeatConflictError):
    """Exception raised when trying to hold or book an already booked seat."""

    def __init__(self, seat_id: str, **kwargs):
        super().__init__(
            seat_id,
            current_status="booked",
            error_code=ErrorCode.SEAT_ALREADY_BOOKED,
            **kwargs
        )


class StaleSelectionError(BusinessLogicError):
    """Exception raised when a finalize call refers to holds that are no longer valid."""

    def __init__(self, seat_ids: List[str], message: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"Holds are no longer valid for seats: {', '.join(seat_ids)}",
            error_code=ErrorCode.SEAT_HOLD_EXPIRED,
            details={"seat_ids": seat_ids},
            suggestions=["Refresh the seat map", "Select the seats again"],
            **kwargs
        )
        self.seat_ids = seat_ids


class CatalogLoadError(BusinessLogicError):
    """Exception raised when a room's seat layout cannot be loaded."""

    def __init__(self, room_id: Optional[str], reason: str, **kwargs):
        super().__init__(
            f"Seat layout for room {room_id} is unavailable: {reason}",
            error_code=ErrorCode.CATALOG_UNAVAILABLE,
            details={"room_id": room_id, "reason": reason},
            suggestions=["Check the room configuration", "Pick another showtime"],
            **kwargs
        )
        self.room_id = room_id


class EmptySelectionError(BusinessLogicError):
    """Exception raised when finalizing without any selected seat."""

    def __init__(self, message: str = "Please select a showtime and at least one seat", **kwargs):
        super().__init__(message, error_code=ErrorCode.EMPTY_SELECTION, **kwargs)


class BookingInProgressError(BusinessLogicError):
    """Exception raised when a finalize call is already in flight."""

    def __init__(self, **kwargs):
        super().__init__(
            "A booking is already being created for this selection",
            error_code=ErrorCode.BOOKING_IN_PROGRESS,
            retry_after=1,
            **kwargs
        )


class ExternalServiceError(CinemaPosError):
    """Exception raised for external service failures."""

    def __init__(self, service_name: str, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(
            f"{service_name} service error: {message}",
            error_code=kwargs.pop("error_code", ErrorCode.EXTERNAL_SERVICE_ERROR),
            details={"service_name": service_name, "status_code": status_code},
            suggestions=["Try again later", "Contact support if problem persists"],
            **kwargs
        )
        self.status_code = status_code


class TransientNetworkError(ExternalServiceError):
    """Exception raised when the booking API cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__("booking-api", message, status_code=status_code, **kwargs)


class PaymentServiceError(ExternalServiceError):
    """Exception raised for payment service failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            "payment",
            message,
            error_code=ErrorCode.PAYMENT_SERVICE_ERROR,
            **kwargs
        )


class CacheServiceError(ExternalServiceError):
    """Exception raised for cache service failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            "cache",
            message,
            error_code=ErrorCode.CACHE_SERVICE_ERROR,
            **kwargs
        )
