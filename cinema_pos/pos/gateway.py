"""
Booking API gateway used by the point-of-sale terminal.

``BookingGateway`` is the contract the POS flow depends on;
``HttpBookingGateway`` talks to the seat reservation service over HTTP.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import get_settings
from ..models.booking import BookingType, PaymentMethod
from ..utils.exceptions import (
    AuthenticationError,
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    PaymentServiceError,
    SeatAlreadyBookedError,
    SeatConflictError,
    StaleSelectionError,
    TransientNetworkError,
    ValidationError,
)
from ..utils.retry import RetryConfig, retry_async
from .aggregator import HeldSeat
from .catalog import Room, Showtime, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HoldAck:
    """Acknowledged seat hold."""
    seat_id: str
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class FoodDrinkItem:
    id: str
    name: str
    price: Decimal


@dataclass(frozen=True)
class BookingRequest:
    """Payload of a finalize call."""
    showtime_id: str
    seat_ids: Tuple[str, ...]
    food_drinks: Tuple[Tuple[str, int], ...] = ()
    type: BookingType = BookingType.OFFLINE
    payment_method: PaymentMethod = PaymentMethod.PAY_ON_PICKUP
    user_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "type": self.type.value,
            "showtime_id": self.showtime_id,
            "seat_ids": list(self.seat_ids),
            "food_drinks": [
                {"food_drink_id": food_drink_id, "quantity": quantity}
                for food_drink_id, quantity in self.food_drinks
            ],
            "payment_method": self.payment_method.value,
        }
        if self.user_id:
            payload["user_id"] = self.user_id
        return payload


@dataclass(frozen=True)
class BookingResult:
    id: str
    showtime_id: str
    seat_ids: Tuple[str, ...]
    total_price: Decimal
    status: str
    payment_method: PaymentMethod = PaymentMethod.PAY_ON_PICKUP

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "BookingResult":
        return cls(
            id=str(data["id"]),
            showtime_id=str(data["showtime_id"]),
            seat_ids=tuple(str(seat_id) for seat_id in data.get("seat_ids", [])),
            total_price=to_decimal(data.get("total_price")),
            status=data.get("status", "pending"),
            payment_method=PaymentMethod(data.get("payment_method", PaymentMethod.PAY_ON_PICKUP.value)),
        )


@dataclass(frozen=True)
class CheckoutResult:
    """Prepaid checkout: where to send the customer and how to correlate the payment."""
    url: str
    payment_id: str
    booking_id: str


class BookingGateway(ABC):
    """Operations the POS flow needs from the reservation backend."""

    @abstractmethod
    async def get_room(self, room_id: str) -> Room:
        ...

    @abstractmethod
    async def get_showtime(self, showtime_id: str) -> Showtime:
        ...

    @abstractmethod
    async def get_booked_seats(self, showtime_id: str) -> List[str]:
        """Return the ids of permanently booked seats."""

    @abstractmethod
    async def get_held_seats(self, showtime_id: str) -> List[HeldSeat]:
        ...

    @abstractmethod
    async def hold_seat(self, showtime_id: str, seat_id: str) -> HoldAck:
        """Hold a seat. Raises SeatConflictError when held or booked by someone else."""

    @abstractmethod
    async def release_seat(self, showtime_id: str, seat_id: str) -> None:
        """Release a seat. Succeeds when the hold is already gone."""

    @abstractmethod
    async def create_booking(self, request: BookingRequest) -> BookingResult:
        """Create a booking. Raises StaleSelectionError when a hold is no longer valid."""

    @abstractmethod
    async def checkout(self, amount: Decimal, booking_id: str) -> CheckoutResult:
        ...

    @abstractmethod
    async def get_food_drinks(self) -> List[FoodDrinkItem]:
        ...


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    """Extract ``{"error_code", "message", "details"}`` from an error response."""
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text}

    if isinstance(data, dict):
        if isinstance(data.get("detail"), dict):
            return data["detail"]
        if isinstance(data.get("error"), dict):
            error = data["error"]
            return {
                "error_code": error.get("code"),
                "message": error.get("message"),
                "details": error.get("details") or {},
            }
        if "detail" in data:
            return {"message": str(data["detail"])}
    return {"message": str(data)}


class HttpBookingGateway(BookingGateway):
    """BookingGateway over the seat reservation service's REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.token = token or settings.api_token
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.request_timeout_seconds,
        )
        self.retry_config = retry_config or RetryConfig(
            max_attempts=settings.max_retry_attempts,
            base_delay=0.2,
            max_delay=2.0,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.client.request(method, f"/api/v1{path}", json=json, headers=self._headers())
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} {path} timed out: {e}")
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}")

        if response.is_success:
            if not response.content:
                return None
            return response.json()

        self._raise_for_status(method, path, response)

    def _raise_for_status(self, method: str, path: str, response: httpx.Response) -> None:
        body = _error_body(response)
        message = body.get("message") or f"{method} {path} returned {response.status_code}"
        details = body.get("details") or {}
        error_code = body.get("error_code")
        status = response.status_code

        if status == 409:
            if error_code == ErrorCode.SEAT_HOLD_EXPIRED.value:
                raise StaleSelectionError([str(s) for s in details.get("seat_ids", [])], message=message)
            seat_id = str(details.get("seat_id", ""))
            if error_code == ErrorCode.SEAT_ALREADY_BOOKED.value:
                raise SeatAlreadyBookedError(seat_id)
            raise SeatConflictError(seat_id, current_status=details.get("current_status", "held"))
        if status == 404:
            raise NotFoundError(message, resource_type=details.get("resource_type"), resource_id=details.get("resource_id"))
        if status in (401, 403):
            raise AuthenticationError(message)
        if status in (400, 422):
            raise ValidationError(message, details=details)
        if status >= 500 or status == 429:
            raise TransientNetworkError(message, status_code=status)
        raise ExternalServiceError("booking-api", message, status_code=status)

    async def _get(self, path: str) -> Any:
        """Idempotent read, retried on transient failures."""
        return await retry_async(
            self._request,
            self.retry_config,
            "GET",
            path,
            retryable_exceptions=(TransientNetworkError,),
            label=f"GET {path}",
        )

    async def get_room(self, room_id: str) -> Room:
        return Room.from_payload(await self._get(f"/rooms/{room_id}"))

    async def get_showtime(self, showtime_id: str) -> Showtime:
        return Showtime.from_payload(await self._get(f"/showtimes/{showtime_id}"))

    async def get_booked_seats(self, showtime_id: str) -> List[str]:
        data = await self._get(f"/bookings/showtimes/{showtime_id}/booked-seats")
        return [str(item["seat_id"]) for item in data.get("seats", [])]

    async def get_held_seats(self, showtime_id: str) -> List[HeldSeat]:
        data = await self._get(f"/rooms/showtimes/{showtime_id}/held-seats")
        return [HeldSeat.from_payload(item) for item in data.get("seats", [])]

    async def hold_seat(self, showtime_id: str, seat_id: str) -> HoldAck:
        data = await self._request("POST", "/rooms/hold-seat", json={"showtime_id": showtime_id, "seat_id": seat_id})
        expires_at = data.get("expires_at") if data else None
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        return HoldAck(seat_id=seat_id, expires_at=expires_at)

    async def release_seat(self, showtime_id: str, seat_id: str) -> None:
        await self._request("POST", "/rooms/release-seat", json={"showtime_id": showtime_id, "seat_id": seat_id})

    async def create_booking(self, request: BookingRequest) -> BookingResult:
        data = await self._request("POST", "/bookings", json=request.to_payload())
        return BookingResult.from_payload(data)

    async def checkout(self, amount: Decimal, booking_id: str) -> CheckoutResult:
        try:
            data = await self._request(
                "POST", "/payments/checkout", json={"amount": str(amount), "booking_id": booking_id}
            )
        except ExternalServiceError as e:
            raise PaymentServiceError(e.message, status_code=e.status_code)
        return CheckoutResult(
            url=data["url"],
            payment_id=str(data["payment_id"]),
            booking_id=str(data["booking_id"]),
        )

    async def get_food_drinks(self) -> List[FoodDrinkItem]:
        data = await self._get("/food-drinks")
        return [
            FoodDrinkItem(id=str(item["id"]), name=item["name"], price=to_decimal(item["price"]))
            for item in data.get("items", [])
        ]
