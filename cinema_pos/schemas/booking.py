"""
Pydantic schemas for booking and payment requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ..models.booking import BookingStatus, BookingType, PaymentMethod, PaymentStatus


class FoodDrinkLineItem(BaseModel):
    """Food/drink line of a booking request."""
    food_drink_id: UUID
    quantity: int = Field(..., ge=0, description="Quantity, 0 lines are ignored")


class BookingCreateRequest(BaseModel):
    """Schema for creating a new booking from held seats."""

    type: BookingType = Field(BookingType.OFFLINE, description="Where the booking was made")
    showtime_id: UUID = Field(..., description="Showtime to book")
    seat_ids: List[UUID] = Field(..., min_length=1, description="Seats held by the caller")
    food_drinks: List[FoodDrinkLineItem] = Field(default_factory=list)
    payment_method: PaymentMethod = PaymentMethod.PAY_ON_PICKUP
    user_id: Optional[str] = Field(
        None, min_length=1, max_length=64, description="Customer the booking is for; defaults to the operator"
    )

    @field_validator("seat_ids")
    @classmethod
    def validate_unique_seats(cls, v):
        """Reject a seat listed twice."""
        if len(set(v)) != len(v):
            raise ValueError("Seat IDs must be unique")
        return v


class BookingFoodDrinkResponse(BaseModel):
    food_drink_id: UUID
    quantity: int
    total_price: Decimal

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    """Schema for booking responses."""

    id: UUID
    user_id: str
    showtime_id: UUID
    type: BookingType
    status: BookingStatus
    payment_method: PaymentMethod
    total_price: Decimal
    seat_ids: List[UUID]
    food_drinks: List[BookingFoodDrinkResponse] = []
    created_at: datetime


class CheckoutRequest(BaseModel):
    """Schema for starting a prepaid checkout."""
    amount: Decimal = Field(..., ge=0, description="Amount to charge")
    booking_id: UUID


class CheckoutResponse(BaseModel):
    """Where to redirect the customer, and the payment id to reconcile later."""
    url: str
    payment_id: UUID
    booking_id: UUID


class PaymentStatusResponse(BaseModel):
    payment_id: Optional[UUID] = None
    booking_id: UUID
    status: Optional[PaymentStatus] = None
    booking_status: BookingStatus
    amount: Optional[Decimal] = None
