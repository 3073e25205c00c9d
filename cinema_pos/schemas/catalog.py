"""
Pydantic schemas for rooms, showtimes and food/drinks.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.cinema import SeatType
from ..models.showtime import FoodDrinkType


class SeatLayoutCell(BaseModel):
    """One cell of a room's layout grid."""
    row: str = Field(..., min_length=1, max_length=2, description="Row letter, A is the first row")
    col: int = Field(..., ge=1, description="1-based column")
    type: SeatType


class SeatResponse(BaseModel):
    """Schema for seat response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    seat_number: str
    seat_type: SeatType
    extra_price: Decimal = Field(..., ge=0)


class RoomResponse(BaseModel):
    """Room with its seats and layout grid."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    cinema_id: Optional[UUID] = None
    vip_price: Decimal
    couple_price: Decimal
    seats: List[SeatResponse]
    seat_layout: List[SeatLayoutCell]


class ShowtimeResponse(BaseModel):
    """Schema for showtime response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    room_id: UUID
    movie_id: Optional[UUID] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    price: Decimal = Field(..., ge=0, description="Base ticket price")


class FoodDrinkResponse(BaseModel):
    """Schema for food/drink response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    price: Decimal
    type: FoodDrinkType


class FoodDrinkListResponse(BaseModel):
    items: List[FoodDrinkResponse]
    total: int
