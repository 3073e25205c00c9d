"""
Pydantic schemas for seat holds and live seat events.
"""

import enum
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SeatEventStatus(str, enum.Enum):
    """Status carried by a seat-update event."""
    HELD = "held"
    BOOKED = "booked"
    RELEASED = "released"


class SeatHoldRequest(BaseModel):
    """Schema for seat hold and release requests."""
    showtime_id: UUID = Field(..., description="Showtime the seat is held for")
    seat_id: UUID = Field(..., description="Seat to hold or release")


class SeatHoldResponse(BaseModel):
    """Schema for seat hold response."""
    showtime_id: UUID
    seat_id: UUID
    expires_at: datetime
    hold_duration_seconds: int


class SeatReleaseResponse(BaseModel):
    """Schema for seat release response. Releasing an expired hold is not an error."""
    showtime_id: UUID
    seat_id: UUID
    released: bool


class HeldSeatResponse(BaseModel):
    seat_id: UUID
    expires_at: datetime
    held_by_me: bool = False


class HeldSeatListResponse(BaseModel):
    showtime_id: UUID
    seats: List[HeldSeatResponse]


class BookedSeatResponse(BaseModel):
    seat_id: UUID


class BookedSeatListResponse(BaseModel):
    showtime_id: UUID
    seats: List[BookedSeatResponse]


class SeatUpdateEvent(BaseModel):
    """Payload of a ``seat-update`` server-sent event."""
    showtime_id: UUID
    seat_id: UUID
    status: SeatEventStatus
    expires_at: Optional[datetime] = None
    sequence: int = Field(..., ge=1, description="Per-showtime publish order")
