"""
Booking API endpoints.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..middleware.error_handler import status_code_for
from ..schemas.booking import BookingCreateRequest, BookingResponse
from ..schemas.common import ErrorResponse
from ..schemas.seat import BookedSeatListResponse
from ..services.booking_service import BookingService
from ..utils.dependencies import Operator, get_current_operator
from ..utils.exceptions import CinemaPosError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse, "description": "Holds expired or seats booked meanwhile"}},
)
async def create_booking(
    request: BookingCreateRequest,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a booking from seats the caller holds.

    Answers 409 with SEAT_HOLD_EXPIRED when any hold expired, moved to
    another terminal, or the seat was booked meanwhile.
    """
    try:
        return await BookingService(db).create_booking(request, operator)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())


@router.get("/showtimes/{showtime_id}/booked-seats", response_model=BookedSeatListResponse)
async def get_booked_seats(
    showtime_id: UUID,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """List booked seats of a showtime."""
    try:
        return await BookingService(db).get_booked_seats(showtime_id)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())
