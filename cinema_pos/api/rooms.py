"""
Room layout and seat hold API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..middleware.error_handler import status_code_for
from ..schemas.catalog import RoomResponse
from ..schemas.common import ErrorResponse
from ..schemas.seat import (
    HeldSeatListResponse,
    SeatHoldRequest,
    SeatHoldResponse,
    SeatReleaseResponse,
)
from ..services.catalog_service import CatalogService
from ..services.seat_hold_service import SeatHoldService
from ..utils.dependencies import Operator, get_current_operator
from ..utils.exceptions import CinemaPosError

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(
    room_id: UUID,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Get a room with its seats and layout grid.

    Args:
        room_id: Room UUID
        operator: Authenticated operator
        db: Database session

    Returns:
        Room details, seats and layout cells
    """
    try:
        return await CatalogService(db).get_room(room_id)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())


@router.get("/showtimes/{showtime_id}/held-seats", response_model=HeldSeatListResponse)
async def get_held_seats(
    showtime_id: UUID,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """List live holds of a showtime, flagging the caller's own."""
    try:
        service = SeatHoldService(db)
        await service.catalog.get_showtime(showtime_id)
        return await service.get_held_seats(showtime_id, holder=operator.holder)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())


@router.post(
    "/hold-seat",
    response_model=SeatHoldResponse,
    responses={409: {"model": ErrorResponse, "description": "Seat held by another terminal or booked"}},
)
async def hold_seat(
    request: SeatHoldRequest,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Hold a seat for the caller.

    Holding a seat the caller already holds extends the hold. A seat held
    by another terminal or already booked answers 409.
    """
    try:
        return await SeatHoldService(db).hold_seat(request.showtime_id, request.seat_id, operator.holder)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())


@router.post("/release-seat", response_model=SeatReleaseResponse, status_code=status.HTTP_200_OK)
async def release_seat(
    request: SeatHoldRequest,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """Release the caller's hold. Always succeeds; `released` tells whether anything changed."""
    try:
        return await SeatHoldService(db).release_seat(request.showtime_id, request.seat_id, operator.holder)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())
