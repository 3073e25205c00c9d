"""
Showtime API endpoints, including the live seat event stream.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import get_cache
from ..config import get_settings
from ..database import get_db
from ..middleware.error_handler import status_code_for
from ..schemas.catalog import ShowtimeResponse
from ..services.catalog_service import CatalogService
from ..services.seat_events import seat_event_stream
from ..utils.dependencies import Operator, get_current_operator
from ..utils.exceptions import CinemaPosError

router = APIRouter(prefix="/showtimes", tags=["showtimes"])


@router.get("/{showtime_id}", response_model=ShowtimeResponse)
async def get_showtime(
    showtime_id: UUID,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """Get a showtime with its room and base price."""
    try:
        return await CatalogService(db).get_showtime_response(showtime_id)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())


@router.get("/{showtime_id}/seat-events")
async def stream_seat_events(
    showtime_id: UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Stream seat-update events of a showtime as Server-Sent Events.

    Each event carries a per-showtime sequence number as its id. Clients
    re-fetch seat state on every (re)connect, events only say what changed.
    """
    try:
        await CatalogService(db).get_showtime(showtime_id)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())

    stream = seat_event_stream(
        showtime_id,
        cache=get_cache(),
        keepalive_seconds=get_settings().sse_keepalive_seconds,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
