"""API endpoints for the Cinema POS seat reservation service."""

from fastapi import APIRouter
from .rooms import router as rooms_router
from .showtimes import router as showtimes_router
from .bookings import router as bookings_router
from .payments import router as payments_router
from .food_drinks import router as food_drinks_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# Include all routers
api_router.include_router(rooms_router)
api_router.include_router(showtimes_router)
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(food_drinks_router)

__all__ = ["api_router"]
