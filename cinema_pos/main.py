"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cinema_pos.config import settings
from cinema_pos.api import api_router
from cinema_pos.cache import get_cache
from cinema_pos.database import init_database, close_database
from cinema_pos.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from cinema_pos.utils.logging_config import setup_logging

# Set up logging
setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/cinema_pos.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info(f"Starting Cinema POS seat reservation service ({settings.environment})")
    await init_database()
    yield
    logger.info("Shutting down Cinema POS seat reservation service")
    await close_database()

app = FastAPI(
    title="Cinema POS Seat Reservation API",
    description="""
    ## Cinema POS Seat Reservation

    Seat selection and booking for box-office terminals.

    ### Seat holds

    * Clicking a seat holds it for the terminal for a limited time (10 minutes by default)
    * Couple seats are held and released as a pair
    * A seat held by another terminal or already booked answers `409`
    * Holds expire on their own; expired holds are announced to every viewer

    ### Live updates

    `GET /api/v1/showtimes/{id}/seat-events` streams `seat-update` Server-Sent
    Events. Clients re-fetch held and booked seats on every (re)connect.

    ### Authentication

    Terminals authenticate with a JWT bearer token. The token's session claim
    identifies the hold owner, so two terminals of the same operator never
    share holds.

    ### Error Handling

    ```json
    {
      "detail": {
        "error_code": "SEAT_NOT_AVAILABLE",
        "message": "Human readable error message",
        "details": {"seat_id": "..."},
        "suggestions": ["Choose a different seat"]
      }
    }
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "rooms",
            "description": "Room layouts and seat holds"
        },
        {
            "name": "showtimes",
            "description": "Showtimes and live seat events"
        },
        {
            "name": "bookings",
            "description": "Booking held seats"
        },
        {
            "name": "payments",
            "description": "Prepaid checkout"
        },
        {
            "name": "food-drinks",
            "description": "Concession items"
        },
        {
            "name": "health",
            "description": "System health endpoints"
        }
    ],
    lifespan=lifespan,
)

# 1. Logging middleware (first to capture all requests)
app.add_middleware(
    LoggingMiddleware,
    log_requests=settings.enable_request_logging,
    log_responses=settings.enable_request_logging,
)

# 2. Error handling middleware (catch all errors)
app.add_middleware(
    ErrorHandlerMiddleware,
    debug=settings.debug
)

# 3. CORS middleware
if settings.debug:
    cors_origins = ["*"]
    cors_allow_credentials = False  # Cannot use credentials with wildcard origins
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

# Include API routes
app.include_router(api_router)


@app.get("/", tags=["health"])
async def root():
    """Basic information about the API."""
    return {
        "message": "Cinema POS Seat Reservation API",
        "version": "1.0.0",
        "docs_url": "/docs",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Reports whether the Redis cache holding seat holds answers.
    """
    cache = get_cache()
    redis_ok = False
    if cache.client is not None:
        try:
            redis_ok = bool(await cache.client.ping())
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")

    return {
        "status": "healthy" if redis_ok else "degraded",
        "service": "cinema-pos",
        "redis": "up" if redis_ok else "down",
    }
