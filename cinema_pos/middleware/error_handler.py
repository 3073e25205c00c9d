"""
Error handling middleware for the Cinema POS seat reservation service.
"""

import logging
import traceback
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLTimeoutError
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.exceptions import (
    BusinessLogicError,
    CinemaPosError,
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.SEAT_NOT_AVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_ALREADY_BOOKED: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_HOLD_EXPIRED: status.HTTP_409_CONFLICT,
    ErrorCode.CATALOG_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.EMPTY_SELECTION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BOOKING_IN_PROGRESS: status.HTTP_409_CONFLICT,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PAYMENT_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.CACHE_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: CinemaPosError) -> int:
    """Map a platform error to its HTTP status code."""
    return STATUS_MAP.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns uncaught exceptions into structured JSON error responses."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        error_id = str(uuid4())
        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc, error_id)

    def _handle_exception(self, request: Request, exc: Exception, error_id: str) -> JSONResponse:
        self._log_error(request, exc, error_id)

        if isinstance(exc, CinemaPosError):
            return self._handle_platform_error(exc, error_id)
        elif isinstance(exc, PydanticValidationError):
            return self._handle_validation_error(exc, error_id)
        elif isinstance(exc, IntegrityError):
            return self._respond(
                ValidationError(
                    "Data integrity constraint violation",
                    details={"error_type": type(exc.orig).__name__ if exc.orig else "IntegrityError"},
                ),
                error_id,
                status.HTTP_409_CONFLICT,
            )
        elif isinstance(exc, (OperationalError, SQLTimeoutError)):
            return self._respond(
                ExternalServiceError(
                    "database",
                    "Database service temporarily unavailable",
                    details={"error_type": type(exc).__name__},
                ),
                error_id,
                status.HTTP_503_SERVICE_UNAVAILABLE,
                headers={"Retry-After": "30"},
            )
        return self._handle_unexpected_error(exc, error_id)

    def _handle_platform_error(self, exc: CinemaPosError, error_id: str) -> JSONResponse:
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return self._respond(exc, error_id, status_code_for(exc), headers=headers)

    def _handle_validation_error(self, exc: PydanticValidationError, error_id: str) -> JSONResponse:
        field_errors = {}
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            field_errors.setdefault(field_path, []).append(error["msg"])

        return self._respond(
            ValidationError("Request validation failed", field_errors=field_errors),
            error_id,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    def _handle_unexpected_error(self, exc: Exception, error_id: str) -> JSONResponse:
        error = CinemaPosError(
            "An unexpected error occurred",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__} if self.debug else None,
        )
        response = self._respond(error, error_id, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if self.debug:
            response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": error.to_dict(),
                    "error_id": error_id,
                    "timestamp": _timestamp(),
                    "debug": {"exception": str(exc), "traceback": traceback.format_exc()},
                },
            )
        return response

    @staticmethod
    def _respond(error: CinemaPosError, error_id: str, status_code: int, headers=None) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": error.to_dict(), "error_id": error_id, "timestamp": _timestamp()},
            headers=headers or None,
        )

    def _log_error(self, request: Request, exc: Exception, error_id: str) -> None:
        request_info = {
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else None,
        }

        if isinstance(exc, (ValidationError, NotFoundError)):
            logger.warning(
                f"Client error [{error_id}]: {exc.message}",
                extra={"error_id": error_id, "error_code": exc.error_code.value, "request": request_info},
            )
        elif isinstance(exc, (ExternalServiceError, BusinessLogicError)):
            logger.error(
                f"Service error [{error_id}]: {exc.message}",
                extra={"error_id": error_id, "error_code": exc.error_code.value, "request": request_info},
            )
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {exc}",
                extra={
                    "error_id": error_id,
                    "error_type": type(exc).__name__,
                    "request": request_info,
                    "traceback": traceback.format_exc(),
                },
            )
