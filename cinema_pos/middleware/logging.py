"""
Logging middleware for request/response tracking.
"""

import logging
import time
import contextvars
from typing import Dict, Optional
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Context variable for request ID
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='no-request-id')

SEAT_MUTATION_PATHS = frozenset({
    "/api/v1/rooms/hold-seat",
    "/api/v1/rooms/release-seat",
    "/api/v1/bookings",
    "/api/v1/payments/checkout",
})
QUIET_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    def __init__(
        self,
        app,
        log_requests: bool = True,
        log_responses: bool = True,
        sensitive_headers: Optional[list] = None
    ):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.sensitive_headers = sensitive_headers or [
            "authorization", "cookie", "x-api-key"
        ]

    async def dispatch(self, request: Request, call_next):
        """Log request and response with a per-request ID."""
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.time()

        if self.log_requests:
            self._log_request(request, request_id)

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            if self.log_responses:
                self._log_response(request, response, request_id, process_time)

            return response

        except Exception as exc:
            process_time = time.time() - start_time
            self._log_exception(request, exc, request_id, process_time)
            raise
        finally:
            request_id_var.reset(token)

    SLOW_REQUEST_SECONDS = 2.0

    def _log_request(self, request: Request, request_id: str):
        """Log incoming request details."""
        path = request.url.path
        request_info = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "query_params": dict(request.query_params),
            "client_ip": self._get_client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "headers": self._sanitize_headers(dict(request.headers)),
        }

        if path in QUIET_PATHS:
            logger.debug(f"{request.method} {path}", extra=request_info)
        elif path.endswith("/seat-events"):
            logger.info(f"Seat event stream opened: {path}", extra=request_info)
        elif path in SEAT_MUTATION_PATHS:
            logger.info(f"Seat request: {request.method} {path}", extra=request_info)
        else:
            logger.info(f"API request: {request.method} {path}", extra=request_info)

    def _log_response(self, request: Request, response: Response, request_id: str, process_time: float):
        """Log response status; 409s on seat requests are routine contention, not client errors."""
        path = request.url.path
        response_info = {
            "request_id": request_id,
            "status_code": response.status_code,
            "process_time": process_time,
            "response_size": response.headers.get("content-length"),
        }
        summary = f"{request.method} {path} -> {response.status_code} ({process_time:.4f}s)"

        if response.status_code < 400 or (response.status_code == 409 and path in SEAT_MUTATION_PATHS):
            level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
            logger.log(level, summary, extra=response_info)
        elif response.status_code < 500:
            logger.warning(summary, extra=response_info)
        else:
            logger.error(summary, extra=response_info)

        if process_time > self.SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {summary}",
                extra={**response_info, "slow_request": True, "threshold": self.SLOW_REQUEST_SECONDS},
            )

    def _log_exception(self, request: Request, exc: Exception, request_id: str, process_time: float):
        """Log exception details."""
        exception_info = {
            "request_id": request_id,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "process_time": process_time,
            "method": request.method,
            "url": str(request.url),
        }

        logger.error(f"Request exception: {type(exc).__name__}", extra=exception_info, exc_info=True)

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request."""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"

    def _sanitize_headers(self, headers: Dict[str, str]) -> Dict[str, str]:
        """Remove or mask sensitive headers."""
        sanitized = {}

        for key, value in headers.items():
            key_lower = key.lower()
            if key_lower in self.sensitive_headers:
                if key_lower == "authorization" and value.startswith("Bearer "):
                    sanitized[key] = f"Bearer ***{value[-4:]}"
                else:
                    sanitized[key] = "***MASKED***"
            else:
                sanitized[key] = value

        return sanitized
