"""
Common schemas for API responses and error handling.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")


class ErrorResponse(BaseModel):
    """Schema for API error responses raised by route handlers."""

    detail: ErrorDetail

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "detail": {
                        "error_code": "SEAT_NOT_AVAILABLE",
                        "message": "Seat 3f1c... is not available (status: held)",
                        "details": {
                            "seat_id": "3f1c2a4e-8d7b-4b5e-9a61-0c2d7e9f1a11",
                            "current_status": "held"
                        },
                        "suggestions": [
                            "Choose a different seat",
                            "Refresh seat availability"
                        ]
                    }
                },
                {
                    "detail": {
                        "error_code": "SEAT_HOLD_EXPIRED",
                        "message": "Holds are no longer valid for seats: 3f1c...",
                        "details": {"seat_ids": ["3f1c2a4e-8d7b-4b5e-9a61-0c2d7e9f1a11"]}
                    }
                }
            ]
        }
    }
