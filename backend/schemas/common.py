"""Common schemas used across the API."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error response format.

    Attributes:
        detail: Human-readable error message
        code: Machine-readable error code for programmatic handling
        needs_pin: Set when the caller must configure a PIN first
        requires_confirmation: Set when a delete must be repeated with confirm=true
    """
    detail: str = Field(..., description="Human-readable error description")
    code: Optional[str] = Field(
        None,
        description="Machine-readable error code for programmatic error handling"
    )
    needs_pin: Optional[bool] = None
    requires_confirmation: Optional[bool] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "detail": "Invalid PIN",
                    "code": "INVALID_PIN"
                },
                {
                    "detail": "PIN is not set. Set a PIN before accessing secrets.",
                    "code": "PIN_NOT_CONFIGURED",
                    "needs_pin": True
                }
            ]
        }
    }


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str = "1.0.0"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
