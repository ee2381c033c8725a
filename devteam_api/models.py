"""Response envelopes returned by the API."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Current UTC instant as ISO-8601 with millisecond precision, e.g. 2024-01-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(frozen=True)

    status: Literal["healthy"] = "healthy"
    timestamp: str = Field(default_factory=utc_timestamp)


class ServiceInfo(BaseModel):
    """Service identity returned from the root endpoint."""

    message: str
    version: str
    timestamp: str = Field(default_factory=utc_timestamp)
    documentation: str


class ErrorResponse(BaseModel):
    """Error response envelope."""

    success: bool = False
    error: str = Field(..., description="High-level error message")
    timestamp: str = Field(default_factory=utc_timestamp)
    details: str | None = Field(None, description="Additional context, development only")
