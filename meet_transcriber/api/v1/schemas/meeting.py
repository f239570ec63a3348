"""
API request/response schemas for meeting operations.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime


class ApiResponse(BaseModel):
    """Envelope for every meetings endpoint."""
    success: bool
    message: str
    data: Optional[Any] = None


class ScheduleMeetingData(BaseModel):
    """Echo of a newly scheduled meeting."""
    uuid: str
    status: str
    scheduled_start: datetime
    scheduled_end: datetime


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    active_meetings: int = 0
    scheduled_meetings: int = 0
    upcoming_jobs: List[dict] = Field(default_factory=list)
    timestamp: datetime
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str
    error_code: Optional[str] = None
