"""
API v1 schemas module.
"""

from .meeting import (
    ApiResponse,
    ScheduleMeetingData,
    HealthCheckResponse,
    ErrorResponse,
)

__all__ = [
    "ApiResponse",
    "ScheduleMeetingData",
    "HealthCheckResponse",
    "ErrorResponse",
]
