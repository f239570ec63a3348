"""
Health check endpoint.
"""

from datetime import datetime
from fastapi import APIRouter
from typing import Dict, Any

from meet_transcriber.api.v1.schemas.meeting import HealthCheckResponse
from meet_transcriber.config import settings
from meet_transcriber.core.dependencies import SchedulerDep

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse, tags=["Health"])
async def health_check(scheduler=SchedulerDep) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        Health status with meeting counts, pending start jobs, timestamp and version
    """
    return {
        "status": "ok" if scheduler.is_running else "degraded",
        "active_meetings": scheduler.get_active_meeting_count(),
        "scheduled_meetings": scheduler.scheduled_count,
        "upcoming_jobs": scheduler.get_upcoming_jobs(),
        "timestamp": datetime.now(settings.tz_info),
        "version": settings.version,
    }
