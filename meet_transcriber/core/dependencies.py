"""
Dependency injection for the Meet Transcriber API.
Provides the scheduler instance to API endpoints.
"""

from typing import Optional, TYPE_CHECKING
from fastapi import Depends

if TYPE_CHECKING:
    from meet_transcriber.scheduler import MeetingScheduler

_scheduler_instance: Optional["MeetingScheduler"] = None


def set_scheduler_instance(instance: Optional["MeetingScheduler"]) -> None:
    """Set the global meeting scheduler instance."""
    global _scheduler_instance
    _scheduler_instance = instance


async def get_scheduler() -> "MeetingScheduler":
    """
    Dependency injection for the MeetingScheduler.

    Raises:
        HTTPInternalServerError: If the scheduler is not initialized
    """
    from meet_transcriber.core.exceptions import HTTPInternalServerError

    if _scheduler_instance is None:
        raise HTTPInternalServerError("Meeting scheduler not initialized")

    return _scheduler_instance


SchedulerDep = Depends(get_scheduler)
