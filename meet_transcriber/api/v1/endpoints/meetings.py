"""
Meeting scheduling endpoints.
"""

from fastapi import APIRouter
from typing import Dict, Any

from meet_transcriber.api.v1.schemas.meeting import ApiResponse, ScheduleMeetingData
from meet_transcriber.core.dependencies import SchedulerDep
from meet_transcriber.core.exceptions import (
    HTTPBadRequest,
    HTTPConflict,
    HTTPNotFound,
    MeetingConflictError,
    ScheduleValidationError,
)
from meet_transcriber.core.logging import get_logger
from meet_transcriber.models import CallbackPayload, MeetingRequest

router = APIRouter()
logger = get_logger("api.meetings")


@router.post("", response_model=ApiResponse, tags=["Meetings"])
async def schedule_meeting(request: MeetingRequest, scheduler=SchedulerDep) -> Dict[str, Any]:
    """
    Schedule the bot to join a meeting and transcribe it.

    Args:
        request: Meeting URL, id, start/end, time zone and callback URL
        scheduler: Meeting scheduler (injected)

    Returns:
        The scheduled meeting's id, status and times
    """
    logger.info(f"Schedule request: {request.uuid} -> {request.meet_url}")

    try:
        session = scheduler.schedule_meeting(request)
    except ScheduleValidationError as e:
        logger.warning(f"Rejected schedule request {request.uuid}: {e.message}")
        raise HTTPBadRequest(e.message)
    except MeetingConflictError as e:
        logger.warning(f"Conflicting schedule request {request.uuid}: {e.message}")
        raise HTTPConflict(e.message)

    data = ScheduleMeetingData(
        uuid=session.uuid,
        status=session.status.value,
        scheduled_start=session.start_time,
        scheduled_end=session.end_time,
    )
    return {"success": True, "message": "Meeting scheduled successfully", "data": data}


@router.get("/{uuid}", response_model=ApiResponse, tags=["Meetings"])
async def get_meeting_status(uuid: str, scheduler=SchedulerDep) -> Dict[str, Any]:
    """
    Get the status and transcript so far of a meeting.
    """
    snapshot = scheduler.get_status(uuid)
    if snapshot is None:
        raise HTTPNotFound(f"Meeting not found: {uuid}")
    return {"success": True, "message": "Meeting status", "data": snapshot}


@router.delete("/{uuid}", response_model=ApiResponse, tags=["Meetings"])
async def cancel_meeting(uuid: str, scheduler=SchedulerDep) -> Dict[str, Any]:
    """
    Cancel a scheduled or running meeting.
    """
    if not scheduler.cancel_meeting(uuid):
        raise HTTPNotFound(f"Meeting not found or already finished: {uuid}")
    logger.info(f"Cancel requested for meeting {uuid}")
    return {"success": True, "message": "Meeting cancelled", "data": {"uuid": uuid}}


@router.post("/test-callback", response_model=ApiResponse, tags=["Meetings"])
async def test_callback(payload: CallbackPayload) -> Dict[str, Any]:
    """
    Local webhook target for trying out callback delivery.
    """
    logger.info(
        f"Test callback received for {payload.uuid}: status={payload.status}, "
        f"entries={payload.total_entries}"
    )
    for line in payload.transcripts:
        logger.info(f"  {line.speaker}: {line.text}")
    return {"success": True, "message": "Callback received", "data": {"uuid": payload.uuid}}
