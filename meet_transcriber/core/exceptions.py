"""
Custom exceptions for the Meet Transcriber.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class MeetingBotException(Exception):
    """Base exception for Meet Transcriber errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class SchedulerError(MeetingBotException):
    """Raised when scheduling operations fail."""
    pass


class ScheduleValidationError(SchedulerError):
    """Raised when a schedule request is malformed or out of range."""
    pass


class MeetingConflictError(SchedulerError):
    """Raised when a session with the same id is already active."""
    pass


class InvalidTransitionError(SchedulerError):
    """Raised on an illegal session status change."""
    pass


class MeetingJoinError(MeetingBotException):
    """Raised when joining a meeting fails."""

    @property
    def screenshot(self) -> Optional[str]:
        return self.details.get("screenshot")


class MeetingBlockedError(MeetingJoinError):
    """Raised when the host does not allow guests to join."""
    pass


class AdmissionDeniedError(MeetingBlockedError):
    """Raised when a request to join is denied while waiting in the lobby."""
    pass


class JoinControlNotFoundError(MeetingJoinError):
    """Raised when no join control could be located on the page."""
    pass


class AdmissionTimeoutError(MeetingJoinError):
    """Raised when the host never admits the bot."""
    pass


# HTTP Exceptions for API responses
class HTTPBadRequest(HTTPException):
    """400 Bad Request"""
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class HTTPNotFound(HTTPException):
    """404 Not Found"""
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class HTTPConflict(HTTPException):
    """409 Conflict"""
    def __init__(self, detail: str = "Resource conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class HTTPInternalServerError(HTTPException):
    """500 Internal Server Error"""
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
