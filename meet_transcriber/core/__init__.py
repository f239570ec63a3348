"""
Core module exports.
"""

from .logging import logger, get_logger, get_session_logger, setup_logging, SessionLoggerAdapter
from .exceptions import (
    MeetingBotException,
    SchedulerError,
    ScheduleValidationError,
    MeetingConflictError,
    InvalidTransitionError,
    MeetingJoinError,
    MeetingBlockedError,
    AdmissionDeniedError,
    JoinControlNotFoundError,
    AdmissionTimeoutError,
)

__all__ = [
    "logger",
    "get_logger",
    "get_session_logger",
    "SessionLoggerAdapter",
    "setup_logging",
    "MeetingBotException",
    "SchedulerError",
    "ScheduleValidationError",
    "MeetingConflictError",
    "InvalidTransitionError",
    "MeetingJoinError",
    "MeetingBlockedError",
    "AdmissionDeniedError",
    "JoinControlNotFoundError",
    "AdmissionTimeoutError",
]
