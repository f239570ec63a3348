"""
Meeting session scheduling.
"""

from .meeting_scheduler import MeetingScheduler

__all__ = ["MeetingScheduler"]
