"""
Browser automation for attending Google Meet meetings.
"""

from .browser import BrowserSession
from .caption_capture import CaptionBuffer, CaptureLoop
from .join_controller import JoinController, JoinPath
from .joiner import MeetingJoiner

__all__ = [
    "BrowserSession",
    "CaptionBuffer",
    "CaptureLoop",
    "JoinController",
    "JoinPath",
    "MeetingJoiner",
]
