"""
Configuration module for the Meet Transcriber.
"""

from .settings import (
    Settings,
    settings,
    BotSettings,
    SchedulerSettings,
    CallbackSettings,
    TranscriptSettings,
    ServerSettings,
)

__all__ = [
    "Settings",
    "settings",
    "BotSettings",
    "SchedulerSettings",
    "CallbackSettings",
    "TranscriptSettings",
    "ServerSettings",
]
