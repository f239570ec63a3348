"""
Data models for meeting sessions, transcripts and callbacks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator

from meet_transcriber.core.exceptions import InvalidTransitionError


UNKNOWN_SPEAKER = "Unknown"


class MeetingStatus(str, Enum):
    """Lifecycle of one scheduled join."""
    SCHEDULED = "SCHEDULED"
    JOINING = "JOINING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[MeetingStatus] = frozenset({
    MeetingStatus.COMPLETED,
    MeetingStatus.FAILED,
    MeetingStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: Dict[MeetingStatus, FrozenSet[MeetingStatus]] = {
    MeetingStatus.SCHEDULED: frozenset({MeetingStatus.JOINING, MeetingStatus.CANCELLED}),
    MeetingStatus.JOINING: frozenset({
        MeetingStatus.IN_PROGRESS,
        MeetingStatus.FAILED,
        MeetingStatus.CANCELLED,
    }),
    MeetingStatus.IN_PROGRESS: frozenset({
        MeetingStatus.COMPLETED,
        MeetingStatus.FAILED,
        MeetingStatus.CANCELLED,
    }),
    MeetingStatus.COMPLETED: frozenset(),
    MeetingStatus.FAILED: frozenset(),
    MeetingStatus.CANCELLED: frozenset(),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TranscriptEntry:
    """
    One speaker-attributed utterance.
    """
    speaker: str = UNKNOWN_SPEAKER
    text: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class MeetingSession:
    """
    Represents one scheduled, end-to-end attempt to join a meeting
    and capture its captions.
    """
    uuid: str
    meet_url: str
    start_time: datetime
    end_time: datetime
    callback_url: str
    status: MeetingStatus = MeetingStatus.SCHEDULED

    # Appended only by the session's own worker task
    transcripts: List[TranscriptEntry] = field(default_factory=list)

    error_message: Optional[str] = None
    failure_screenshot: Optional[str] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, new_status: MeetingStatus) -> None:
        """
        Move to ``new_status``.

        Raises:
            InvalidTransitionError: If the state machine does not allow it.
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move meeting {self.uuid} from {self.status.value} to {new_status.value}",
                details={"uuid": self.uuid, "from": self.status.value, "to": new_status.value},
            )
        self.status = new_status
        if new_status == MeetingStatus.JOINING:
            self.actual_start = utc_now()
        elif new_status.is_terminal:
            self.actual_end = utc_now()

    def fail(self, message: str, screenshot: Optional[str] = None) -> None:
        """Mark the session FAILED with a diagnostic."""
        self.transition(MeetingStatus.FAILED)
        self.error_message = message
        self.failure_screenshot = screenshot

    def add_transcript(self, entry: TranscriptEntry) -> None:
        """Add a transcript entry."""
        self.transcripts.append(entry)

    def transcript_snapshot(self) -> List[TranscriptEntry]:
        """Copy of the transcript, safe to iterate while capture continues."""
        return list(self.transcripts)

    def snapshot(self) -> dict:
        """Status view for API callers."""
        entries = self.transcript_snapshot()
        return {
            "uuid": self.uuid,
            "meet_url": self.meet_url,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "actual_start": self.actual_start.isoformat() if self.actual_start else None,
            "actual_end": self.actual_end.isoformat() if self.actual_end else None,
            "callback_url": self.callback_url,
            "error_message": self.error_message,
            "failure_screenshot": self.failure_screenshot,
            "transcript_count": len(entries),
            "transcripts": [entry.to_dict() for entry in entries],
        }


class MeetingRequest(BaseModel):
    """Request to schedule a meeting transcription."""
    meet_url: str = Field(..., min_length=1, description="Conference URL to join")
    uuid: str = Field(..., min_length=1, description="Caller-chosen unique meeting id")
    start_time: datetime = Field(..., description="Scheduled start (local to time_zone if naive)")
    end_time: datetime = Field(..., description="Scheduled end (local to time_zone if naive)")
    time_zone: str = Field(..., min_length=1, description="IANA timezone identifier")
    callback_url: str = Field(..., min_length=1, description="Webhook receiving the transcript")

    @field_validator("meet_url", "uuid", "time_zone", "callback_url")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class TranscriptLine(BaseModel):
    """Transcript entry as sent to the webhook."""
    speaker: str
    text: str
    timestamp: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: TranscriptEntry) -> "TranscriptLine":
        return cls(speaker=entry.speaker, text=entry.text, timestamp=entry.timestamp)


class CallbackPayload(BaseModel):
    """Document delivered to the caller's webhook."""
    uuid: str
    meet_url: str
    status: str
    meeting_start_time: Optional[datetime] = None
    meeting_end_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    transcripts: List[TranscriptLine] = Field(default_factory=list)
    total_entries: int = 0
    transcript_path: Optional[str] = None
    error_message: Optional[str] = None
