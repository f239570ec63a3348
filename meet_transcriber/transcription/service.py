"""
Transcript export.

Writes each finished session as a readable TXT document: meeting details,
participants, statistics and the speaker-merged transcript.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from meet_transcriber.config import settings
from meet_transcriber.core.logging import get_session_logger
from meet_transcriber.models import MeetingSession, TranscriptEntry, UNKNOWN_SPEAKER
from .parser import merge_consecutive_speakers

RULE = "=" * 80
SUBRULE = "-" * 40
READABLE_FORMAT = "%B %d, %Y %I:%M:%S %p"


class TranscriptService:
    """
    Writes finished meeting transcripts to plain-text files.
    """

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir or settings.transcript.path)

    def save(self, session: MeetingSession) -> Optional[str]:
        """
        Save the merged transcript for a session.

        Creates 'transcript_{uuid}_{start:%Y%m%d_%H%M%S}.txt'.

        Returns:
            Path to the written file, or None if writing failed.
        """
        log = get_session_logger("transcription_service", session.uuid)
        merged = merge_consecutive_speakers(session.transcript_snapshot())
        safe_id = "".join(c for c in session.uuid if c.isalnum() or c in ("-", "_"))
        filename = f"transcript_{safe_id}_{session.start_time.strftime('%Y%m%d_%H%M%S')}.txt"

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            file_path = self.output_dir / filename
            file_path.write_text(self.render(session, merged), encoding="utf-8")
        except OSError as e:
            log.error(f"Failed to save TXT: {e}")
            return None

        log.info(f"Saved TXT transcript to: {file_path}")
        return str(file_path)

    def render(self, session: MeetingSession, merged: List[TranscriptEntry]) -> str:
        """Render the transcript document."""
        participants = participant_statistics(merged)
        total_words = sum(len(entry.text.split()) for entry in merged)

        lines = [
            RULE,
            "MEETING TRANSCRIPT".center(80).rstrip(),
            RULE,
            "",
            "MEETING DETAILS",
            SUBRULE,
            f"Meeting ID    : {session.uuid}",
            f"Meeting URL   : {session.meet_url}",
            f"Start Time    : {session.start_time.strftime(READABLE_FORMAT)}",
            f"End Time      : {session.end_time.strftime(READABLE_FORMAT)}",
            f"Duration      : {format_duration(session)}",
            f"Status        : {session.status.value}",
            "",
            f"PARTICIPANTS ({len(participants)})",
            SUBRULE,
        ]
        for name in sorted(participants):
            count = participants[name]
            lines.append(f"  - {name} ({count} message{'s' if count != 1 else ''})")

        lines += [
            "",
            "STATISTICS",
            SUBRULE,
            f"Total Messages: {len(merged)}",
            f"Total Words   : {total_words}",
            f"Generated At  : {datetime.now().strftime(READABLE_FORMAT)}",
            "",
            RULE,
            "TRANSCRIPT".center(80).rstrip(),
            RULE,
            "",
        ]
        for entry in merged:
            lines.append(f"{entry.speaker or UNKNOWN_SPEAKER}:")
            lines.append(f"    {entry.text}")
            lines.append("")

        lines += [RULE, "END OF TRANSCRIPT".center(80).rstrip(), RULE]
        return "\n".join(lines) + "\n"


def participant_statistics(entries: List[TranscriptEntry]) -> Dict[str, int]:
    """Message count per speaker."""
    return dict(Counter(entry.speaker or UNKNOWN_SPEAKER for entry in entries))


def format_duration(session: MeetingSession) -> str:
    """Scheduled duration as '1 hr 2 min 3 sec'."""
    total = int((session.end_time - session.start_time).total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours} hr {minutes} min {seconds} sec"
    if minutes > 0:
        return f"{minutes} min {seconds} sec"
    return f"{seconds} sec"
