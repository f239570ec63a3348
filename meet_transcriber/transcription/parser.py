"""
Caption stream parsing.

Turns the raw, continuously-growing caption blob captured from the meeting
page into discrete speaker-attributed transcript entries, and merges
consecutive entries from the same speaker.

Speaker detection is best-effort: the caption surface renders a speaker
name on its own line followed by what they said, but nothing marks a line
as a name, so short title-cased utterances can be mistaken for speakers.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from meet_transcriber.core.logging import get_logger
from meet_transcriber.models import TranscriptEntry, UNKNOWN_SPEAKER, utc_now

logger = get_logger("caption_parser")


# Meet UI / accessibility vocabulary that is never spoken caption text
JUNK_PATTERNS = (
    "BETA", "Font size", "Font color", "format_size", "arrow_downward",
    "Jump to bottom", "Open caption settings", "settings", "language",
    "Afrikaans", "Albanian", "Amharic", "Arabic", "Default", "Tiny",
    "Small", "Medium", "Large", "Huge", "Jumbo", "circle",
    "(South Africa)", "(Spain)", "(Brazil)", "(India)", "BETAChinese",
    "Press Down Arrow", "hover tray", "Escape to close",
    "Press Enter to", "Press Tab to", "Use arrow keys",
    "Screen reader", "keyboard shortcut", "Click to",
    "Tap to", "Swipe to", "Double-click", "Right-click",
    "participants", "participant", "in this call",
    "You're presenting", "Present now", "Stop presenting",
    "Turn on microphone", "Turn off microphone", "Turn on camera", "Turn off camera",
    "Leave call", "End call", "More options", "Activities",
    "raised hand", "raise hand", "lower hand", "Reactions",
    "Send a message", "Chat with everyone", "Open chat",
)

MIN_CAPTION_LENGTH = 2
MAX_CAPTION_LENGTH = 900

_CLOCK_RE = re.compile(r"^\d{1,2}:\d{2}\s*(AM|PM)?$")
_MEETING_CODE_RE = re.compile(r"^[a-z]{3}-[a-z]{4}-[a-z]{3}$")

# A bare speaker line: 1-4 words, letters only; Meet shows display names as typed
_NAME_LINE_RE = re.compile(r"^[A-Za-z][A-Za-z]*(?:\s+[A-Za-z][A-Za-z]*){0,3}$")
_NAME_MIN_LENGTH = 3
_NAME_MAX_LENGTH = 40

# "Alice Sure." style: capitalised name tokens followed by another capitalised word
_INLINE_NAME_RE = re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,2})\s+(?=[A-Z])")


def is_valid_caption_text(text: Optional[str]) -> bool:
    """
    Check whether captured text is caption content rather than UI junk.

    Shared by the capture loop and the parser.
    """
    if not text or len(text) < MIN_CAPTION_LENGTH:
        return False

    for pattern in JUNK_PATTERNS:
        if pattern in text:
            return False

    stripped = text.strip()
    if _CLOCK_RE.match(stripped) or _MEETING_CODE_RE.match(stripped):
        return False

    return len(text) < MAX_CAPTION_LENGTH


def to_title_case(value: str) -> str:
    """'hitesh natha' -> 'Hitesh Natha'."""
    return re.sub(r"\S+", lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), value)


def normalize_caption_text(raw: str) -> str:
    """Turn escaped line breaks into real newlines."""
    return raw.replace("\\n", "\n").replace("\r\n", "\n").replace("\r", "\n")


def _looks_like_name(line: str) -> bool:
    if not (_NAME_MIN_LENGTH <= len(line) < _NAME_MAX_LENGTH):
        return False
    if not _NAME_LINE_RE.match(line):
        return False
    return is_valid_caption_text(line)


def find_speaker_names(text: str) -> List[str]:
    """
    Collect candidate speaker names from a normalized caption blob.

    A name line must be followed by another line, and the line right after
    an accepted name is that speaker's text, never a name. Falls back to
    inline capitalised tokens when no name lines exist.
    """
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]

    # Keyed case-insensitively; the first spelling seen wins
    names: Dict[str, str] = {}
    expect_text = False
    for index, line in enumerate(lines):
        if expect_text:
            expect_text = False
            continue
        if index + 1 < len(lines) and _looks_like_name(line):
            names.setdefault(line.lower(), line)
            expect_text = True

    if not names:
        for match in _INLINE_NAME_RE.finditer(text):
            name = match.group(1).strip()
            if _NAME_MIN_LENGTH <= len(name) < _NAME_MAX_LENGTH:
                names.setdefault(name.lower(), name)

    return list(names.values())


def _split_pattern(names: Iterable[str]) -> re.Pattern:
    """
    Match a speaker name that starts a turn.

    A name only counts when a line break or a capitalised word follows it,
    so a speaker mentioned mid-sentence stays part of the utterance. Name
    matching ignores case; the lookahead does not.
    """
    # Longest first so "Jane Smith" wins over "Jane"
    alternatives = sorted({re.escape(name) for name in names}, key=len, reverse=True)
    return re.compile(r"(?<!\S)((?i:" + "|".join(alternatives) + r"))(?:[ \t]*\n|\s+(?=[A-Z]))")


def parse_caption_stream(raw: Optional[str], timestamp: Optional[datetime] = None) -> List[TranscriptEntry]:
    """
    Parse the final caption buffer into ordered speaker-attributed entries.

    Args:
        raw: Accumulated caption text (may contain literal '\\n' escapes)
        timestamp: Timestamp for the produced entries (defaults to now, UTC)

    Returns:
        Entries in spoken order; empty if nothing usable was captured.
    """
    if not raw:
        return []

    text = normalize_caption_text(raw)
    stamp = timestamp or utc_now()
    names = find_speaker_names(text)
    logger.debug(f"Found {len(names)} potential speaker names: {names}")

    if not names:
        clean = " ".join(text.split())
        if clean and is_valid_caption_text(clean):
            return [TranscriptEntry(speaker=UNKNOWN_SPEAKER, text=clean, timestamp=stamp)]
        return []

    canonical = {name.lower(): name for name in names}
    parts = _split_pattern(names).split(text)

    entries: List[TranscriptEntry] = []
    speaker = UNKNOWN_SPEAKER
    spoken: List[str] = []

    def flush() -> None:
        content = " ".join(" ".join(spoken).split())
        spoken.clear()
        if content and is_valid_caption_text(content):
            entries.append(TranscriptEntry(speaker=to_title_case(speaker), text=content, timestamp=stamp))

    # re.split with one capture group alternates text, name, text, name, ...
    for index, part in enumerate(parts):
        if index % 2 == 1:
            flush()
            speaker = canonical[part.lower()]
        elif part.strip():
            spoken.append(part)
    flush()

    logger.info(f"Parsed {len(entries)} speaker turns from raw caption")
    return entries


def merge_consecutive_speakers(entries: Optional[Iterable[TranscriptEntry]]) -> List[TranscriptEntry]:
    """
    Merge adjacent entries from the same speaker.

    Texts are space-joined and the first timestamp is kept. Idempotent;
    always returns a new list.
    """
    items = list(entries or [])
    if len(items) <= 1:
        return items

    merged: List[TranscriptEntry] = []
    current = items[0]
    texts = [current.text] if current.text else []

    for nxt in items[1:]:
        if (nxt.speaker or "") == (current.speaker or ""):
            if nxt.text:
                texts.append(nxt.text)
            continue
        merged.append(TranscriptEntry(speaker=current.speaker, text=" ".join(texts).strip(), timestamp=current.timestamp))
        current = nxt
        texts = [current.text] if current.text else []

    merged.append(TranscriptEntry(speaker=current.speaker, text=" ".join(texts).strip(), timestamp=current.timestamp))
    return merged
