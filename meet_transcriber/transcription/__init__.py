"""
Caption parsing and transcript export.
"""

from .parser import (
    parse_caption_stream,
    merge_consecutive_speakers,
    is_valid_caption_text,
    to_title_case,
)
from .service import TranscriptService

__all__ = [
    "parse_caption_stream",
    "merge_consecutive_speakers",
    "is_valid_caption_text",
    "to_title_case",
    "TranscriptService",
]
