"""
Caption capture loop.

Meet renders captions as one growing text surface covering every speaker,
so the loop keeps the longest valid snapshot seen and hands it to the
parser once the meeting is over.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional

from meet_transcriber.config import BotSettings
from meet_transcriber.core.logging import get_session_logger
from meet_transcriber.models import utc_now
from meet_transcriber.transcription.parser import is_valid_caption_text
from .browser import BrowserSession
from .meet_selectors import CAPTION_EXTRACTION_JS, MEETING_ENDED_TEXTS, get_selectors_for


LOCATOR_TEXT_MAX = 800
PROGRESS_LOG_SECONDS = 10


class CaptionBuffer:
    """Keeps the longest valid caption snapshot. Never shrinks."""

    def __init__(self) -> None:
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def offer(self, text: Optional[str]) -> bool:
        """Replace the buffer if ``text`` is valid and at least as long."""
        if not text or not is_valid_caption_text(text):
            return False
        if len(text) < len(self._text):
            return False
        self._text = text
        return True


def _text_of(result: Any) -> Optional[str]:
    if isinstance(result, dict):
        text = (result.get("text") or "").strip()
        return text or None
    return None


class CaptureLoop:
    """Polls the page for caption text until the meeting is over."""

    def __init__(self, browser: BrowserSession, settings: BotSettings, session_id: str) -> None:
        self.browser = browser
        self.settings = settings
        self.session_id = session_id
        self.log = get_session_logger("caption_capture", session_id)
        self.buffer = CaptionBuffer()
        self.iterations = 0

        self._probes: List[Callable[[], Awaitable[Optional[str]]]] = [
            self._probe_main_document,
            self._probe_frames,
            self._probe_live_regions,
        ]

    async def run(self, end_time: datetime, stop_event: asyncio.Event) -> str:
        """
        Capture until ``stop_event`` is set, ``end_time`` passes, or the
        meeting ends.

        Returns:
            The final caption buffer.
        """
        self.log.info(f"Starting caption capture until: {end_time.isoformat()}")
        interval = self.settings.caption_poll_interval_seconds
        loop = asyncio.get_running_loop()
        last_progress = loop.time()

        while not stop_event.is_set() and utc_now() < end_time:
            self.iterations += 1
            try:
                if await self.meeting_ended():
                    self.log.info("Meeting ended or bot was removed")
                    break

                text = await self.probe()
                if text and self.buffer.offer(text):
                    self.log.debug(f"Caption buffer updated: {len(self.buffer)} chars")
            except Exception as e:
                self.log.warning(f"Error during capture loop: {e}")

            now = loop.time()
            if now - last_progress >= PROGRESS_LOG_SECONDS:
                self.log.info(
                    f"Capture loop #{self.iterations}: buffer={len(self.buffer)} chars"
                )
                last_progress = now

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        if stop_event.is_set():
            self.log.info("Capture stopped by request")

        self.log.info(f"Caption capture finished: {len(self.buffer)} chars")
        return self.buffer.text

    async def probe(self) -> Optional[str]:
        """Run the probe cascade; first non-empty text wins."""
        for probe in self._probes:
            text = await probe()
            if text:
                return text
        return None

    async def meeting_ended(self) -> bool:
        for text in MEETING_ENDED_TEXTS:
            if await self.browser.has_text(text):
                return True
        return False

    async def _probe_main_document(self) -> Optional[str]:
        return _text_of(await self.browser.evaluate(CAPTION_EXTRACTION_JS))

    async def _probe_frames(self) -> Optional[str]:
        for result in await self.browser.evaluate_in_frames(CAPTION_EXTRACTION_JS):
            text = _text_of(result)
            if text:
                self.log.debug(f"Caption found in iframe: {text[:50]}")
                return text
        return None

    async def _probe_live_regions(self) -> Optional[str]:
        for selector in get_selectors_for("live_regions"):
            text = await self.browser.inner_text(selector)
            if not text:
                continue
            text = text.strip()
            if 2 < len(text) < LOCATOR_TEXT_MAX and "BETA" not in text:
                self.log.debug(f"Caption via locator '{selector}': {text[:50]}")
                return text
        return None
