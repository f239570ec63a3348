"""
Meeting joiner: runs one session end to end inside its own browser.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Optional, Union

from meet_transcriber.config import BotSettings, settings as app_settings
from meet_transcriber.core.exceptions import MeetingJoinError
from meet_transcriber.core.logging import get_session_logger
from meet_transcriber.models import MeetingSession, MeetingStatus
from meet_transcriber.transcription.parser import parse_caption_stream
from .browser import BrowserSession
from .caption_capture import CaptureLoop
from .join_controller import JoinController


BrowserFactory = Callable[[BotSettings, str], BrowserSession]


class MeetingJoiner:
    """
    High-level interface for attending a meeting via Playwright.

    Usage pattern:
        joiner = MeetingJoiner()
        await joiner.join_and_capture(session, stop_event)
    """

    def __init__(
        self,
        settings: Optional[BotSettings] = None,
        browser_factory: BrowserFactory = BrowserSession,
        screenshot_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        self.settings = settings or app_settings.bot
        self.browser_factory = browser_factory
        self.screenshot_dir = Path(screenshot_dir or app_settings.transcripts_dir)

    async def join_and_capture(self, session: MeetingSession, stop_event: asyncio.Event) -> None:
        """
        Join the session's meeting, capture captions until it is over and
        append the parsed transcript to the session.

        Moves the session to JOINING, then IN_PROGRESS once admitted. The
        final status is left to the caller.

        Raises:
            MeetingJoinError: If the browser cannot start or the join fails.
        """
        log = get_session_logger("meeting_joiner", session.uuid)
        session.transition(MeetingStatus.JOINING)

        browser = self.browser_factory(self.settings, session.uuid)
        controller = JoinController(browser, self.settings, session.uuid, self.screenshot_dir)
        joined = False

        try:
            try:
                await browser.open()
            except Exception as e:
                raise MeetingJoinError(f"Failed to launch browser: {e}") from e

            await controller.join(session.meet_url)
            joined = True

            if stop_event.is_set():
                log.info("Cancelled while joining")
                return

            session.transition(MeetingStatus.IN_PROGRESS)
            log.info("Meeting IN_PROGRESS")

            await controller.enable_captions()

            capture = CaptureLoop(browser, self.settings, session.uuid)
            raw = await capture.run(session.end_time, stop_event)

            entries = parse_caption_stream(raw)
            for entry in entries:
                session.add_transcript(entry)
            log.info(f"Captured {len(entries)} transcript entries")

        finally:
            if joined:
                await controller.leave()
            await browser.close()
