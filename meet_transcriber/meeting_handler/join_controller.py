"""
Google Meet join flow.

Flow:
1. Load the meeting page and let it settle
2. Turn camera and microphone off, enter the bot name
3. Bail out if guests are blocked
4. Click a join control (direct "Join now" or "Ask to join")
5. Dismiss consent / notification overlays
6. On the ask path, wait for the host to admit us
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from meet_transcriber.config import BotSettings
from meet_transcriber.core.exceptions import (
    AdmissionDeniedError,
    AdmissionTimeoutError,
    JoinControlNotFoundError,
    MeetingBlockedError,
    MeetingJoinError,
)
from meet_transcriber.core.logging import get_session_logger
from .browser import BrowserSession
from .meet_selectors import (
    BLOCKED_TEXTS,
    CONSENT_DISMISS_JS,
    DENIED_TEXTS,
    JOIN_ROLE_PATTERN,
    LEAVE_CONFIRM_JS,
    LEAVE_JS,
    REQUEST_JOIN_MARKERS,
    WAITING_TEXTS,
    combined_selector,
    get_selectors_for,
)


class JoinPath(str, Enum):
    """How the bot got in."""
    DIRECT = "direct"
    REQUEST = "request"


def classify_join_text(text: str) -> JoinPath:
    """'Ask to join' / 'Request to join' need admission; anything else is direct."""
    lowered = (text or "").lower()
    if any(marker in lowered for marker in REQUEST_JOIN_MARKERS):
        return JoinPath.REQUEST
    return JoinPath.DIRECT


class JoinController:
    """
    Drives one browser page through the Meet join flow.

    Raises MeetingJoinError subclasses on fatal failures; the error's
    details carry 'screenshot' when one was saved.
    """

    def __init__(
        self,
        browser: BrowserSession,
        settings: BotSettings,
        session_id: str,
        screenshot_dir: Union[str, Path],
    ) -> None:
        self.browser = browser
        self.settings = settings
        self.session_id = session_id
        self.log = get_session_logger("join_controller", session_id)
        self.screenshot_dir = Path(screenshot_dir)

        # Tried in order; the first one that clicks something wins
        self._join_probes: List[Callable[[], Awaitable[Optional[JoinPath]]]] = [
            self._probe_direct_join,
            self._probe_request_join,
            self._probe_fallback_join,
            self._probe_join_role,
            self._probe_join_in_frames,
        ]

    async def join(self, url: str) -> JoinPath:
        """
        Run the full join flow for ``url``.

        Returns:
            The join path taken.
        """
        await self._load(url)

        await asyncio.sleep(self.settings.prejoin_settle_seconds)
        await self._prepare_prejoin()
        await self._check_blocked()

        path = await self._locate_join_control()
        self.log.info(f"Join action initiated via {path.value} path")

        await asyncio.sleep(self.settings.post_join_settle_seconds)
        await self.dismiss_overlays()

        if path == JoinPath.REQUEST:
            await self._wait_for_admission()
            await self.dismiss_overlays()

        # Late overlays show up once the meeting UI renders
        await self.dismiss_overlays()
        await self.browser.wait_for_network_idle(min(5.0, self.settings.network_idle_timeout_seconds))

        self.log.info("✅ Joined meeting")
        return path

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _load(self, url: str) -> None:
        self.log.info(f"Navigating to {url}...")
        try:
            await self.browser.navigate(url)
        except Exception as e:
            screenshot = await self._save_failure_screenshot("load-failed")
            raise MeetingJoinError(
                f"Failed to load meeting page: {e}",
                details={"url": url, "screenshot": screenshot},
            ) from e

        if not await self.browser.wait_for_network_idle(self.settings.network_idle_timeout_seconds):
            self.log.info("Network did not go idle, continuing anyway")

        await asyncio.sleep(self.settings.page_settle_seconds)

    async def _prepare_prejoin(self) -> None:
        """Best-effort: camera off, microphone off, display name."""
        timeout = self.settings.probe_timeout_seconds

        if await self.browser.click_first_visible(combined_selector("camera_off"), timeout) is not None:
            self.log.info("Camera turned OFF")
        if await self.browser.click_first_visible(combined_selector("mic_off"), timeout) is not None:
            self.log.info("Microphone turned OFF")

        if await self.browser.fill(combined_selector("name_input"), self.settings.bot_name, timeout):
            self.log.info(f"Guest mode detected. Entered bot name: {self.settings.bot_name}")
        else:
            self.log.debug("No name input on pre-join screen")

    async def _check_blocked(self) -> None:
        blocked = await self._first_text_present(BLOCKED_TEXTS)
        if blocked is None:
            return

        screenshot = await self._save_failure_screenshot("join-blocked")
        raise MeetingBlockedError(
            "Meeting is blocked for guests: it requires a signed-in account allowed by the host, "
            "or the host must allow anyone with the link to join.",
            details={"indicator": blocked, "screenshot": screenshot},
        )

    async def _locate_join_control(self) -> JoinPath:
        if not await self.browser.wait_for_visible(
            combined_selector("join_any"), self.settings.join_control_wait_seconds
        ):
            self.log.warning("No join control rendered yet, probing anyway")

        for probe in self._join_probes:
            path = await probe()
            if path is not None:
                return path

        screenshot = await self._save_failure_screenshot("join-failed")
        raise JoinControlNotFoundError(
            "Could not find any join button. The meeting page may not have loaded properly.",
            details={"screenshot": screenshot},
        )

    async def _wait_for_admission(self) -> None:
        """
        Poll until an in-meeting control appears.

        Raises:
            AdmissionDeniedError: Host denied the request or removed the bot.
            AdmissionTimeoutError: Nobody admitted the bot in time.
        """
        timeout = self.settings.admission_timeout_seconds
        interval = self.settings.admission_poll_interval_seconds
        self.log.info(f"Waiting up to {timeout}s for host admission...")

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout
        last_log = started

        while True:
            denied = await self._first_text_present(DENIED_TEXTS + BLOCKED_TEXTS)
            if denied is not None:
                screenshot = await self._save_failure_screenshot("admission-denied")
                raise AdmissionDeniedError(
                    "Request to join was denied by the host",
                    details={"indicator": denied, "screenshot": screenshot},
                )

            if await self.in_meeting():
                waited = loop.time() - started
                self.log.info(f"Admitted after {waited:.0f}s")
                return

            now = loop.time()
            if now >= deadline:
                break

            if now - last_log >= 15 and await self._first_text_present(WAITING_TEXTS) is not None:
                self.log.info(f"Still waiting in the lobby ({now - started:.0f}s)")
                last_log = now

            await asyncio.sleep(min(interval, max(deadline - now, 0)))

        screenshot = await self._save_failure_screenshot("admission-timeout")
        raise AdmissionTimeoutError(
            f"Host did not admit the bot within {timeout} seconds",
            details={"screenshot": screenshot},
        )

    # ------------------------------------------------------------------
    # Join probes
    # ------------------------------------------------------------------

    async def _click_any(self, selectors: Iterable[str]) -> Optional[str]:
        for selector in selectors:
            text = await self.browser.click_first_visible(selector, self.settings.probe_timeout_seconds)
            if text is not None:
                self.log.info(f"Clicked join control '{text}' using: {selector}")
                return text
        return None

    async def _probe_direct_join(self) -> Optional[JoinPath]:
        if await self._click_any(get_selectors_for("direct_join")) is not None:
            return JoinPath.DIRECT
        return None

    async def _probe_request_join(self) -> Optional[JoinPath]:
        if await self._click_any(get_selectors_for("request_join")) is not None:
            return JoinPath.REQUEST
        return None

    async def _probe_fallback_join(self) -> Optional[JoinPath]:
        text = await self._click_any(get_selectors_for("fallback_join"))
        return classify_join_text(text) if text is not None else None

    async def _probe_join_role(self) -> Optional[JoinPath]:
        text = await self.browser.click_button_by_name(JOIN_ROLE_PATTERN, self.settings.probe_timeout_seconds)
        if text is None:
            return None
        self.log.info(f"Clicked join control '{text}' by role")
        return classify_join_text(text)

    async def _probe_join_in_frames(self) -> Optional[JoinPath]:
        for selector in get_selectors_for("frame_join"):
            text = await self.browser.click_in_frames(selector, self.settings.probe_timeout_seconds)
            if text is not None:
                self.log.info(f"Clicked join control '{text}' inside a frame")
                return classify_join_text(text)
        return None

    # ------------------------------------------------------------------
    # Overlays
    # ------------------------------------------------------------------

    async def dismiss_overlays(self) -> bool:
        """
        Dismiss recording-consent dialogs and "Got it" notifications.

        Returns:
            True if anything was found and dismissed.
        """
        dismissed = False

        for attempt in range(1, self.settings.overlay_max_attempts + 1):
            result = await self.browser.evaluate(CONSENT_DISMISS_JS)
            if not isinstance(result, dict):
                break

            found = bool(result.get("found"))
            got_it = bool(result.get("gotIt"))
            clicked = str(result.get("clicked") or "")

            if found and not clicked.startswith("join-now"):
                if await self.browser.click_last(combined_selector("consent_join")):
                    clicked = "locator"

            if not found and not got_it:
                break

            dismissed = True
            self.log.info(
                f"Overlay pass {attempt}: consent='{result.get('text', '')}', "
                f"clicked='{clicked}', got_it={got_it}"
            )
            await asyncio.sleep(self.settings.overlay_settle_seconds)

        return dismissed

    # ------------------------------------------------------------------
    # In-meeting state
    # ------------------------------------------------------------------

    async def in_meeting(self) -> bool:
        for selector in get_selectors_for("in_meeting"):
            if await self.browser.count(selector) > 0:
                return True
        return False

    async def captions_on(self) -> bool:
        for selector in get_selectors_for("captions_on"):
            if await self.browser.count(selector) > 0:
                return True
        for selector in get_selectors_for("caption_containers"):
            if await self.browser.is_visible(selector):
                return True
        return False

    async def enable_captions(self) -> bool:
        """
        Turn on live captions.

        Tries the 'c' shortcut, then the CC button, then retries both after
        clearing a late overlay. Failure is logged, not raised.
        """
        self.log.info("Enabling captions")

        await self.dismiss_overlays()
        if await self.captions_on():
            self.log.info("Captions are already enabled")
            return True

        retries = self.settings.caption_enable_retries
        for attempt in range(1, retries + 1):
            self.log.info(f"Pressing 'c' to enable captions (attempt {attempt}/{retries})")
            if await self._press_caption_shortcut():
                self.log.info("Captions enabled successfully")
                return True
            if attempt == 2 and await self.dismiss_overlays():
                self.log.info("Late consent dialog dismissed, retrying captions...")

        if await self._try_caption_button():
            return True

        if await self.dismiss_overlays():
            self.log.info("Overlay was still blocking, retrying captions after dismissal")
            for _ in range(3):
                if await self._press_caption_shortcut():
                    self.log.info("Captions enabled on retry after overlay dismissal")
                    return True
            if await self._try_caption_button():
                return True

        self.log.error("FAILED to enable captions after all attempts. Transcript may be empty")
        await self._save_failure_screenshot("captions-failed")
        return False

    async def _press_caption_shortcut(self) -> bool:
        await self.browser.focus_content(get_selectors_for("focus_targets"))
        await self.browser.press("c")
        await asyncio.sleep(self.settings.caption_key_settle_seconds)
        return await self.captions_on()

    async def _try_caption_button(self) -> bool:
        for selector in get_selectors_for("caption_buttons"):
            if await self.browser.click_first_visible(selector, self.settings.caption_attempt_timeout_seconds) is None:
                continue
            await asyncio.sleep(self.settings.caption_key_settle_seconds)
            if await self.captions_on():
                self.log.info("Captions enabled via CC button")
                return True
        return False

    async def leave(self) -> None:
        """Best-effort: click leave, then confirm."""
        self.log.info("Leaving meeting")
        result = await self.browser.evaluate(LEAVE_JS)
        self.log.info(f"Leave button result: {result}")

        await asyncio.sleep(self.settings.leave_settle_seconds)

        confirm = await self.browser.evaluate(LEAVE_CONFIRM_JS)
        self.log.debug(f"Leave confirm result: {confirm}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _first_text_present(self, texts: Iterable[str]) -> Optional[str]:
        for text in texts:
            if await self.browser.has_text(text):
                return text
        return None

    async def _save_failure_screenshot(self, label: str) -> Optional[str]:
        path = self.screenshot_dir / f"{label}_{self.session_id}_{int(time.time() * 1000)}.png"
        return await self.browser.screenshot(path)
