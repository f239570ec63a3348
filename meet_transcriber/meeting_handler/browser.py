"""
Playwright browser session used by one meeting.

Every meeting owns its own Playwright runtime, browser, context and page.
The query helpers never raise: a missing element, a detached frame or a
failing script all read as "not there". Only navigation raises.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
)

from meet_transcriber.config import BotSettings
from meet_transcriber.core.logging import get_session_logger
from .meet_selectors import STEALTH_INIT_JS


LAUNCH_ARGS = [
    "--use-fake-ui-for-media-stream",  # Auto-accept permissions
    "--use-fake-device-for-media-stream",
    "--disable-blink-features=AutomationControlled",  # Stealth: Hide navigator.webdriver
    "--disable-infobars",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class BrowserSession:
    """
    Thin async wrapper around a single Playwright page.

    Usage pattern:
        browser = BrowserSession(settings.bot, session_id="abc")
        await browser.open()
        try:
            await browser.navigate(url)
        finally:
            await browser.close()
    """

    def __init__(self, settings: BotSettings, session_id: str = "") -> None:
        self.settings = settings
        self.session_id = session_id
        self.log = get_session_logger("browser", session_id)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not open")
        return self._page

    async def open(self) -> None:
        """
        Start Playwright, launch Chromium and open a stealth page.
        """
        if self._page is not None:
            return

        self.log.info(f"Launching browser (headless={self.settings.headless})")

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            slow_mo=self.settings.slow_mo_ms,
            ignore_default_args=["--enable-automation"],  # Critical for stealth
            args=LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(
            user_agent=self.settings.user_agent,
            viewport={"width": 1280, "height": 720},
            permissions=["microphone", "camera", "notifications"],
            locale=self.settings.locale,
            ignore_https_errors=True,
        )
        await self._context.add_init_script(STEALTH_INIT_JS)
        self._page = await self._context.new_page()
        self._page.set_default_timeout(self.settings.navigation_timeout_seconds * 1000)

        # Hook console logs for debugging
        self._page.on("console", lambda msg: self.log.debug(f"BROWSER CONSOLE: {msg.text}"))

    async def close(self) -> None:
        """
        Close page, context and browser, then stop Playwright.
        """
        self.log.info("Closing browser")

        try:
            if self._context is not None:
                await self._context.close()
        except Exception as e:
            self.log.debug(f"Context close failed: {e}")
        finally:
            self._context = None
            self._page = None

        try:
            if self._browser is not None:
                await self._browser.close()
        except Exception as e:
            self.log.debug(f"Browser close failed: {e}")
        finally:
            self._browser = None

        try:
            if self._playwright is not None:
                await self._playwright.stop()
        except Exception as e:
            self.log.debug(f"Playwright stop failed: {e}")
        finally:
            self._playwright = None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate(self, url: str) -> None:
        """
        Load ``url``.

        Raises:
            PlaywrightError: If the page cannot be loaded.
        """
        await self.page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.settings.navigation_timeout_seconds * 1000,
        )

    async def wait_for_network_idle(self, timeout_s: float) -> bool:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_s * 1000)
            return True
        except PlaywrightTimeoutError:
            return False
        except Exception as e:
            self.log.debug(f"Network idle wait failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Element queries
    # ------------------------------------------------------------------

    async def wait_for_visible(self, selector: str, timeout_s: float) -> bool:
        try:
            await self.page.locator(selector).first.wait_for(state="visible", timeout=timeout_s * 1000)
            return True
        except Exception:
            return False

    async def count(self, selector: str) -> int:
        try:
            return await self.page.locator(selector).count()
        except Exception:
            return 0

    async def is_visible(self, selector: str) -> bool:
        try:
            element = self.page.locator(selector)
            return await element.count() > 0 and await element.first.is_visible()
        except Exception:
            return False

    async def has_text(self, text: str) -> bool:
        """True if an element with exactly ``text`` is present."""
        try:
            return await self.page.get_by_text(text, exact=True).count() > 0
        except Exception:
            return False

    async def inner_text(self, selector: str) -> Optional[str]:
        try:
            element = self.page.locator(selector)
            if await element.count() == 0:
                return None
            return await element.first.inner_text(timeout=1000)
        except Exception:
            return None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def click_first_visible(self, selector: str, timeout_s: float) -> Optional[str]:
        """
        Click the first element matching ``selector`` if it becomes visible.

        Returns:
            The clicked element's text ('' if it has none), or None if
            nothing was clicked.
        """
        try:
            element = self.page.locator(selector).first
            await element.wait_for(state="visible", timeout=timeout_s * 1000)
            text = (await element.text_content(timeout=1000)) or ""
            try:
                await element.click(timeout=5000)
            except PlaywrightTimeoutError:
                self.log.warning(f"Normal click failed on {selector}. Trying force click...")
                await element.click(force=True)
            return text.strip()
        except Exception:
            return None

    async def click_last(self, selector: str) -> bool:
        try:
            element = self.page.locator(selector)
            if await element.count() == 0:
                return False
            await element.last.click(timeout=3000)
            return True
        except Exception:
            return False

    async def click_button_by_name(self, pattern: Union[str, re.Pattern], timeout_s: float) -> Optional[str]:
        """Click the first visible button whose accessible name matches ``pattern``."""
        try:
            button = self.page.get_by_role("button", name=pattern).first
            await button.wait_for(state="visible", timeout=timeout_s * 1000)
            text = (await button.text_content(timeout=1000)) or ""
            await button.click(timeout=5000)
            return text.strip()
        except Exception:
            return None

    async def click_in_frames(self, selector: str, timeout_s: float) -> Optional[str]:
        """Click ``selector`` inside the first embedded frame that shows it."""
        for frame in self._child_frames():
            try:
                element = frame.locator(selector).first
                await element.wait_for(state="visible", timeout=timeout_s * 1000)
                text = (await element.text_content(timeout=1000)) or ""
                await element.click(timeout=5000)
                return text.strip()
            except Exception:
                # Cross-origin or detached frame
                continue
        return None

    async def fill(self, selector: str, value: str, timeout_s: float = 2) -> bool:
        try:
            element = self.page.locator(selector).first
            await element.wait_for(state="visible", timeout=timeout_s * 1000)
            await element.fill(value)
            return True
        except Exception:
            return False

    async def press(self, key: str) -> bool:
        try:
            await self.page.keyboard.press(key)
            return True
        except Exception as e:
            self.log.debug(f"Key press '{key}' failed: {e}")
            return False

    async def focus_content(self, selectors: Sequence[str]) -> bool:
        """
        Click the first present element of ``selectors`` so keyboard input
        reaches the meeting app. Falls back to focusing the body.
        """
        for selector in selectors:
            try:
                element = self.page.locator(selector)
                if await element.count() > 0:
                    await element.first.click(timeout=2000)
                    await asyncio.sleep(0.1)
                    return True
            except Exception:
                continue
        return await self.evaluate("() => { document.body.focus(); return true; }") is True

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    async def evaluate(self, script: str) -> Any:
        """Evaluate ``script`` in the main document; None on any error."""
        try:
            return await self.page.evaluate(script)
        except Exception as e:
            self.log.debug(f"Script evaluation failed: {e}")
            return None

    async def evaluate_in_frames(self, script: str) -> List[Any]:
        """Evaluate ``script`` in every embedded frame, skipping failures."""
        results = []
        for frame in self._child_frames():
            try:
                results.append(await frame.evaluate(script))
            except Exception:
                # Cross-origin or detached frame
                continue
        return results

    def _child_frames(self) -> list:
        if self._page is None:
            return []
        main = self._page.main_frame
        return [frame for frame in self._page.frames if frame != main]

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def screenshot(self, path: Union[str, Path]) -> Optional[str]:
        """Save a full-page screenshot; returns the path or None."""
        try:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            await self.page.screenshot(path=str(target), full_page=True)
            self.log.info(f"Screenshot saved: {target}")
            return str(target)
        except Exception as e:
            self.log.warning(f"Failed to save screenshot: {e}")
            return None
