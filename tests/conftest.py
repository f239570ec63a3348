"""Shared fixtures.

Provides:
- Bot / scheduler / callback settings with every delay set to zero
- FakeBrowserSession: scriptable stand-in for the Playwright wrapper
- A webhook recorder backed by httpx.MockTransport
"""

from __future__ import annotations

import json
import os

# Keep test runs from writing rotating log files
os.environ.setdefault("LOG_TO_FILE", "false")

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from meet_transcriber.config import (
    BotSettings,
    CallbackSettings,
    SchedulerSettings,
    Settings,
    TranscriptSettings,
)


# ── Settings ────────────────────────────────────────────────────────────────


@pytest.fixture
def bot_settings() -> BotSettings:
    """Bot settings with no sleeps and short admission / capture timings."""
    return BotSettings(
        navigation_timeout_seconds=5,
        network_idle_timeout_seconds=0,
        page_settle_seconds=0,
        prejoin_settle_seconds=0,
        join_control_wait_seconds=0,
        probe_timeout_seconds=0,
        post_join_settle_seconds=0,
        admission_timeout_seconds=0.2,
        admission_poll_interval_seconds=0.01,
        overlay_max_attempts=5,
        overlay_settle_seconds=0,
        caption_enable_retries=5,
        caption_attempt_timeout_seconds=0,
        caption_key_settle_seconds=0,
        caption_poll_interval_seconds=0.01,
        leave_settle_seconds=0,
    )


@pytest.fixture
def callback_settings() -> CallbackSettings:
    return CallbackSettings(
        max_attempts=3,
        backoff_initial_seconds=0,
        backoff_max_seconds=0,
        request_timeout_seconds=5,
    )


@pytest.fixture
def app_settings(bot_settings, callback_settings, tmp_path) -> Settings:
    return Settings(
        bot=bot_settings,
        scheduler=SchedulerSettings(max_concurrent_meetings=2, start_grace_seconds=30),
        callback=callback_settings,
        transcript=TranscriptSettings(path=str(tmp_path / "transcripts")),
        log_to_file=False,
    )


# ── Time helpers ────────────────────────────────────────────────────────────


def utc_in(seconds: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


# ── Fake browser ────────────────────────────────────────────────────────────


CountValue = Union[int, Callable[[], int]]


class FakeBrowserSession:
    """
    In-memory stand-in for BrowserSession.

    Page state is plain data the tests set up:
        texts       - texts has_text() reports as present
        counts      - selector -> element count (int or zero-arg callable)
        visible     - selectors is_visible() reports as visible
        clickable   - selector -> element text for click_first_visible()
        role_button - text of a button reachable by role name, if any
        frame_clickable - selector -> text for clicks inside frames
        scripts     - script -> result (or zero-arg callable) for evaluate()
        frame_results - results of evaluate_in_frames()
        inner_texts - selector -> inner text
    """

    def __init__(self, settings: Optional[BotSettings] = None, session_id: str = "test") -> None:
        self.settings = settings
        self.session_id = session_id

        self.texts: set = set()
        self.counts: Dict[str, CountValue] = {}
        self.visible: set = set()
        self.clickable: Dict[str, str] = {}
        self.role_button: Optional[str] = None
        self.frame_clickable: Dict[str, str] = {}
        self.scripts: Dict[str, Any] = {}
        self.frame_results: List[Any] = []
        self.inner_texts: Dict[str, str] = {}
        self.navigate_error: Optional[Exception] = None
        self.on_press: Optional[Callable[[str], None]] = None

        self.opened = False
        self.closed = False
        self.navigated: List[str] = []
        self.clicked: List[str] = []
        self.filled: List[tuple] = []
        self.presses: List[str] = []
        self.evaluated: List[str] = []
        self.screenshots: List[str] = []

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def navigate(self, url: str) -> None:
        if self.navigate_error is not None:
            raise self.navigate_error
        self.navigated.append(url)

    async def wait_for_network_idle(self, timeout_s: float) -> bool:
        return True

    async def wait_for_visible(self, selector: str, timeout_s: float) -> bool:
        return any(s in self.clickable for s in selector.split(", "))

    async def count(self, selector: str) -> int:
        value = self.counts.get(selector, 0)
        return value() if callable(value) else value

    async def is_visible(self, selector: str) -> bool:
        return selector in self.visible

    async def has_text(self, text: str) -> bool:
        return text in self.texts

    async def inner_text(self, selector: str) -> Optional[str]:
        return self.inner_texts.get(selector)

    async def click_first_visible(self, selector: str, timeout_s: float) -> Optional[str]:
        if selector in self.clickable:
            self.clicked.append(selector)
            return self.clickable[selector]
        return None

    async def click_last(self, selector: str) -> bool:
        return False

    async def click_button_by_name(self, pattern, timeout_s: float) -> Optional[str]:
        if self.role_button is not None:
            self.clicked.append("role=button")
        return self.role_button

    async def click_in_frames(self, selector: str, timeout_s: float) -> Optional[str]:
        if selector in self.frame_clickable:
            self.clicked.append(f"frame:{selector}")
            return self.frame_clickable[selector]
        return None

    async def fill(self, selector: str, value: str, timeout_s: float = 2) -> bool:
        self.filled.append((selector, value))
        return True

    async def press(self, key: str) -> bool:
        self.presses.append(key)
        if self.on_press is not None:
            self.on_press(key)
        return True

    async def focus_content(self, selectors) -> bool:
        return True

    async def evaluate(self, script: str) -> Any:
        self.evaluated.append(script)
        value = self.scripts.get(script)
        return value() if callable(value) else value

    async def evaluate_in_frames(self, script: str) -> List[Any]:
        return list(self.frame_results)

    async def screenshot(self, path: Union[str, Path]) -> Optional[str]:
        self.screenshots.append(str(path))
        return str(path)


@pytest.fixture
def fake_browser(bot_settings) -> FakeBrowserSession:
    return FakeBrowserSession(bot_settings, "test-uuid")


# ── Webhook ─────────────────────────────────────────────────────────────────


class WebhookRecorder:
    """Collects requests sent through an httpx.MockTransport."""

    def __init__(self, statuses: Optional[List[int]] = None) -> None:
        # Status codes to answer with, in order; the last one repeats
        self.statuses = statuses or [200]
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.statuses) - 1)
        return httpx.Response(self.statuses[index], json={"ok": True})

    @property
    def bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def webhook() -> WebhookRecorder:
    return WebhookRecorder()
