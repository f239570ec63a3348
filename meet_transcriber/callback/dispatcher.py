"""
Webhook delivery of finished transcripts.

Deliveries are fire-and-forget: each POST runs in its own task, transient
failures are retried with exponential backoff and nothing is ever raised
back to the caller.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Set

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from meet_transcriber.config import CallbackSettings, settings as app_settings
from meet_transcriber.core.logging import SessionLoggerAdapter, get_session_logger
from meet_transcriber.models import (
    CallbackPayload,
    MeetingSession,
    MeetingStatus,
    TranscriptLine,
)
from meet_transcriber.transcription.parser import merge_consecutive_speakers


LOGGER_NAME = "callback_dispatcher"


def is_transient(exc: BaseException) -> bool:
    """Transport errors, 5xx and 429 are worth retrying; other 4xx are not."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code >= 500 or code == 429
    return isinstance(exc, httpx.TransportError)


def _retry_logger(log: SessionLoggerAdapter) -> Callable[[RetryCallState], None]:
    """before_sleep hook reporting each failed attempt."""

    def log_retry(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        sleep = state.next_action.sleep if state.next_action else 0
        log.warning(f"Callback attempt {state.attempt_number} failed: {exc}. Retrying in {sleep:.1f}s")

    return log_retry


class CallbackDispatcher:
    """
    Posts callback payloads to the caller's webhook.

    Args:
        settings: Retry and timeout configuration
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    def __init__(
        self,
        settings: Optional[CallbackSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or app_settings.callback
        self._transport = transport
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def build_payload(self, session: MeetingSession, transcript_path: Optional[str] = None) -> CallbackPayload:
        """Payload for a finished session, with consecutive speakers merged."""
        merged = merge_consecutive_speakers(session.transcript_snapshot())
        return CallbackPayload(
            uuid=session.uuid,
            meet_url=session.meet_url,
            status=session.status.value,
            meeting_start_time=session.start_time,
            meeting_end_time=session.end_time,
            actual_start_time=session.actual_start,
            actual_end_time=session.actual_end,
            transcripts=[TranscriptLine.from_entry(entry) for entry in merged],
            total_entries=len(merged),
            transcript_path=transcript_path,
            error_message=session.error_message,
        )

    def build_failure_payload(self, session: MeetingSession, error: str) -> CallbackPayload:
        """Payload reporting a failed session; carries no transcript."""
        return CallbackPayload(
            uuid=session.uuid,
            meet_url=session.meet_url,
            status=MeetingStatus.FAILED.value,
            meeting_start_time=session.start_time,
            meeting_end_time=session.end_time,
            actual_start_time=session.actual_start,
            actual_end_time=session.actual_end,
            transcripts=[],
            total_entries=0,
            error_message=error,
        )

    def deliver(self, session: MeetingSession, transcript_path: Optional[str] = None) -> asyncio.Task:
        """Schedule delivery of the session's transcript."""
        payload = self.build_payload(session, transcript_path)
        get_session_logger(LOGGER_NAME, session.uuid).info(
            f"Sending callback to {session.callback_url} "
            f"with {payload.total_entries} transcript entries"
        )
        return self._spawn(session.callback_url, payload)

    def deliver_failure(self, session: MeetingSession, error: str) -> asyncio.Task:
        """Schedule delivery of a failure report."""
        log = get_session_logger(LOGGER_NAME, session.uuid)
        log.info(f"Sending failure callback to {session.callback_url}")
        return self._spawn(session.callback_url, self.build_failure_payload(session, error))

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, url: str, payload: CallbackPayload) -> asyncio.Task:
        task = asyncio.create_task(self._post(url, payload), name=f"callback_{payload.uuid}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _post(self, url: str, payload: CallbackPayload) -> bool:
        """
        POST ``payload`` to ``url`` with retries.

        Returns:
            True if the webhook accepted it. Never raises.
        """
        log = get_session_logger(LOGGER_NAME, payload.uuid)
        body = payload.model_dump(mode="json")

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.settings.max_attempts),
                    wait=wait_exponential(
                        multiplier=self.settings.backoff_initial_seconds,
                        min=self.settings.backoff_initial_seconds,
                        max=self.settings.backoff_max_seconds,
                    ),
                    retry=retry_if_exception(is_transient),
                    before_sleep=_retry_logger(log),
                    reraise=True,
                ):
                    with attempt:
                        response = await client.post(url, json=body)
                        response.raise_for_status()
        except Exception as e:
            log.error(f"Failed to send callback to {url}: {e}")
            return False

        log.info(f"Callback sent successfully. Response status: {response.status_code}")
        return True
