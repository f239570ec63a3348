"""Unit tests for webhook delivery with retries."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import WebhookRecorder
from meet_transcriber.callback import CallbackDispatcher, is_transient
from meet_transcriber.models import MeetingSession, MeetingStatus, TranscriptEntry

CALLBACK_URL = "https://hooks.example.com/transcripts"
STAMP = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def _finished_session() -> MeetingSession:
    session = MeetingSession(
        uuid="meeting-1",
        meet_url="https://meet.google.com/abc-defg-hij",
        start_time=STAMP,
        end_time=STAMP + timedelta(hours=1),
        callback_url=CALLBACK_URL,
    )
    session.transition(MeetingStatus.JOINING)
    session.transition(MeetingStatus.IN_PROGRESS)
    session.add_transcript(TranscriptEntry("Alice", "Hello", STAMP))
    session.add_transcript(TranscriptEntry("Alice", "everyone", STAMP + timedelta(seconds=3)))
    session.add_transcript(TranscriptEntry("Bob", "Hi Alice", STAMP + timedelta(seconds=6)))
    session.transition(MeetingStatus.COMPLETED)
    return session


def _dispatcher(callback_settings, recorder: WebhookRecorder) -> CallbackDispatcher:
    return CallbackDispatcher(callback_settings, transport=recorder.transport)


# ── Payloads ────────────────────────────────────────────────────────────────


class TestPayloads:
    def test_build_payload_merges_speakers(self, callback_settings):
        dispatcher = CallbackDispatcher(callback_settings)

        payload = dispatcher.build_payload(_finished_session(), "/tmp/transcript.txt")

        assert payload.status == "COMPLETED"
        assert payload.total_entries == 2
        assert [(t.speaker, t.text) for t in payload.transcripts] == [
            ("Alice", "Hello everyone"),
            ("Bob", "Hi Alice"),
        ]
        assert payload.transcripts[0].timestamp == STAMP
        assert payload.transcript_path == "/tmp/transcript.txt"

    def test_failure_payload_has_no_transcript(self, callback_settings):
        session = _finished_session()
        dispatcher = CallbackDispatcher(callback_settings)

        payload = dispatcher.build_failure_payload(session, "Admission timed out")

        assert payload.status == "FAILED"
        assert payload.transcripts == []
        assert payload.total_entries == 0
        assert payload.error_message == "Admission timed out"


# ── Delivery ────────────────────────────────────────────────────────────────


class TestDelivery:
    @pytest.mark.asyncio
    async def test_delivers_json_body(self, callback_settings, webhook):
        dispatcher = _dispatcher(callback_settings, webhook)

        task = dispatcher.deliver(_finished_session(), "/tmp/transcript.txt")

        assert await task is True
        assert len(webhook.requests) == 1
        request = webhook.requests[0]
        assert request.method == "POST"
        assert str(request.url) == CALLBACK_URL
        body = webhook.bodies[0]
        assert body["uuid"] == "meeting-1"
        assert body["status"] == "COMPLETED"
        assert body["total_entries"] == 2
        assert body["transcripts"][1] == {
            "speaker": "Bob",
            "text": "Hi Alice",
            "timestamp": "2024-01-15T10:00:06Z",
        }

    @pytest.mark.asyncio
    async def test_server_errors_retried_until_exhausted(self, callback_settings):
        recorder = WebhookRecorder(statuses=[503])
        dispatcher = _dispatcher(callback_settings, recorder)

        assert await dispatcher.deliver(_finished_session()) is False
        assert len(recorder.requests) == callback_settings.max_attempts

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, callback_settings):
        recorder = WebhookRecorder(statuses=[404])
        dispatcher = _dispatcher(callback_settings, recorder)

        assert await dispatcher.deliver(_finished_session()) is False
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, callback_settings):
        recorder = WebhookRecorder(statuses=[429, 200])
        dispatcher = _dispatcher(callback_settings, recorder)

        assert await dispatcher.deliver(_finished_session()) is True
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_connection_error_retried(self, callback_settings):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("Connection refused", request=request)
            return httpx.Response(200)

        dispatcher = CallbackDispatcher(callback_settings, transport=httpx.MockTransport(handler))

        assert await dispatcher.deliver(_finished_session()) is True
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_failure_callback(self, callback_settings, webhook):
        dispatcher = _dispatcher(callback_settings, webhook)

        assert await dispatcher.deliver_failure(_finished_session(), "Join blocked") is True

        body = webhook.bodies[0]
        assert body["status"] == "FAILED"
        assert body["transcripts"] == []
        assert body["error_message"] == "Join blocked"

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending(self, callback_settings, webhook):
        dispatcher = _dispatcher(callback_settings, webhook)

        dispatcher.deliver(_finished_session())
        dispatcher.deliver(_finished_session())
        await dispatcher.drain()

        assert dispatcher.pending == 0
        assert len(webhook.requests) == 2


class TestIsTransient:
    @staticmethod
    def _status_error(code: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", CALLBACK_URL)
        response = httpx.Response(code, request=request)
        return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)

    @pytest.mark.parametrize("code,expected", [(500, True), (503, True), (429, True), (400, False), (404, False)])
    def test_status_codes(self, code, expected):
        assert is_transient(self._status_error(code)) is expected

    def test_transport_errors(self):
        request = httpx.Request("POST", CALLBACK_URL)
        assert is_transient(httpx.ReadTimeout("timed out", request=request)) is True
        assert is_transient(ValueError("bad")) is False
