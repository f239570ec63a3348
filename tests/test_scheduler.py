"""
Unit tests for MeetingScheduler.

Covers:
- Request validation and time zone handling
- Conflicts, id reuse and registry cleanup
- Cancellation before and during a meeting
- Completion, failure and webhook delivery
- Worker slot bound and the start-time trigger
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest

from conftest import utc_in
from meet_transcriber.callback import CallbackDispatcher
from meet_transcriber.core.exceptions import (
    JoinControlNotFoundError,
    MeetingConflictError,
    ScheduleValidationError,
)
from meet_transcriber.models import MeetingRequest, MeetingSession, MeetingStatus, TranscriptEntry
from meet_transcriber.scheduler import MeetingScheduler
from meet_transcriber.transcription import TranscriptService

CALLBACK_URL = "https://hooks.example.com/transcripts"


class FakeJoiner:
    """Stands in for MeetingJoiner; records runs and concurrency."""

    def __init__(
        self,
        wait_for_stop: bool = False,
        hold: float = 0,
        error: Optional[Exception] = None,
    ) -> None:
        self.wait_for_stop = wait_for_stop
        self.hold = hold
        self.error = error
        self.started: List[str] = []
        self.active = 0
        self.peak = 0

    async def join_and_capture(self, session, stop_event: asyncio.Event) -> None:
        self.started.append(session.uuid)
        session.transition(MeetingStatus.JOINING)
        if self.error is not None:
            raise self.error

        session.transition(MeetingStatus.IN_PROGRESS)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            session.add_transcript(TranscriptEntry("Alice", "Hello there"))
            if self.wait_for_stop:
                await stop_event.wait()
            else:
                await asyncio.sleep(self.hold)
        finally:
            self.active -= 1


def _request(uuid: str = "meeting-1", start: Optional[datetime] = None, minutes: int = 60, **overrides) -> MeetingRequest:
    start = start or utc_in(3600)
    fields = dict(
        meet_url="https://meet.google.com/abc-defg-hij",
        uuid=uuid,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        time_zone="UTC",
        callback_url=CALLBACK_URL,
    )
    fields.update(overrides)
    return MeetingRequest(**fields)


async def _wait_for_status(session: MeetingSession, status: MeetingStatus, timeout: float = 2) -> MeetingSession:
    # Finished sessions leave the registry, so poll the session object itself
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if session.status == status:
            return session
        await asyncio.sleep(0.01)
    raise AssertionError(f"{session.uuid} never reached {status.value}: {session.status.value}")


@pytest.fixture
def dispatcher(callback_settings, webhook):
    return CallbackDispatcher(callback_settings, transport=webhook.transport)


@pytest.fixture
def joiner():
    return FakeJoiner()


@pytest.fixture
def scheduler(app_settings, joiner, dispatcher, tmp_path):
    instance = MeetingScheduler(
        settings=app_settings,
        joiner=joiner,
        transcript_service=TranscriptService(str(tmp_path / "out")),
        dispatcher=dispatcher,
    )
    yield instance
    instance.stop()


# ── Validation ──────────────────────────────────────────────────────────────


class TestScheduleValidation:
    def test_registers_scheduled_session(self, scheduler):
        request = _request()

        session = scheduler.schedule_meeting(request)

        assert session.status == MeetingStatus.SCHEDULED
        assert session.start_time == request.start_time
        assert session.end_time == request.end_time
        assert scheduler.get_status("meeting-1")["status"] == "SCHEDULED"
        assert [job["id"] for job in scheduler.get_upcoming_jobs()] == ["join_meeting-1"]
        assert scheduler.scheduled_count == 1

    def test_end_not_after_start(self, scheduler):
        with pytest.raises(ScheduleValidationError):
            scheduler.schedule_meeting(_request(minutes=0))
        assert scheduler.get_status("meeting-1") is None

    def test_start_in_the_past(self, scheduler):
        with pytest.raises(ScheduleValidationError):
            scheduler.schedule_meeting(_request(start=utc_in(-3600)))
        assert scheduler.get_status("meeting-1") is None

    def test_unknown_time_zone(self, scheduler):
        with pytest.raises(ScheduleValidationError):
            scheduler.schedule_meeting(_request(time_zone="Mars/Olympus_Mons"))

    def test_naive_times_use_request_zone(self, scheduler):
        naive_start = datetime(datetime.now().year + 1, 1, 15, 9, 0)
        request = _request(start=naive_start, time_zone="America/New_York")

        session = scheduler.schedule_meeting(request)

        assert session.start_time.utcoffset() == timedelta(hours=-5)
        assert session.start_time.astimezone(timezone.utc).hour == 14


# ── Conflicts and cancellation ──────────────────────────────────────────────


class TestCancellation:
    def test_duplicate_active_id_conflicts(self, scheduler):
        scheduler.schedule_meeting(_request())

        with pytest.raises(MeetingConflictError):
            scheduler.schedule_meeting(_request())

    def test_id_reusable_after_cancel(self, scheduler):
        first = scheduler.schedule_meeting(_request())
        assert scheduler.cancel_meeting("meeting-1") is True
        assert scheduler.get_status("meeting-1") is None

        session = scheduler.schedule_meeting(_request())

        assert session is not first
        assert first.status == MeetingStatus.CANCELLED
        assert session.status == MeetingStatus.SCHEDULED
        assert scheduler.get_status("meeting-1")["status"] == "SCHEDULED"

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, scheduler, joiner, webhook):
        session = scheduler.schedule_meeting(_request())

        assert scheduler.cancel_meeting("meeting-1") is True
        await asyncio.sleep(0.05)

        assert session.status == MeetingStatus.CANCELLED
        assert scheduler.get_status("meeting-1") is None
        assert scheduler.get_upcoming_jobs() == []
        assert joiner.started == []
        assert webhook.requests == []
        assert scheduler.cancel_meeting("meeting-1") is False

    def test_cancel_unknown(self, scheduler):
        assert scheduler.cancel_meeting("nope") is False

    @pytest.mark.asyncio
    async def test_cancel_in_progress_delivers_transcript(self, app_settings, dispatcher, webhook, tmp_path):
        joiner = FakeJoiner(wait_for_stop=True)
        scheduler = MeetingScheduler(app_settings, joiner, TranscriptService(str(tmp_path)), dispatcher)

        session = scheduler.schedule_meeting(_request(start=utc_in(0)))
        await _wait_for_status(session, MeetingStatus.IN_PROGRESS)
        assert scheduler.get_active_meeting_count() == 1
        assert scheduler.get_status("meeting-1")["status"] == "IN_PROGRESS"

        assert scheduler.cancel_meeting("meeting-1") is True
        await _wait_for_status(session, MeetingStatus.CANCELLED)
        await dispatcher.drain()

        assert len(session.transcripts) == 1
        assert scheduler.get_status("meeting-1") is None
        assert webhook.bodies[0]["status"] == "CANCELLED"
        assert webhook.bodies[0]["transcripts"][0]["speaker"] == "Alice"

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_slot(self, app_settings, dispatcher, webhook, tmp_path):
        joiner = FakeJoiner(wait_for_stop=True)
        scheduler = MeetingScheduler(app_settings, joiner, TranscriptService(str(tmp_path)), dispatcher)

        sessions = {uuid: scheduler.schedule_meeting(_request(uuid=uuid, start=utc_in(0))) for uuid in ("a", "b", "c")}
        await _wait_for_status(sessions["a"], MeetingStatus.IN_PROGRESS)
        await _wait_for_status(sessions["b"], MeetingStatus.IN_PROGRESS)

        assert scheduler.cancel_meeting("c") is True
        assert sessions["c"].status == MeetingStatus.CANCELLED
        assert scheduler.get_status("c") is None

        await scheduler.drain()

        assert "c" not in joiner.started
        assert sorted(body["uuid"] for body in webhook.bodies) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_reused_id_while_old_run_waits_for_slot(self, app_settings, dispatcher, webhook, tmp_path):
        joiner = FakeJoiner(wait_for_stop=True)
        scheduler = MeetingScheduler(app_settings, joiner, TranscriptService(str(tmp_path)), dispatcher)

        for uuid in ("a", "b"):
            session = scheduler.schedule_meeting(_request(uuid=uuid, start=utc_in(0)))
            await _wait_for_status(session, MeetingStatus.IN_PROGRESS)

        old = scheduler.schedule_meeting(_request(uuid="c", start=utc_in(0)))
        assert scheduler.cancel_meeting("c") is True
        new = scheduler.schedule_meeting(_request(uuid="c", start=utc_in(0)))
        assert scheduler.get_status("c")["status"] == "SCHEDULED"

        await scheduler.drain()

        # Both runs of "c" were awaited, neither reached the joiner
        meeting_tasks = [t for t in asyncio.all_tasks() if t.get_name().startswith("meeting_")]
        assert all(t.done() for t in meeting_tasks)
        assert joiner.started == ["a", "b"]
        assert old.status == MeetingStatus.CANCELLED
        assert new.status == MeetingStatus.CANCELLED
        assert scheduler.get_status("c") is None
        assert sorted(body["uuid"] for body in webhook.bodies) == ["a", "b"]


# ── Registry ────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_cancelled_sessions_leave_registry(self, scheduler):
        uuids = [f"meeting-{i}" for i in range(50)]
        for uuid in uuids:
            scheduler.schedule_meeting(_request(uuid=uuid))
        assert scheduler.scheduled_count == len(uuids)

        for uuid in uuids:
            assert scheduler.cancel_meeting(uuid) is True

        assert scheduler.scheduled_count == 0
        assert scheduler.get_scheduled_meetings() == []
        assert scheduler.get_upcoming_jobs() == []
        assert all(scheduler.get_status(uuid) is None for uuid in uuids)

    @pytest.mark.asyncio
    async def test_completed_session_leaves_registry(self, scheduler, joiner, dispatcher):
        first = scheduler.schedule_meeting(_request(start=utc_in(0)))
        await _wait_for_status(first, MeetingStatus.COMPLETED)
        await dispatcher.drain()

        assert scheduler.get_status("meeting-1") is None
        assert scheduler.scheduled_count == 0
        assert scheduler.cancel_meeting("meeting-1") is False

        again = scheduler.schedule_meeting(_request(start=utc_in(0)))
        await _wait_for_status(again, MeetingStatus.COMPLETED)
        await dispatcher.drain()

        assert joiner.started == ["meeting-1", "meeting-1"]


# ── Execution ───────────────────────────────────────────────────────────────


class TestExecution:
    @pytest.mark.asyncio
    async def test_immediate_start_completes(self, scheduler, dispatcher, webhook):
        session = scheduler.schedule_meeting(_request(start=utc_in(0)))

        await _wait_for_status(session, MeetingStatus.COMPLETED)
        await dispatcher.drain()

        assert session.actual_start is not None
        assert session.actual_end is not None
        assert len(webhook.requests) == 1
        body = webhook.bodies[0]
        assert body["status"] == "COMPLETED"
        assert body["total_entries"] == 1
        assert Path(body["transcript_path"]).is_file()

    @pytest.mark.asyncio
    async def test_failure_reported(self, app_settings, dispatcher, webhook, tmp_path):
        error = JoinControlNotFoundError(
            "Could not find any join button",
            details={"screenshot": "/tmp/join-failed_meeting-1.png"},
        )
        scheduler = MeetingScheduler(app_settings, FakeJoiner(error=error), TranscriptService(str(tmp_path)), dispatcher)

        session = scheduler.schedule_meeting(_request(start=utc_in(0)))
        await _wait_for_status(session, MeetingStatus.FAILED)
        await dispatcher.drain()

        assert session.error_message == "Could not find any join button"
        assert session.failure_screenshot == "/tmp/join-failed_meeting-1.png"
        assert scheduler.get_status("meeting-1") is None
        body = webhook.bodies[0]
        assert body["status"] == "FAILED"
        assert body["error_message"] == "Could not find any join button"
        assert body["transcripts"] == []

    @pytest.mark.asyncio
    async def test_worker_slots_bound_concurrency(self, app_settings, dispatcher, webhook, tmp_path):
        joiner = FakeJoiner(hold=0.05)
        scheduler = MeetingScheduler(app_settings, joiner, TranscriptService(str(tmp_path)), dispatcher)
        uuids = [f"meeting-{i}" for i in range(5)]

        sessions = [scheduler.schedule_meeting(_request(uuid=uuid, start=utc_in(0))) for uuid in uuids]
        for session in sessions:
            await _wait_for_status(session, MeetingStatus.COMPLETED)
        await dispatcher.drain()

        assert joiner.peak == app_settings.scheduler.max_concurrent_meetings
        assert len(webhook.requests) == len(uuids)

    @pytest.mark.asyncio
    async def test_trigger_fires_at_start_time(self, scheduler, joiner, dispatcher, webhook):
        scheduler.start()
        assert scheduler.is_running

        session = scheduler.schedule_meeting(_request(start=utc_in(0.3)))
        assert scheduler.get_status("meeting-1")["status"] == "SCHEDULED"

        await _wait_for_status(session, MeetingStatus.COMPLETED, timeout=5)
        await dispatcher.drain()

        assert joiner.started == ["meeting-1"]
        assert webhook.bodies[0]["status"] == "COMPLETED"

        scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_drain_stops_running_sessions(self, app_settings, dispatcher, webhook, tmp_path):
        scheduler = MeetingScheduler(
            app_settings, FakeJoiner(wait_for_stop=True), TranscriptService(str(tmp_path)), dispatcher
        )
        session = scheduler.schedule_meeting(_request(start=utc_in(0)))
        await _wait_for_status(session, MeetingStatus.IN_PROGRESS)

        await scheduler.drain()

        assert session.status == MeetingStatus.CANCELLED
        assert webhook.bodies[0]["status"] == "CANCELLED"
