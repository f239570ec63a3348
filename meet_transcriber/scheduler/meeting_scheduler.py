"""
Meeting scheduler using APScheduler.
Registers meeting sessions, fires them at their start time and runs each
one on a bounded pool of worker slots.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.events import (
    EVENT_JOB_EXECUTED,
    EVENT_JOB_ERROR,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)

from meet_transcriber.callback import CallbackDispatcher
from meet_transcriber.config import Settings, settings as app_settings
from meet_transcriber.core.exceptions import (
    MeetingConflictError,
    MeetingJoinError,
    ScheduleValidationError,
)
from meet_transcriber.core.logging import get_logger, get_session_logger
from meet_transcriber.meeting_handler import MeetingJoiner
from meet_transcriber.models import MeetingRequest, MeetingSession, MeetingStatus, utc_now
from meet_transcriber.transcription import TranscriptService

logger = get_logger("scheduler")

UTC = ZoneInfo("UTC")
ACTIVE_STATUSES = (MeetingStatus.JOINING, MeetingStatus.IN_PROGRESS)


class MeetingScheduler:
    """
    Scheduler for meeting sessions.
    Uses APScheduler for the start-time trigger and an asyncio semaphore
    for the worker slots.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        joiner: Optional[MeetingJoiner] = None,
        transcript_service: Optional[TranscriptService] = None,
        dispatcher: Optional[CallbackDispatcher] = None,
    ):
        """Initialize the meeting scheduler."""
        self._app_settings = settings or app_settings
        self._settings = self._app_settings.scheduler
        self._is_running: bool = False

        self._joiner = joiner or MeetingJoiner(
            self._app_settings.bot, screenshot_dir=self._app_settings.transcripts_dir
        )
        self._transcripts = transcript_service or TranscriptService(self._app_settings.transcripts_dir)
        self._dispatcher = dispatcher or CallbackDispatcher(self._app_settings.callback)

        # Configure job stores
        jobstores = {
            'default': MemoryJobStore()
        }

        # Create scheduler
        self._scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            timezone=UTC
        )

        # Live sessions only; a session leaves once it reaches a terminal status
        self._sessions: Dict[str, MeetingSession] = {}
        self._stop_flags: Dict[str, asyncio.Event] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._slots = asyncio.Semaphore(self._settings.max_concurrent_meetings)

        # Add event listeners
        self._scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
        )

    def start(self) -> None:
        """Start the scheduler."""
        if not self._is_running:
            self._scheduler.start()
            self._is_running = True
            logger.info(
                f"Meeting scheduler started "
                f"(max {self._settings.max_concurrent_meetings} concurrent meetings)"
            )

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            return

        try:
            # Avoid calling into a closed event loop (e.g. during test teardown)
            loop = getattr(self._scheduler, "_eventloop", None)
            if self._scheduler.running and not (loop and loop.is_closed()):
                self._scheduler.shutdown(wait=False)
            logger.info("Meeting scheduler stopped")
        finally:
            self._is_running = False

    async def drain(self) -> None:
        """Stop every running session and wait for it and its callback."""
        for stop_event in self._stop_flags.values():
            stop_event.set()

        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} meeting session(s) to finish...")
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await self._dispatcher.drain()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_meeting(self, request: MeetingRequest) -> MeetingSession:
        """
        Register a meeting session and arm its start trigger.

        Args:
            request: Validated schedule request.

        Returns:
            The new session, in SCHEDULED status.

        Raises:
            ScheduleValidationError: Bad zone, start too far in the past,
                or end not after start.
            MeetingConflictError: A session with the same id is still active.
        """
        start, end = self._resolve_times(request)

        now = utc_now()
        grace = timedelta(seconds=self._settings.start_grace_seconds)
        if start < now - grace:
            raise ScheduleValidationError(
                f"start_time {start.isoformat()} is in the past",
                details={"field": "start_time"},
            )
        if end <= start:
            raise ScheduleValidationError(
                "end_time must be after start_time",
                details={"field": "end_time"},
            )

        existing = self._sessions.get(request.uuid)
        if existing is not None:
            raise MeetingConflictError(
                f"Meeting {request.uuid} is already {existing.status.value}",
                details={"uuid": request.uuid, "status": existing.status.value},
            )

        session = MeetingSession(
            uuid=request.uuid,
            meet_url=request.meet_url,
            start_time=start,
            end_time=end,
            callback_url=request.callback_url,
        )
        self._sessions[session.uuid] = session
        self._stop_flags[session.uuid] = asyncio.Event()

        log = get_session_logger("scheduler", session.uuid)
        if start <= now:
            log.info("Start time already reached, joining now")
            self._spawn(session.uuid)
        else:
            self._scheduler.add_job(
                self._trigger_session,
                trigger=DateTrigger(run_date=start, timezone=UTC),
                args=[session.uuid],
                id=f"join_{session.uuid}",
                name=f"Join: {session.uuid}",
                replace_existing=True,
                misfire_grace_time=None,  # Late is better than never
                coalesce=True,
            )

        log.info(
            f"Scheduled meeting {session.meet_url} "
            f"(join at {start.strftime('%Y-%m-%d %H:%M:%S %Z')}, "
            f"end at {end.strftime('%Y-%m-%d %H:%M:%S %Z')})"
        )
        return session

    def _resolve_times(self, request: MeetingRequest) -> Tuple[datetime, datetime]:
        """Attach the request's zone to naive times, convert aware ones."""
        try:
            zone = ZoneInfo(request.time_zone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ScheduleValidationError(
                f"Unknown time zone: {request.time_zone}",
                details={"field": "time_zone"},
            ) from e

        def localize(value: datetime) -> datetime:
            if value.tzinfo is None:
                return value.replace(tzinfo=zone)
            return value.astimezone(zone)

        return localize(request.start_time), localize(request.end_time)

    async def _trigger_session(self, uuid: str) -> None:
        """
        Start-time job. Only spawns the session task so the job never
        waits on a worker slot.
        """
        log = get_session_logger("scheduler", uuid)
        log.info("Time to join meeting")
        session = self._sessions.get(uuid)
        if session is None or session.status != MeetingStatus.SCHEDULED:
            log.debug("Trigger fired for a session that is no longer scheduled")
            return
        self._spawn(uuid)

    def _spawn(self, uuid: str) -> asyncio.Task:
        # Bind this run's handles now; a cancel may retire them before the task starts
        session = self._sessions[uuid]
        stop_event = self._stop_flags[uuid]
        task = asyncio.create_task(self._execute_meeting(session, stop_event), name=f"meeting_{uuid}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute_meeting(self, session: MeetingSession, stop_event: asyncio.Event) -> None:
        log = get_session_logger("scheduler", session.uuid)

        try:
            async with self._slots:
                if stop_event.is_set() or session.is_terminal:
                    if not session.is_terminal:
                        # Drained before it ever ran
                        session.transition(MeetingStatus.CANCELLED)
                    log.info("Cancelled before a worker slot was free, skipping")
                    return

                log.info("Worker slot acquired, starting meeting session")
                try:
                    await self._joiner.join_and_capture(session, stop_event)
                except Exception as e:
                    self._fail(session, e)
                    return

                if stop_event.is_set():
                    session.transition(MeetingStatus.CANCELLED)
                    log.info("Meeting session CANCELLED")
                else:
                    session.transition(MeetingStatus.COMPLETED)
                    log.info("Meeting session COMPLETED")

                transcript_path = self._transcripts.save(session)
                self._dispatcher.deliver(session, transcript_path)
        finally:
            self._retire(session, stop_event)

    def _fail(self, session: MeetingSession, error: Exception) -> None:
        log = get_session_logger("scheduler", session.uuid)
        message = str(error) or error.__class__.__name__
        screenshot = error.screenshot if isinstance(error, MeetingJoinError) else None

        log.error(f"Meeting session FAILED: {message}")
        if screenshot:
            log.error(f"Failure screenshot: {screenshot}")

        if session.status == MeetingStatus.SCHEDULED:
            # Failed before the join step began
            session.transition(MeetingStatus.JOINING)
        session.fail(message, screenshot)
        self._dispatcher.deliver_failure(session, message)

    def _retire(self, session: MeetingSession, stop_event: Optional[asyncio.Event]) -> None:
        """Drop a finished run from the registry, leaving a newer run of the same id alone."""
        uuid = session.uuid
        if stop_event is not None and self._stop_flags.get(uuid) is stop_event:
            del self._stop_flags[uuid]
        if self._sessions.get(uuid) is session:
            del self._sessions[uuid]
        get_session_logger("scheduler", uuid).debug("Retired meeting session")

    # ------------------------------------------------------------------
    # Control and status
    # ------------------------------------------------------------------

    def cancel_meeting(self, uuid: str) -> bool:
        """
        Cancel a meeting.

        A scheduled meeting is cancelled on the spot with no callback. A
        running one is signalled to stop; its worker finishes the
        cancellation and still delivers the transcript.

        Returns:
            False if the id is unknown or already finished.
        """
        session = self._sessions.get(uuid)
        if session is None or session.is_terminal:
            return False

        log = get_session_logger("scheduler", uuid)
        stop_event = self._stop_flags.get(uuid)
        if stop_event is not None:
            stop_event.set()

        if session.status == MeetingStatus.SCHEDULED:
            try:
                self._scheduler.remove_job(f"join_{uuid}")
            except JobLookupError:
                log.debug("No pending join job to remove")
            session.transition(MeetingStatus.CANCELLED)
            # A task still waiting on a slot retires it again; that second pass is a no-op
            self._retire(session, stop_event)
            log.info("Cancelled scheduled meeting")
            return True

        log.info(f"Stop requested for {session.status.value} meeting")
        return True

    def get_status(self, uuid: str) -> Optional[dict]:
        """
        Get a snapshot of a meeting session.

        Returns:
            Snapshot dict, or None if the id is unknown or its session finished.
        """
        session = self._sessions.get(uuid)
        return session.snapshot() if session is not None else None

    def get_active_meeting_count(self) -> int:
        """Sessions currently joining or in a meeting."""
        return sum(1 for s in self._sessions.values() if s.status in ACTIVE_STATUSES)

    def get_scheduled_meetings(self) -> List[MeetingSession]:
        """
        Get all sessions that have not finished yet.

        Returns:
            List of non-terminal sessions.
        """
        return [s for s in self._sessions.values() if not s.is_terminal]

    def get_upcoming_jobs(self) -> List[dict]:
        """
        Get information about upcoming scheduled jobs.

        Returns:
            List of job info dictionaries.
        """
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger)
            })
        return jobs

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        """
        Handle scheduler job events.

        Args:
            event: Job execution event.
        """
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Job {event.job_id} missed its run time")
        elif event.exception:
            logger.error(f"Job {event.job_id} failed: {event.exception}")
        elif event.scheduled_run_time:
            delay = (datetime.now(UTC) - event.scheduled_run_time).total_seconds()
            if delay > 60:
                logger.warning(f"Job {event.job_id} was delayed by {delay:.0f} seconds")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._is_running

    @property
    def scheduled_count(self) -> int:
        """Get count of sessions that have not finished."""
        return len(self.get_scheduled_meetings())
