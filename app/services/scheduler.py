"""
Scheduler trigger surface.

Every entry point funnels into the same pipeline:

    tick()          reap stuck runs -> select due schedules -> execute each
    run_schedule()  manual trigger: skips the due-time check, still guarded by create_run

The periodic trigger is a daemon thread calling tick() every
`interval_seconds`; the cron endpoint and `python -m app.worker --once` call
tick() directly.

Usage:
    scheduler = build_scheduler()
    scheduler.start()   # returns immediately
    ...
    scheduler.stop()
"""
import logging
import threading
import traceback
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.engine import Engine

from app.core.config import settings
from app.core.database import utcnow
from app.schemas.schedules import ScheduleSnapshot
from app.services.analyze import AnalysisEngine
from app.services.notifications import reaped_runs_message, scheduler_error_message
from app.services.orchestrator import ExecutionOrchestrator, ExecutionOutcome
from app.services.reaper import DEFAULT_STUCK_RUN_TIMEOUT, StuckRunReaper
from app.services.schedule_store import ScheduleStore
from app.services.selector import DueScheduleSelector

logger = logging.getLogger("geosched.scheduler")


@dataclass
class TickResult:
    processed: int
    errors: int
    reaped: int
    timestamp: str
    outcomes: list[ExecutionOutcome] = field(default_factory=list)


class Scheduler:
    def __init__(
        self,
        store: ScheduleStore,
        engine: AnalysisEngine,
        dispatcher,
        interval_seconds: int = 60,
        max_workers: int = 1,
        stuck_run_timeout: timedelta = DEFAULT_STUCK_RUN_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        channel: str | None = None,
        notify_owner_email: bool = False,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.channel = channel
        self.interval_seconds = interval_seconds
        self.max_workers = max(1, max_workers)
        self.reaper = StuckRunReaper(store, timeout=stuck_run_timeout, clock=clock)
        self.selector = DueScheduleSelector(store, clock=clock)
        self.orchestrator = ExecutionOrchestrator(
            store,
            engine,
            dispatcher,
            clock=clock,
            channel=channel,
            notify_owner_email=notify_owner_email,
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_lock = threading.Lock()
        self._clock = clock

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> TickResult:
        """One pass: reap, select, execute. Storage failures here are logged, notified and re-raised."""
        started = self._clock().replace(tzinfo=timezone.utc).isoformat()
        try:
            reaped = self.reap()
            due = self.selector.select_due()
        except Exception as e:
            logger.exception("Error in scheduler tick")
            self._notify(scheduler_error_message(str(e)))
            raise

        if not due:
            logger.info("No scheduled analyses due at this time")
            return TickResult(processed=0, errors=0, reaped=reaped, timestamp=started)

        logger.info("Found %s scheduled analyses due for execution", len(due))
        outcomes = self._execute_all(due)
        errors = sum(1 for o in outcomes if o.is_error)
        logger.info("Completed processing %s scheduled analyses (%s errors)", len(due), errors)
        return TickResult(
            processed=len(due), errors=errors, reaped=reaped, timestamp=started, outcomes=outcomes
        )

    def reap(self) -> int:
        """Fail stuck runs now; a non-zero count is also posted to the channel."""
        reaped = self.reaper.reap()
        if reaped:
            self._notify(reaped_runs_message(reaped, int(self.reaper.timeout.total_seconds() // 60)))
        return reaped

    def run_schedule(self, schedule: ScheduleSnapshot) -> ExecutionOutcome:
        """Manual trigger: immediate execution of one schedule, no due-time check."""
        logger.info("Manual execution of schedule %s requested", schedule.id)
        return self.orchestrator.execute(schedule)

    def _execute_all(self, due: list[ScheduleSnapshot]) -> list[ExecutionOutcome]:
        if self.max_workers == 1 or len(due) == 1:
            return [self.orchestrator.execute(s) for s in due]
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="geosched-run") as pool:
            return list(pool.map(self.orchestrator.execute, due))

    def start(self) -> None:
        """Start the periodic trigger thread (no-op when already running)."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="geosched-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started (check every %ds)", self.interval_seconds)

    def stop(self, timeout: float = 30.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    def wait(self) -> None:
        """Block until stop() is called (standalone worker)."""
        while not self._stop.wait(1.0):
            pass

    def _loop(self) -> None:
        while not self._stop.is_set():
            # Overlapping ticks within one process would only produce RunConflict skips
            if self._tick_lock.acquire(blocking=False):
                try:
                    self.tick()
                except Exception as e:
                    self.store.record_error("scheduler", str(e), traceback.format_exc())
                finally:
                    self._tick_lock.release()
            self._stop.wait(self.interval_seconds)

    def _notify(self, message: str) -> None:
        try:
            self.dispatcher.notify(message, self.channel)
        except Exception:
            logger.exception("Notification dispatch failed")


def build_scheduler(bind: Engine | None = None, engine: AnalysisEngine | None = None, dispatcher=None) -> Scheduler:
    """Scheduler wired from settings: SQL store, OpenAI engine, Slack/email dispatcher."""
    from app.core.database import engine as default_bind
    from app.services.analyze import OpenAIAnalysisEngine
    from app.services.notifications import NotificationDispatcher

    return Scheduler(
        store=ScheduleStore(bind or default_bind),
        engine=engine or OpenAIAnalysisEngine(),
        dispatcher=dispatcher or NotificationDispatcher(),
        interval_seconds=settings.scheduler_interval_seconds,
        max_workers=settings.scheduler_max_workers,
        stuck_run_timeout=timedelta(minutes=settings.stuck_run_timeout_minutes),
        channel=settings.slack_channel,
        notify_owner_email=settings.notify_owner_email,
    )
