"""
Execution orchestrator: one attempt of one schedule.

    create_run -> engine.analyze -> save_result -> complete_run
               -> advance_schedule -> success notification

Any engine or persistence failure takes the failure path instead: fail_run,
advance to the next natural slot (no immediate retry), failure notification.
If even fail_run cannot be written, an escalation names the orphaned run and
the stuck-run reaper is left as the backstop. A run the reaper has already
failed is superseded: its late finish neither advances the schedule nor
notifies. execute() never raises.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.database import utcnow
from app.schemas.schedules import ScheduleSnapshot
from app.services.analyze import AnalysisEngine, TaskIdentity
from app.services.errors import RunConflict
from app.services.next_run import compute_next_run
from app.services.notifications import (
    advance_failed_message,
    failure_message,
    manual_intervention_message,
    success_message,
)

logger = logging.getLogger("geosched.orchestrator")

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"  # another execution holds the running slot
OUTCOME_ERROR = "error"  # storage trouble outside the engine call
OUTCOME_SUPERSEDED = "superseded"  # run was reaped before it could complete


@dataclass
class ExecutionOutcome:
    schedule_id: int
    status: str
    run_id: int | None = None
    next_run_at: datetime | None = None
    error_message: str | None = None

    @property
    def is_error(self) -> bool:
        return self.status in (OUTCOME_FAILED, OUTCOME_ERROR)


class ExecutionOrchestrator:
    def __init__(
        self,
        store,
        engine: AnalysisEngine,
        dispatcher,
        clock: Callable[[], datetime] = utcnow,
        channel: str | None = None,
        notify_owner_email: bool = False,
    ):
        self.store = store
        self.engine = engine
        self.dispatcher = dispatcher
        self._clock = clock
        self.channel = channel
        self.notify_owner_email = notify_owner_email

    def execute(self, schedule: ScheduleSnapshot) -> ExecutionOutcome:
        try:
            run_id = self.store.create_run(schedule.id, schedule.next_run_at)
        except RunConflict:
            logger.info("Schedule %s already has a running instance, skipping", schedule.id)
            return ExecutionOutcome(schedule.id, OUTCOME_SKIPPED)
        except Exception as e:
            logger.exception("Could not open a run for schedule %s", schedule.id)
            return ExecutionOutcome(schedule.id, OUTCOME_ERROR, error_message=str(e))

        logger.info("Executing scheduled analysis %s (run %s) for %s", schedule.id, run_id, schedule.task_label)
        try:
            output = self.engine.analyze(
                TaskIdentity(client_name=schedule.client_name, keyword=schedule.keyword),
                {
                    "engine_ids": list(schedule.engine_ids),
                    "custom_prompt": schedule.custom_prompt,
                    "analysis_type": schedule.analysis_type,
                    "intent_category": schedule.intent_category,
                },
            )
        except Exception as e:
            logger.warning("Analysis failed for schedule %s (run %s): %s", schedule.id, run_id, e)
            return self._fail(schedule, run_id, str(e) or type(e).__name__)

        try:
            result_id = self.store.save_result(schedule, output)
            completed = self.store.complete_run(run_id, result_id)
        except Exception as e:
            logger.exception("Could not persist result of run %s", run_id)
            return self._fail(schedule, run_id, f"Failed to persist analysis result: {e}")

        if not completed:
            # The reaper already failed this run and owns the schedule's next slot
            logger.warning(
                "Run %s of schedule %s was reaped before completing; result %s discarded",
                run_id,
                schedule.id,
                result_id,
            )
            return self._superseded(schedule, run_id)

        next_run_at = self.next_run_at(schedule)
        try:
            self.store.advance_schedule(schedule.id, next_run_at)
        except Exception as e:
            logger.exception("Could not advance schedule %s after run %s", schedule.id, run_id)
            self._notify(advance_failed_message(schedule, str(e)))
            return ExecutionOutcome(schedule.id, OUTCOME_ERROR, run_id=run_id, error_message=str(e))

        self._notify(success_message(schedule, schedule.run_count + 1, next_run_at))
        logger.info("Completed scheduled analysis %s (run %s), next run %s", schedule.id, run_id, next_run_at)
        return ExecutionOutcome(schedule.id, OUTCOME_COMPLETED, run_id=run_id, next_run_at=next_run_at)

    def next_run_at(self, schedule: ScheduleSnapshot) -> datetime:
        """Strictly after both now and the slot being satisfied, so manual runs never repeat a slot."""
        base = max(self._clock(), schedule.next_run_at)
        try:
            return compute_next_run(schedule.rule, base)
        except (ValueError, KeyError):
            logger.exception("Invalid frequency rule on schedule %s; retrying in one day", schedule.id)
            return base + timedelta(days=1)

    def _fail(self, schedule: ScheduleSnapshot, run_id: int, error_message: str) -> ExecutionOutcome:
        status = OUTCOME_FAILED
        try:
            if not self.store.fail_run(run_id, error_message):
                logger.warning("Run %s of schedule %s was reaped before failing", run_id, schedule.id)
                return self._superseded(schedule, run_id)
        except Exception as e:
            logger.exception("Failed to update run record %s as failed", run_id)
            self._notify(manual_intervention_message(run_id, schedule, str(e)))
            status = OUTCOME_ERROR

        next_run_at: datetime | None = self.next_run_at(schedule)
        try:
            self.store.advance_schedule(schedule.id, next_run_at)
        except Exception as e:
            logger.exception("Could not advance schedule %s after failed run %s", schedule.id, run_id)
            self._notify(advance_failed_message(schedule, str(e)))
            next_run_at = None
            status = OUTCOME_ERROR

        run_number = schedule.run_count + 1
        self._notify(failure_message(schedule, run_number, error_message, next_run_at))
        if self.notify_owner_email and schedule.user_email:
            try:
                self.dispatcher.email_failure(
                    schedule.user_email, schedule.task_label, error_message, run_number, next_run_at
                )
            except Exception:
                logger.exception("Owner email for run %s failed", run_id)
        return ExecutionOutcome(
            schedule.id, status, run_id=run_id, next_run_at=next_run_at, error_message=error_message
        )

    def _superseded(self, schedule: ScheduleSnapshot, run_id: int) -> ExecutionOutcome:
        return ExecutionOutcome(
            schedule.id,
            OUTCOME_SUPERSEDED,
            run_id=run_id,
            error_message=f"Run {run_id} was marked failed by the stuck-run reaper before it finished",
        )

    def _notify(self, message: str) -> None:
        try:
            self.dispatcher.notify(message, self.channel)
        except Exception:
            logger.exception("Notification dispatch failed")
