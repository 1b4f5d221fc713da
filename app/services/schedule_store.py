"""
Schedule store: every read/write the scheduler core performs on
scheduled_analyses, scheduled_runs and analysis_results.

Correctness under concurrent triggers lives here, not in process locks:
create_run() is a count-then-insert inside one transaction, backed by the
partial unique index on running runs, so competing attempts for the same
schedule resolve to exactly one row and RunConflict for the rest.
"""
import json
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import exists, func, insert, select as sa_select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from app.core.database import utcnow
from app.models import AnalysisResult, ErrorLog, ScheduledAnalysis, ScheduledRun, User
from app.models.scheduled_analysis import RUN_COMPLETED, RUN_FAILED, RUN_RUNNING
from app.services.errors import PersistenceFailure, RunConflict

logger = logging.getLogger("geosched.store")

_runs = ScheduledRun.__table__
_schedules = ScheduledAnalysis.__table__
_results = AnalysisResult.__table__

# (schedule row, owner name, owner email)
ScheduleRow = tuple[ScheduledAnalysis, str | None, str | None]


class ScheduleStore:
    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self._clock = clock

    def list_due_schedules(self, now: datetime | None = None) -> list[ScheduleRow]:
        """Active schedules with next_run_at <= now and no running run, oldest-due first."""
        now = now or self._clock()
        running = exists().where(
            col(ScheduledRun.scheduled_analysis_id) == col(ScheduledAnalysis.id),
            col(ScheduledRun.status) == RUN_RUNNING,
        )
        stmt = (
            select(ScheduledAnalysis, User.name, User.email)
            .join(User, col(User.id) == col(ScheduledAnalysis.user_id), isouter=True)
            .where(
                col(ScheduledAnalysis.is_active).is_(True),
                col(ScheduledAnalysis.next_run_at) <= now,
                ~running,
            )
            .order_by(col(ScheduledAnalysis.next_run_at).asc(), col(ScheduledAnalysis.id).asc())
        )
        try:
            with Session(self.engine) as db:
                return [tuple(row) for row in db.exec(stmt).all()]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not list due schedules: {e}") from e

    def get_schedule(self, schedule_id: int) -> ScheduleRow | None:
        stmt = (
            select(ScheduledAnalysis, User.name, User.email)
            .join(User, col(User.id) == col(ScheduledAnalysis.user_id), isouter=True)
            .where(col(ScheduledAnalysis.id) == schedule_id)
        )
        try:
            with Session(self.engine) as db:
                row = db.exec(stmt).first()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load schedule {schedule_id}: {e}") from e
        return tuple(row) if row else None

    def create_run(self, schedule_id: int, scheduled_for: datetime) -> int:
        """Open a running run; RunConflict when one is already in flight."""
        try:
            with self.engine.begin() as conn:
                running_count = conn.execute(
                    sa_select(func.count())
                    .select_from(_runs)
                    .where(_runs.c.scheduled_analysis_id == schedule_id, _runs.c.status == RUN_RUNNING)
                ).scalar_one()
                if running_count > 0:
                    raise RunConflict(schedule_id)
                result = conn.execute(
                    insert(_runs).values(
                        scheduled_analysis_id=schedule_id,
                        scheduled_for=scheduled_for,
                        status=RUN_RUNNING,
                        started_at=self._clock(),
                    )
                )
                return int(result.inserted_primary_key[0])
        except IntegrityError as e:
            # Lost the race on the partial unique index
            raise RunConflict(schedule_id) from e
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not create run for schedule {schedule_id}: {e}") from e

    def complete_run(self, run_id: int, analysis_result_id: int) -> bool:
        return self._finish_run(run_id, RUN_COMPLETED, analysis_result_id=analysis_result_id)

    def fail_run(self, run_id: int, error_message: str) -> bool:
        return self._finish_run(run_id, RUN_FAILED, error_message=error_message)

    def _finish_run(
        self,
        run_id: int,
        status: str,
        analysis_result_id: int | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Terminal transition. False when the run was no longer running (e.g. already reaped)."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(_runs)
                    .where(_runs.c.id == run_id, _runs.c.status == RUN_RUNNING)
                    .values(
                        status=status,
                        completed_at=self._clock(),
                        analysis_result_id=analysis_result_id,
                        error_message=error_message,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not mark run {run_id} as {status}: {e}") from e
        if result.rowcount == 0:
            logger.warning("Run %s was not running anymore; %s transition ignored", run_id, status)
            return False
        return True

    def advance_schedule(self, schedule_id: int, next_run_at: datetime) -> None:
        """last_run_at, next_run_at and run_count change together in one statement."""
        now = self._clock()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    update(_schedules)
                    .where(_schedules.c.id == schedule_id)
                    .values(
                        last_run_at=now,
                        next_run_at=next_run_at,
                        run_count=_schedules.c.run_count + 1,
                        updated_at=now,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not advance schedule {schedule_id}: {e}") from e

    def reap_stale_running_runs(self, older_than: datetime, error_message: str) -> int:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(_runs)
                    .where(_runs.c.status == RUN_RUNNING, _runs.c.started_at < older_than)
                    .values(status=RUN_FAILED, completed_at=self._clock(), error_message=error_message)
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not reap stuck runs: {e}") from e
        return int(result.rowcount or 0)

    def list_stuck_runs(self, older_than: datetime) -> list[ScheduledRun]:
        stmt = (
            select(ScheduledRun)
            .where(col(ScheduledRun.status) == RUN_RUNNING, col(ScheduledRun.started_at) < older_than)
            .order_by(col(ScheduledRun.started_at).asc())
        )
        with Session(self.engine) as db:
            return list(db.exec(stmt).all())

    def save_result(self, schedule, output) -> int:
        """Persist engine output for a schedule snapshot; returns analysis_results.id."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    insert(_results).values(
                        user_id=schedule.user_id,
                        client_name=schedule.client_name,
                        keyword=schedule.keyword,
                        analysis_type=schedule.analysis_type,
                        intent_category=schedule.intent_category,
                        custom_prompt=schedule.custom_prompt,
                        results=json.dumps(output.results, ensure_ascii=False, default=str),
                        aggregated_insights=json.dumps(output.insights, ensure_ascii=False, default=str),
                        selected_engine_ids=json.dumps(list(schedule.engine_ids)),
                        timestamp=output.timestamp,
                    )
                )
                return int(result.inserted_primary_key[0])
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not save analysis result for schedule {schedule.id}: {e}") from e

    def record_error(self, source: str, error_message: str, stack_trace: str | None = None) -> None:
        """Best effort; a broken database must not take the caller down with it."""
        try:
            with Session(self.engine) as db:
                db.add(ErrorLog(
                    source=source,
                    error_message=error_message[:2000],
                    stack_trace=(stack_trace or "")[:10000] or None,
                ))
                db.commit()
        except Exception as e:
            logger.warning("ErrorLog write failed: %s", e)
