"""Run monitoring: recent runs, stuck runs, on-demand reaping."""
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, col, select

from app.admin.deps import require_admin
from app.api.deps import get_scheduler
from app.core.database import get_db, utcnow
from app.models import ScheduledAnalysis, ScheduledRun
from app.models.scheduled_analysis import RUN_STATUSES

router = APIRouter()


def _row(run: ScheduledRun, schedules_map: dict[int, ScheduledAnalysis], now=None) -> dict:
    schedule = schedules_map.get(run.scheduled_analysis_id)
    row = {
        "id": run.id,
        "scheduled_analysis_id": run.scheduled_analysis_id,
        "client_name": schedule.client_name if schedule else None,
        "keyword": schedule.keyword if schedule else None,
        "scheduled_for": run.scheduled_for,
        "status": run.status,
        "started_at": run.started_at,
        "completed_at": run.completed_at,
        "analysis_result_id": run.analysis_result_id,
        "error_message": run.error_message,
    }
    if now is not None:
        row["running_minutes"] = round((now - run.started_at).total_seconds() / 60, 1)
    return row


def _schedules_for(db: Session, runs: list[ScheduledRun]) -> dict[int, ScheduledAnalysis]:
    ids = {r.scheduled_analysis_id for r in runs}
    if not ids:
        return {}
    return {s.id: s for s in db.exec(select(ScheduledAnalysis).where(col(ScheduledAnalysis.id).in_(ids))).all()}


@router.get("")
def runs_list(
    _=Depends(require_admin),
    db: Session = Depends(get_db),
    status: str | None = None,
    limit: int = 100,
):
    stmt = select(ScheduledRun).order_by(col(ScheduledRun.id).desc()).limit(max(1, min(limit, 1000)))
    if status:
        if status not in RUN_STATUSES:
            raise HTTPException(status_code=400, detail=f"status must be one of {', '.join(RUN_STATUSES)}")
        stmt = stmt.where(ScheduledRun.status == status)
    runs = list(db.exec(stmt).all())
    schedules_map = _schedules_for(db, runs)
    return {"runs": [_row(r, schedules_map) for r in runs], "count": len(runs)}


@router.get("/stuck")
def runs_stuck(_=Depends(require_admin), db: Session = Depends(get_db), scheduler=Depends(get_scheduler)):
    timeout: timedelta = scheduler.reaper.timeout
    now = utcnow()
    runs = scheduler.store.list_stuck_runs(now - timeout)
    schedules_map = _schedules_for(db, runs)
    return {
        "timeout_minutes": int(timeout.total_seconds() // 60),
        "runs": [_row(r, schedules_map, now) for r in runs],
        "count": len(runs),
    }


@router.post("/reap")
def runs_reap(_=Depends(require_admin), scheduler=Depends(get_scheduler)):
    reaped = scheduler.reap()
    return {"success": True, "reaped": reaped}
