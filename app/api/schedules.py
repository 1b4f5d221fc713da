"""Owner-facing schedule management and the manual single-schedule trigger."""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, col, select

from app.api.deps import get_current_user, get_scheduler
from app.core.database import get_db, utcnow
from app.models import ScheduledAnalysis, ScheduledRun, User
from app.schemas import ActiveToggle, ExecuteResponse, RunOut, ScheduleIn, ScheduleOut
from app.services.next_run import FrequencyRule, initial_run_at
from app.services.orchestrator import OUTCOME_COMPLETED, OUTCOME_SKIPPED
from app.services.selector import parse_engine_ids, to_snapshot

router = APIRouter(prefix="/schedules", tags=["schedules"])
log = logging.getLogger("geosched.api")


def _to_out(row: ScheduledAnalysis) -> ScheduleOut:
    return ScheduleOut(
        id=row.id or 0,
        client_name=row.client_name,
        keyword=row.keyword,
        analysis_type=row.analysis_type,
        intent_category=row.intent_category or "",
        custom_prompt=row.custom_prompt or "",
        selected_engine_ids=parse_engine_ids(row.selected_engine_ids),
        frequency=row.frequency,
        day_of_week=row.day_of_week,
        day_of_month=row.day_of_month,
        time_of_day=row.time_of_day,
        timezone=row.timezone,
        is_active=row.is_active,
        last_run_at=row.last_run_at,
        next_run_at=row.next_run_at,
        run_count=row.run_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _owned(db: Session, schedule_id: int, user: User) -> ScheduledAnalysis:
    """404 for unknown and foreign schedules alike."""
    row = db.get(ScheduledAnalysis, schedule_id)
    if not row or row.user_id != user.id:
        raise HTTPException(status_code=404, detail="Scheduled analysis not found.")
    return row


def _apply(row: ScheduledAnalysis, body: ScheduleIn) -> None:
    row.client_name = body.client_name.strip()
    row.keyword = body.keyword.strip()
    row.analysis_type = body.analysis_type
    row.intent_category = body.intent_category.strip()
    row.custom_prompt = body.custom_prompt
    row.selected_engine_ids = json.dumps(body.selected_engine_ids)
    row.frequency = body.frequency
    row.day_of_week = body.day_of_week if body.frequency == "weekly" else None
    row.day_of_month = body.day_of_month if body.frequency == "monthly" else None
    row.time_of_day = body.time_of_day
    row.timezone = body.timezone
    row.is_active = body.is_active
    rule = FrequencyRule(
        frequency=row.frequency,
        time_of_day=row.time_of_day,
        timezone=row.timezone,
        day_of_week=row.day_of_week,
        day_of_month=row.day_of_month,
    )
    row.next_run_at = initial_run_at(rule, utcnow())


@router.get("", response_model=list[ScheduleOut])
def list_schedules(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = db.exec(
        select(ScheduledAnalysis)
        .where(ScheduledAnalysis.user_id == user.id)
        .order_by(col(ScheduledAnalysis.created_at).desc(), col(ScheduledAnalysis.id).desc())
    ).all()
    return [_to_out(r) for r in rows]


@router.post("", response_model=ScheduleOut, status_code=201)
def create_schedule(body: ScheduleIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = ScheduledAnalysis(user_id=user.id, next_run_at=utcnow())
    _apply(row, body)
    db.add(row)
    db.commit()
    db.refresh(row)
    log.info("Schedule %s created for user %s, first run %s", row.id, user.id, row.next_run_at)
    return _to_out(row)


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(schedule_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _to_out(_owned(db, schedule_id, user))


@router.put("/{schedule_id}", response_model=ScheduleOut)
def update_schedule(
    schedule_id: int,
    body: ScheduleIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _owned(db, schedule_id, user)
    _apply(row, body)
    row.updated_at = utcnow()
    db.add(row)
    db.commit()
    db.refresh(row)
    return _to_out(row)


@router.patch("/{schedule_id}", response_model=ScheduleOut)
def toggle_schedule(
    schedule_id: int,
    body: ActiveToggle,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _owned(db, schedule_id, user)
    row.is_active = body.is_active
    row.updated_at = utcnow()
    db.add(row)
    db.commit()
    db.refresh(row)
    return _to_out(row)


@router.delete("/{schedule_id}")
def delete_schedule(schedule_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = _owned(db, schedule_id, user)
    for run in db.exec(select(ScheduledRun).where(ScheduledRun.scheduled_analysis_id == schedule_id)).all():
        db.delete(run)
    db.delete(row)
    db.commit()
    return {"success": True, "message": "Scheduled analysis deleted."}


@router.get("/{schedule_id}/runs", response_model=list[RunOut])
def list_runs(
    schedule_id: int,
    limit: int = 50,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _owned(db, schedule_id, user)
    runs = db.exec(
        select(ScheduledRun)
        .where(ScheduledRun.scheduled_analysis_id == schedule_id)
        .order_by(col(ScheduledRun.started_at).desc(), col(ScheduledRun.id).desc())
        .limit(max(1, min(limit, 500)))
    ).all()
    return [RunOut.model_validate(r, from_attributes=True) for r in runs]


@router.post("/{schedule_id}/execute", response_model=ExecuteResponse)
def execute_schedule(
    schedule_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
):
    """Run one schedule now, regardless of its next_run_at."""
    row = _owned(db, schedule_id, user)
    if not row.is_active:
        raise HTTPException(status_code=400, detail="Scheduled analysis is not active.")
    snapshot = to_snapshot(row, user.name, user.email)
    # Release the request session before the (long) engine call
    db.close()

    outcome = scheduler.run_schedule(snapshot)
    if outcome.status == OUTCOME_SKIPPED:
        raise HTTPException(status_code=409, detail=f"{snapshot.task_label} is already running.")
    if outcome.status == OUTCOME_COMPLETED:
        message = f"Analysis executed successfully for {snapshot.task_label}"
    else:
        message = f"Analysis failed for {snapshot.task_label}"
    return ExecuteResponse(
        success=outcome.status == OUTCOME_COMPLETED,
        status=outcome.status,
        message=message,
        run_id=outcome.run_id,
        next_run_at=outcome.next_run_at,
        error=outcome.error_message,
    )
