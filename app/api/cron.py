"""Externally-triggered poll: a platform cron calls this once per minute."""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException

from app.api.deps import get_scheduler
from app.core.config import settings
from app.core.security import bearer_token, secrets_match
from app.schemas import TickSummary

router = APIRouter(prefix="/cron", tags=["cron"])
log = logging.getLogger("geosched.cron")


def require_cron_secret(authorization: str | None = Header(None)) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=503, detail="CRON_SECRET is not configured.")
    if not secrets_match(bearer_token(authorization), settings.cron_secret):
        log.warning("Unauthorized cron request")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/run-scheduled-analyses", response_model=TickSummary)
@router.post("/run-scheduled-analyses", response_model=TickSummary)
def run_scheduled_analyses(_: None = Depends(require_cron_secret), scheduler=Depends(get_scheduler)):
    # Storage failures propagate to the catch-all handler (500 + ErrorLog)
    result = scheduler.tick()
    return TickSummary(
        success=True,
        processed=result.processed,
        errors=result.errors,
        reaped=result.reaped,
        timestamp=result.timestamp,
    )
