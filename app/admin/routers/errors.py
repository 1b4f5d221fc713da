"""Error log: error_logs rows written by the HTTP handler and the scheduler loop."""
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, col, select

from app.admin.deps import require_admin
from app.core.database import get_db
from app.models import ErrorLog

router = APIRouter()


@router.get("")
def errors_list(
    _=Depends(require_admin),
    db: Session = Depends(get_db),
    source: str | None = None,
    limit: int = 100,
):
    stmt = select(ErrorLog).order_by(col(ErrorLog.id).desc()).limit(max(1, min(limit, 1000)))
    if source:
        stmt = stmt.where(ErrorLog.source == source)
    logs = list(db.exec(stmt).all())
    return {
        "errors": [
            {
                "id": e.id,
                "source": e.source,
                "endpoint": e.endpoint,
                "method": e.method,
                "error_message": (e.error_message or "")[:200],
                "created_at": e.created_at,
            }
            for e in logs
        ],
        "count": len(logs),
    }


@router.get("/{error_id}")
def error_detail(error_id: int, _=Depends(require_admin), db: Session = Depends(get_db)):
    e = db.get(ErrorLog, error_id)
    if not e:
        raise HTTPException(404, "Log entry not found.")
    return e.model_dump()
