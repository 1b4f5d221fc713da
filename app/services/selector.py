"""Due-schedule selection and the stored-row -> ScheduleSnapshot translation."""
import json
import logging
import re
from collections.abc import Callable
from datetime import datetime

from app.core.database import utcnow
from app.models import ScheduledAnalysis
from app.schemas.schedules import ScheduleSnapshot

logger = logging.getLogger("geosched.selector")

_DIGITS = re.compile(r"\d+")


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_engine_ids(raw) -> list[int]:
    """
    Normalise stored engine ids into a list of ints.

    Accepted shapes: a list/tuple, a JSON array string ("[1, 2]"), a comma
    separated string ("8,3,5"), a single number (5 or "5"). Anything else falls
    back to the digit runs found in the text; nothing usable yields [].
    """
    if raw is None or isinstance(raw, bool):
        return []
    if isinstance(raw, (list, tuple)):
        return [i for i in (_as_int(v) for v in raw) if i is not None]
    single = _as_int(raw)
    if single is not None:
        return [single]
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    if not isinstance(raw, str):
        return []
    text = raw.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return [i for i in (_as_int(v) for v in parsed) if i is not None]
    elif "," in text:
        parts = [_as_int(part) for part in text.split(",")]
        if all(p is not None for p in parts):
            return parts
    # "{8,3}", "8;3", half-written JSON
    return [int(m) for m in _DIGITS.findall(text)]


def to_snapshot(
    row: ScheduledAnalysis,
    user_name: str | None = None,
    user_email: str | None = None,
) -> ScheduleSnapshot:
    return ScheduleSnapshot(
        id=row.id or 0,
        user_id=row.user_id,
        user_name=user_name or None,
        user_email=user_email or None,
        client_name=row.client_name,
        keyword=row.keyword,
        analysis_type=row.analysis_type or "brand",
        intent_category=row.intent_category or "",
        custom_prompt=row.custom_prompt or "",
        engine_ids=parse_engine_ids(row.selected_engine_ids),
        frequency=row.frequency,
        day_of_week=row.day_of_week,
        day_of_month=row.day_of_month,
        time_of_day=str(row.time_of_day or "09:00"),
        timezone=row.timezone or "UTC",
        is_active=bool(row.is_active),
        last_run_at=row.last_run_at,
        next_run_at=row.next_run_at,
        run_count=row.run_count or 0,
    )


class DueScheduleSelector:
    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    def select_due(self, now: datetime | None = None) -> list[ScheduleSnapshot]:
        rows = self.store.list_due_schedules(now or self._clock())
        due = []
        for row, user_name, user_email in rows:
            snapshot = to_snapshot(row, user_name, user_email)
            if not snapshot.engine_ids:
                logger.warning(
                    "Schedule %s has no parseable engine ids (%r)", row.id, row.selected_engine_ids
                )
            due.append(snapshot)
        return due

    def load(self, schedule_id: int) -> ScheduleSnapshot | None:
        row = self.store.get_schedule(schedule_id)
        if row is None:
            return None
        return to_snapshot(*row)
