"""
Next-run calculation for recurring schedules.

Pure functions: the caller supplies `now`, nothing here reads the clock or the
database. Wall-clock arithmetic happens in the schedule's timezone; results are
returned as naive UTC, the storage convention for every timestamp column.

Day-of-week follows the 0=Sunday .. 6=Saturday convention used by stored rows.
A monthly day that does not exist in the target month is clamped to the last
day of that month (31 -> 30 in April, 29 or 28 in February).
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

FREQUENCIES = ("hourly", "daily", "weekly", "monthly")
DEFAULT_DAY_OF_WEEK = 1  # Monday
DEFAULT_DAY_OF_MONTH = 1
_ONE_HOUR = timedelta(hours=1)


@dataclass(frozen=True)
class FrequencyRule:
    frequency: str
    time_of_day: str = "09:00"
    timezone: str = "UTC"
    day_of_week: int | None = None
    day_of_month: int | None = None


def parse_time_of_day(value) -> tuple[int, int]:
    """"HH:MM" or "HH:MM:SS" -> (hour, minute). Seconds are ignored."""
    parts = str(value if value is not None else "").strip().split(":")
    if len(parts) not in (2, 3) or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"Invalid time_of_day: {value!r} (expected HH:MM)")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time_of_day: {value!r} (out of range)")
    return hour, minute


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _zone(name: str | None) -> ZoneInfo:
    key = (name or "UTC").strip() or "UTC"
    try:
        return ZoneInfo(key)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"Unknown timezone: {key!r}") from e


def _local_slot(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    """Wall-clock slot in `tz` converted to aware UTC."""
    return datetime.combine(day, time(hour, minute), tzinfo=tz).astimezone(timezone.utc)


def _js_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def _add_month(day: date, day_of_month: int) -> date:
    year = day.year + day.month // 12
    month = day.month % 12 + 1
    return _clamped(year, month, day_of_month)


def _clamped(year: int, month: int, day_of_month: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, max(1, min(day_of_month, last)))


def compute_next_run(rule: FrequencyRule, now: datetime) -> datetime:
    """
    Next due time strictly after `now`.

    hourly  -> the hour-aligned slot (minute from time_of_day) after now; late
               runs do not shift the grid.
    daily   -> time_of_day on the next calendar day.
    weekly  -> next occurrence of day_of_week; today rolls a full week forward.
    monthly -> day_of_month in the next calendar month, clamped.

    Feeding the result back in as `now` always moves forward by one cycle.
    """
    if rule.frequency not in FREQUENCIES:
        raise ValueError(f"Unknown frequency: {rule.frequency!r}")
    hour, minute = parse_time_of_day(rule.time_of_day)
    tz = _zone(rule.timezone)
    now_utc = _as_utc(now)
    local_now = now_utc.astimezone(tz)
    today = local_now.date()

    if rule.frequency == "hourly":
        base = local_now.replace(minute=minute, second=0, microsecond=0).astimezone(timezone.utc)
        if base > now_utc:
            base -= _ONE_HOUR
        next_run = base + _ONE_HOUR
        # Offset changes (DST) can leave the aligned slot behind now
        while next_run <= now_utc:
            next_run += _ONE_HOUR
    elif rule.frequency == "daily":
        next_run = _local_slot(today + timedelta(days=1), hour, minute, tz)
    elif rule.frequency == "weekly":
        target = DEFAULT_DAY_OF_WEEK if rule.day_of_week is None else rule.day_of_week
        days_to_add = (target - _js_weekday(today)) % 7 or 7
        next_run = _local_slot(today + timedelta(days=days_to_add), hour, minute, tz)
    else:
        day_of_month = rule.day_of_month or DEFAULT_DAY_OF_MONTH
        next_run = _local_slot(_add_month(today, day_of_month), hour, minute, tz)

    return next_run.replace(tzinfo=None)


def initial_run_at(rule: FrequencyRule, now: datetime) -> datetime:
    """
    First due time for a new or edited schedule: the slot of the current cycle
    when it has not passed yet, otherwise compute_next_run().
    """
    if rule.frequency not in FREQUENCIES:
        raise ValueError(f"Unknown frequency: {rule.frequency!r}")
    hour, minute = parse_time_of_day(rule.time_of_day)
    tz = _zone(rule.timezone)
    now_utc = _as_utc(now)
    local_now = now_utc.astimezone(tz)
    today = local_now.date()

    candidate: datetime | None
    if rule.frequency == "hourly":
        candidate = local_now.replace(minute=minute, second=0, microsecond=0).astimezone(timezone.utc)
    elif rule.frequency == "daily":
        candidate = _local_slot(today, hour, minute, tz)
    elif rule.frequency == "weekly":
        target = DEFAULT_DAY_OF_WEEK if rule.day_of_week is None else rule.day_of_week
        candidate = _local_slot(today, hour, minute, tz) if _js_weekday(today) == target else None
    else:
        day_of_month = rule.day_of_month or DEFAULT_DAY_OF_MONTH
        candidate = _local_slot(_clamped(today.year, today.month, day_of_month), hour, minute, tz)

    if candidate is not None and candidate >= now_utc:
        return candidate.replace(tzinfo=None)
    return compute_next_run(rule, now)
