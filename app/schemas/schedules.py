from datetime import datetime
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from app.services.next_run import FrequencyRule, parse_time_of_day

Frequency = Literal["hourly", "daily", "weekly", "monthly"]


class ScheduleSnapshot(BaseModel):
    """Typed view of a stored schedule, as consumed by the orchestrator."""
    id: int
    user_id: int
    user_name: str | None = None
    user_email: str | None = None
    client_name: str
    keyword: str
    analysis_type: str = "brand"
    intent_category: str = ""
    custom_prompt: str = ""
    engine_ids: list[int] = Field(default_factory=list)
    frequency: str
    day_of_week: int | None = None
    day_of_month: int | None = None
    time_of_day: str = "09:00"
    timezone: str = "UTC"
    is_active: bool = True
    last_run_at: datetime | None = None
    next_run_at: datetime
    run_count: int = 0

    @property
    def rule(self) -> FrequencyRule:
        return FrequencyRule(
            frequency=self.frequency,
            time_of_day=self.time_of_day,
            timezone=self.timezone,
            day_of_week=self.day_of_week,
            day_of_month=self.day_of_month,
        )

    @property
    def task_label(self) -> str:
        return f'{self.client_name} - "{self.keyword}"'

    @property
    def owner_label(self) -> str:
        return self.user_name or f"User ID {self.user_id}"


class ScheduleIn(BaseModel):
    """Create/update payload for a recurring analysis."""
    client_name: str = Field(min_length=1, max_length=255)
    keyword: str = Field(min_length=1, max_length=255)
    analysis_type: Literal["brand", "individual"] = "brand"
    intent_category: str = ""
    custom_prompt: str = ""
    selected_engine_ids: list[int] = Field(min_length=1)
    frequency: Frequency
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    time_of_day: str = "09:00"
    timezone: str = "UTC"
    is_active: bool = True

    @field_validator("time_of_day")
    @classmethod
    def valid_time_of_day(cls, v: str) -> str:
        hour, minute = parse_time_of_day(v)
        return f"{hour:02d}:{minute:02d}"

    @field_validator("timezone")
    @classmethod
    def valid_timezone(cls, v: str) -> str:
        v = (v or "UTC").strip() or "UTC"
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def rule_fields_present(self):
        if self.frequency == "weekly" and self.day_of_week is None:
            self.day_of_week = 1
        if self.frequency == "monthly" and self.day_of_month is None:
            self.day_of_month = 1
        return self


class ActiveToggle(BaseModel):
    is_active: bool


class ScheduleOut(BaseModel):
    id: int
    client_name: str
    keyword: str
    analysis_type: str
    intent_category: str
    custom_prompt: str
    selected_engine_ids: list[int]
    frequency: str
    day_of_week: int | None = None
    day_of_month: int | None = None
    time_of_day: str
    timezone: str
    is_active: bool
    last_run_at: datetime | None = None
    next_run_at: datetime
    run_count: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RunOut(BaseModel):
    id: int
    scheduled_analysis_id: int
    scheduled_for: datetime
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    analysis_result_id: int | None = None
    error_message: str | None = None


class ExecuteResponse(BaseModel):
    success: bool
    status: str
    message: str
    run_id: int | None = None
    next_run_at: datetime | None = None
    error: str | None = None


class TickSummary(BaseModel):
    success: bool = True
    processed: int
    errors: int
    reaped: int = 0
    timestamp: str
