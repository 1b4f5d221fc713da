"""Recurring analysis definitions and their run history."""
from datetime import datetime

from sqlalchemy import Column, Index, Text, text
from sqlmodel import Field, SQLModel


RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
RUN_STATUSES = (RUN_RUNNING, RUN_COMPLETED, RUN_FAILED)


class ScheduledAnalysis(SQLModel, table=True):
    __tablename__ = "scheduled_analyses"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    # Task parameters: opaque to the scheduler, handed to the analysis engine as-is
    client_name: str
    keyword: str
    analysis_type: str = "brand"  # brand | individual
    intent_category: str = ""
    custom_prompt: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    # Legacy rows hold "[1,2]", "1,2" or "5"; read through parse_engine_ids()
    selected_engine_ids: str = "[]"
    # Frequency rule
    frequency: str = "daily"  # hourly | daily | weekly | monthly
    day_of_week: int | None = None  # 0=Sunday .. 6=Saturday
    day_of_month: int | None = None  # 1..31, clamped to the month length
    time_of_day: str = "09:00"
    timezone: str = "UTC"
    is_active: bool = Field(default=True, index=True)
    last_run_at: datetime | None = None
    next_run_at: datetime = Field(index=True)
    run_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = Field(default_factory=datetime.utcnow)


class ScheduledRun(SQLModel, table=True):
    """One execution attempt: running -> completed | failed."""
    __tablename__ = "scheduled_runs"
    __table_args__ = (
        # At most one running run per schedule, enforced by the database where partial indexes exist
        Index(
            "ux_scheduled_runs_one_running",
            "scheduled_analysis_id",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    scheduled_analysis_id: int = Field(foreign_key="scheduled_analyses.id", index=True)
    scheduled_for: datetime
    status: str = Field(default=RUN_RUNNING, index=True)
    started_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    completed_at: datetime | None = None
    analysis_result_id: int | None = Field(default=None, foreign_key="analysis_results.id")
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
