from datetime import datetime

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel


class AnalysisResult(SQLModel, table=True):
    """Persisted engine output; ScheduledRun.analysis_result_id points here."""
    __tablename__ = "analysis_results"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    client_name: str
    keyword: str = Field(index=True)
    analysis_type: str = "brand"
    intent_category: str = ""
    custom_prompt: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    results: str = Field(default="[]", sa_column=Column(Text, nullable=False, default="[]"))  # JSON
    aggregated_insights: str = Field(default="{}", sa_column=Column(Text, nullable=False, default="{}"))  # JSON
    selected_engine_ids: str = "[]"
    timestamp: datetime = Field(default_factory=datetime.utcnow, index=True)
