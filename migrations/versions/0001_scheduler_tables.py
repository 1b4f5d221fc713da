"""scheduler tables

Baseline: users, scheduled analyses, their runs, persisted analysis results
and the error log. The partial unique index keeps at most one running run per
schedule.

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


revision: str = "0001_scheduler_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "analysis_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("client_name", sa.String(), nullable=False),
        sa.Column("keyword", sa.String(), nullable=False),
        sa.Column("analysis_type", sa.String(), nullable=False, server_default="brand"),
        sa.Column("intent_category", sa.String(), nullable=False, server_default=""),
        sa.Column("custom_prompt", sa.Text(), nullable=False, server_default=""),
        sa.Column("results", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("aggregated_insights", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("selected_engine_ids", sa.String(), nullable=False, server_default="[]"),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_analysis_results_user_id", "analysis_results", ["user_id"])
    op.create_index("ix_analysis_results_keyword", "analysis_results", ["keyword"])
    op.create_index("ix_analysis_results_timestamp", "analysis_results", ["timestamp"])

    op.create_table(
        "scheduled_analyses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("client_name", sa.String(), nullable=False),
        sa.Column("keyword", sa.String(), nullable=False),
        sa.Column("analysis_type", sa.String(), nullable=False, server_default="brand"),
        sa.Column("intent_category", sa.String(), nullable=False, server_default=""),
        sa.Column("custom_prompt", sa.Text(), nullable=False, server_default=""),
        sa.Column("selected_engine_ids", sa.String(), nullable=False, server_default="[]"),
        sa.Column("frequency", sa.String(), nullable=False, server_default="daily"),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("time_of_day", sa.String(), nullable=False, server_default="09:00"),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("next_run_at", sa.DateTime(), nullable=False),
        sa.Column("run_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_scheduled_analyses_user_id", "scheduled_analyses", ["user_id"])
    op.create_index("ix_scheduled_analyses_is_active", "scheduled_analyses", ["is_active"])
    op.create_index("ix_scheduled_analyses_next_run_at", "scheduled_analyses", ["next_run_at"])

    op.create_table(
        "scheduled_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "scheduled_analysis_id", sa.Integer(), sa.ForeignKey("scheduled_analyses.id"), nullable=False
        ),
        sa.Column("scheduled_for", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("analysis_result_id", sa.Integer(), sa.ForeignKey("analysis_results.id"), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_scheduled_runs_scheduled_analysis_id", "scheduled_runs", ["scheduled_analysis_id"])
    op.create_index("ix_scheduled_runs_status", "scheduled_runs", ["status"])
    op.create_index("ix_scheduled_runs_started_at", "scheduled_runs", ["started_at"])
    op.create_index(
        "ux_scheduled_runs_one_running",
        "scheduled_runs",
        ["scheduled_analysis_id"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )

    op.create_table(
        "error_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source", sa.String(), nullable=False, server_default="http"),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("endpoint", sa.String(), nullable=True),
        sa.Column("method", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("stack_trace", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_error_logs_user_id", "error_logs", ["user_id"])


def downgrade() -> None:
    op.drop_table("error_logs")
    op.drop_index("ux_scheduled_runs_one_running", table_name="scheduled_runs")
    op.drop_table("scheduled_runs")
    op.drop_table("scheduled_analyses")
    op.drop_table("analysis_results")
    op.drop_table("users")
