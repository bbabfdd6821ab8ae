"""Create optimization_runs and recommendation_decisions tables

Revision ID: 20261019_optimization_runs
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_optimization_runs"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "optimization_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("requested_by", sa.String(length=255), nullable=True),
        sa.Column("goal", sa.String(length=50), nullable=True),
        sa.Column("feasible", sa.Boolean(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=True),
        sa.Column("request_json", sa.JSON(), nullable=True),
        sa.Column("result_json", sa.JSON(), nullable=True),
        sa.Column("error_text", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_optimization_runs_id", "optimization_runs", ["id"])
    op.create_index("ix_optimization_runs_request_id", "optimization_runs", ["request_id"], unique=True)
    op.create_index("ix_optimization_runs_status", "optimization_runs", ["status"])

    op.create_table(
        "recommendation_decisions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.String(length=100), nullable=False),
        sa.Column("recommendation_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_recommendation_decisions_id", "recommendation_decisions", ["id"])
    op.create_index("ix_recommendation_decisions_request_id", "recommendation_decisions", ["request_id"])
    op.create_index(
        "ix_recommendation_decisions_recommendation_id",
        "recommendation_decisions",
        ["recommendation_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_recommendation_decisions_recommendation_id", table_name="recommendation_decisions")
    op.drop_index("ix_recommendation_decisions_request_id", table_name="recommendation_decisions")
    op.drop_index("ix_recommendation_decisions_id", table_name="recommendation_decisions")
    op.drop_table("recommendation_decisions")
    op.drop_index("ix_optimization_runs_status", table_name="optimization_runs")
    op.drop_index("ix_optimization_runs_request_id", table_name="optimization_runs")
    op.drop_index("ix_optimization_runs_id", table_name="optimization_runs")
    op.drop_table("optimization_runs")
