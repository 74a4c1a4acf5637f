"""create ai_validation_tasks

Revision ID: 0001
Revises:
Create Date: 2026-02-28 00:00:00
"""
import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ai_validation_tasks",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_batches", sa.Integer(), nullable=False),
        sa.Column("completed_batches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("results", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("warning", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending','processing','complete','failed')",
            name="ai_validation_tasks_status_check",
        ),
    )
    op.create_index("ix_ai_validation_tasks_expires_at", "ai_validation_tasks", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_ai_validation_tasks_expires_at", table_name="ai_validation_tasks")
    op.drop_table("ai_validation_tasks")
