"""add skip, time override and completion records for recurring tasks"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_occurrence_overlays"
down_revision = "0001_create_tasks"
branch_labels = None
depends_on = None


def _task_fk() -> sa.Column:
    return sa.Column(
        "task_id",
        sa.Integer(),
        sa.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "task_skipped_instances",
        sa.Column("id", sa.Integer(), primary_key=True),
        _task_fk(),
        sa.Column("skipped_date", sa.Date(), nullable=False),
        sa.Column("skipped_by", sa.String(length=64), nullable=True),
        sa.Column("skipped_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("task_id", "skipped_date", name="unique_task_skip"),
    )
    op.create_index("ix_task_skipped_instances_task_id", "task_skipped_instances", ["task_id"])
    op.create_index("ix_task_skipped_instances_skipped_date", "task_skipped_instances", ["skipped_date"])

    op.create_table(
        "task_instance_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        _task_fk(),
        sa.Column("instance_date", sa.Date(), nullable=False),
        sa.Column("override_time", sa.Time(), nullable=True),
        sa.Column("override_start_time", sa.Time(), nullable=True),
        sa.Column("override_end_time", sa.Time(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("task_id", "instance_date", name="unique_task_override"),
    )
    op.create_index("ix_task_instance_overrides_task_id", "task_instance_overrides", ["task_id"])
    op.create_index(
        "ix_task_instance_overrides_instance_date", "task_instance_overrides", ["instance_date"]
    )

    op.create_table(
        "task_completions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _task_fk(),
        sa.Column("completion_date", sa.Date(), nullable=False),
        sa.Column("completed_by", sa.String(length=64), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("task_id", "completion_date", name="unique_task_completion"),
    )
    op.create_index("ix_task_completions_task_id", "task_completions", ["task_id"])
    op.create_index("ix_task_completions_completion_date", "task_completions", ["completion_date"])


def downgrade() -> None:
    op.drop_index("ix_task_completions_completion_date", table_name="task_completions")
    op.drop_index("ix_task_completions_task_id", table_name="task_completions")
    op.drop_table("task_completions")
    op.drop_index("ix_task_instance_overrides_instance_date", table_name="task_instance_overrides")
    op.drop_index("ix_task_instance_overrides_task_id", table_name="task_instance_overrides")
    op.drop_table("task_instance_overrides")
    op.drop_index("ix_task_skipped_instances_skipped_date", table_name="task_skipped_instances")
    op.drop_index("ix_task_skipped_instances_task_id", table_name="task_skipped_instances")
    op.drop_table("task_skipped_instances")
