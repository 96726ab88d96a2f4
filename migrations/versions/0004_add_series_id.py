"""add series_id to tasks and backfill it for existing batches

Rows created before this column existed are grouped the same way batch
operations used to find them: same title, same creator, same creation day.
"""
from __future__ import annotations

import uuid

from alembic import op
import sqlalchemy as sa

revision = "0004_add_series_id"
down_revision = "0003_add_people_and_leave"
branch_labels = None
depends_on = None

tasks = sa.table(
    "tasks",
    sa.column("id", sa.Integer()),
    sa.column("title", sa.String()),
    sa.column("created_by", sa.String()),
    sa.column("created_at", sa.DateTime()),
    sa.column("is_recurring", sa.Boolean()),
    sa.column("series_id", sa.String()),
)


def upgrade() -> None:
    op.add_column("tasks", sa.Column("series_id", sa.String(length=36), nullable=True))
    op.create_index("ix_tasks_series_id", "tasks", ["series_id"], unique=False)

    bind = op.get_bind()
    rows = bind.execute(
        sa.select(tasks.c.id, tasks.c.title, tasks.c.created_by, tasks.c.created_at).where(
            tasks.c.is_recurring.is_(False)
        )
    ).all()

    groups: dict[tuple, list[int]] = {}
    for row in rows:
        key = (row.title, row.created_by, row.created_at.date() if row.created_at else None)
        groups.setdefault(key, []).append(row.id)

    for ids in groups.values():
        if len(ids) < 2:
            continue
        bind.execute(
            tasks.update().where(tasks.c.id.in_(ids)).values(series_id=uuid.uuid4().hex)
        )


def downgrade() -> None:
    op.drop_index("ix_tasks_series_id", table_name="tasks")
    op.drop_column("tasks", "series_id")
