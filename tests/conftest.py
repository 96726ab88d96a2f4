from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from staffplanner.domain.entities import TaskEntity
from staffplanner.domain.enums import TaskPriority, TaskStatus


@pytest.fixture
def session_factory():
    from staffplanner.infra.db import create_schema

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def make_task():
    counter = {"id": 0}

    def _make(**overrides) -> TaskEntity:
        counter["id"] += 1
        created = datetime(2025, 1, 1, 8, 0, 0)
        fields = {
            "id": counter["id"],
            "title": "Water plants",
            "description": "",
            "status": TaskStatus.PENDING,
            "priority": TaskPriority.MEDIUM,
            "due_date": None,
            "due_time": None,
            "is_all_day": False,
            "is_activity": False,
            "start_time": None,
            "end_time": None,
            "is_recurring": False,
            "recurrence_rule": None,
            "created_by": "admin-1",
            "created_at": created,
            "updated_at": created,
        }
        fields.update(overrides)
        return TaskEntity(**fields)

    return _make
