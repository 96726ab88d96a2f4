from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=True)
    category_color = Column(String(20), nullable=True)
    priority = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="pending", index=True)
    due_date = Column(Date, nullable=True, index=True)
    due_time = Column(Time, nullable=True)
    is_all_day = Column(Boolean, nullable=False, default=True)
    is_activity = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False, index=True)
    recurrence_rule = Column(String(255), nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_by = Column(String(64), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    series_id = Column(String(36), nullable=True, index=True)

    assignments = relationship(
        "TaskAssignmentModel", cascade="all, delete-orphan", lazy="selectin"
    )
    viewers = relationship("TaskViewerModel", cascade="all, delete-orphan", lazy="selectin")


class TaskAssignmentModel(Base):
    __tablename__ = "task_assignments"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    target_type = Column(String(20), nullable=False)
    target_user_id = Column(String(64), nullable=True)
    target_group_id = Column(String(64), nullable=True)


class TaskViewerModel(Base):
    __tablename__ = "task_viewers"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    target_type = Column(String(20), nullable=False)
    target_user_id = Column(String(64), nullable=True)
    target_group_id = Column(String(64), nullable=True)


class TaskSkipModel(Base):
    __tablename__ = "task_skipped_instances"
    __table_args__ = (UniqueConstraint("task_id", "skipped_date", name="unique_task_skip"),)

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    skipped_date = Column(Date, nullable=False, index=True)
    skipped_by = Column(String(64), nullable=True)
    skipped_at = Column(DateTime, nullable=False, default=utcnow)


class TaskInstanceOverrideModel(Base):
    __tablename__ = "task_instance_overrides"
    __table_args__ = (UniqueConstraint("task_id", "instance_date", name="unique_task_override"),)

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    instance_date = Column(Date, nullable=False, index=True)
    override_time = Column(Time, nullable=True)
    override_start_time = Column(Time, nullable=True)
    override_end_time = Column(Time, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class TaskCompletionModel(Base):
    __tablename__ = "task_completions"
    __table_args__ = (UniqueConstraint("task_id", "completion_date", name="unique_task_completion"),)

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    completion_date = Column(Date, nullable=False, index=True)
    completed_by = Column(String(64), nullable=True)
    completed_at = Column(DateTime, nullable=False, default=utcnow)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(200), nullable=False, default="")
    role = Column(String(20), nullable=False, default="employee")


class EmployeeGroupModel(Base):
    __tablename__ = "employee_groups"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)


class GroupMembershipModel(Base):
    __tablename__ = "employee_group_memberships"
    __table_args__ = (UniqueConstraint("user_id", "group_id", name="unique_group_membership"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(
        String(64), ForeignKey("employee_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )


class LeaveRequestModel(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    selected_dates = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    total_days = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
