from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from staffplanner.domain.entities import LeaveEntity
from staffplanner.domain.enums import LeaveStatus, LeaveType
from staffplanner.domain.filters import ViewerContext

from .db import SessionLocal
from .models import EmployeeGroupModel, GroupMembershipModel, LeaveRequestModel, UserModel
from .repository import convert_rows, storage_errors

ADMIN_ROLE = "admin"


def _to_leave(model: LeaveRequestModel, user_name: str | None) -> LeaveEntity:
    return LeaveEntity(
        id=model.id,
        user_id=model.user_id,
        leave_type=LeaveType(model.leave_type),
        status=LeaveStatus(model.status),
        start_date=model.start_date,
        end_date=model.end_date,
        selected_dates=tuple(date.fromisoformat(day) for day in model.selected_dates or ()),
        reason=model.reason,
        user_name=user_name,
        total_days=model.total_days,
    )


class LeaveRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_approved_overlapping(
        self, start: date, end: date, user_id: str | None = None
    ) -> list[LeaveEntity]:
        stmt = (
            select(LeaveRequestModel, UserModel.full_name)
            .join(UserModel, UserModel.id == LeaveRequestModel.user_id, isouter=True)
            .where(
                LeaveRequestModel.status == LeaveStatus.APPROVED.value,
                LeaveRequestModel.start_date <= end,
                LeaveRequestModel.end_date >= start,
            )
            .order_by(LeaveRequestModel.start_date.asc())
        )
        if user_id is not None:
            stmt = stmt.where(LeaveRequestModel.user_id == user_id)
        with storage_errors("load leave requests"), self._session_factory() as session:
            return convert_rows(session.execute(stmt), lambda row: _to_leave(*row), "leave request")


class DirectoryRepository:
    """Users and employee groups, as far as calendar visibility needs them."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def viewer_context(self, user_id: str) -> ViewerContext:
        with storage_errors("load user"), self._session_factory() as session:
            user = session.get(UserModel, user_id)
            group_ids = session.scalars(
                select(GroupMembershipModel.group_id).where(GroupMembershipModel.user_id == user_id)
            ).all()
        return ViewerContext(
            user_id=user_id,
            group_ids=frozenset(group_ids),
            is_admin=bool(user and user.role == ADMIN_ROLE),
        )

    def display_names(self) -> dict[str, str]:
        with storage_errors("load display names"), self._session_factory() as session:
            users = session.execute(select(UserModel.id, UserModel.full_name)).all()
            groups = session.execute(select(EmployeeGroupModel.id, EmployeeGroupModel.name)).all()
        names = {row.id: row.full_name for row in users if row.full_name}
        names.update({row.id: row.name for row in groups})
        return names
