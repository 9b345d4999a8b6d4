from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import ForbiddenError
from app.models.academic import Group, Level, Specialty
from app.models.timetable import TimetableSlot
from app.models.user import User, UserRole


def group_department_id(db: Session, group_id: str) -> str | None:
    """Resolve group -> level -> specialty -> department."""
    return db.execute(
        select(Specialty.department_id)
        .join(Level, Level.specialty_id == Specialty.id)
        .join(Group, Group.level_id == Level.id)
        .where(Group.id == group_id)
    ).scalar_one_or_none()


def _heads_department(db: Session, user: User, group_id: str) -> bool:
    if not user.department_id:
        return False
    return group_department_id(db, group_id) == user.department_id


def _teaches_group(db: Session, teacher_id: str, group_id: str) -> bool:
    match = db.execute(
        select(TimetableSlot.id)
        .where(TimetableSlot.teacher_id == teacher_id, TimetableSlot.group_id == group_id)
        .limit(1)
    ).first()
    return match is not None


def can_view(db: Session, *, user: User, group_id: str) -> bool:
    if user.role == UserRole.admin:
        return True
    if user.role == UserRole.student:
        return user.group_id is not None and user.group_id == group_id
    if user.role == UserRole.department_head:
        return _heads_department(db, user, group_id)
    if user.role == UserRole.teacher:
        return _teaches_group(db, user.id, group_id)
    return False


def can_edit(db: Session, *, user: User, group_id: str) -> bool:
    # Students and teachers never edit schedules, whatever they can view.
    if user.role == UserRole.admin:
        return True
    if user.role == UserRole.department_head:
        return _heads_department(db, user, group_id)
    return False


def require_view(db: Session, *, user: User, group_id: str) -> None:
    if not can_view(db, user=user, group_id=group_id):
        raise ForbiddenError("You do not have permission to view this schedule")


def require_edit(db: Session, *, user: User, group_id: str) -> None:
    if not can_edit(db, user=user, group_id=group_id):
        raise ForbiddenError("You do not have permission to edit this schedule")


def list_accessible_groups(db: Session, *, user: User) -> list[Group]:
    if user.role == UserRole.admin:
        return list(db.execute(select(Group).order_by(Group.code)).scalars())

    if user.role == UserRole.department_head:
        if not user.department_id:
            return []
        return list(
            db.execute(
                select(Group)
                .join(Level, Group.level_id == Level.id)
                .join(Specialty, Level.specialty_id == Specialty.id)
                .where(Specialty.department_id == user.department_id)
                .order_by(Group.code)
            ).scalars()
        )

    if user.role == UserRole.student:
        if not user.group_id:
            return []
        group = db.get(Group, user.group_id)
        return [group] if group is not None else []

    if user.role == UserRole.teacher:
        taught = select(TimetableSlot.group_id).where(TimetableSlot.teacher_id == user.id).distinct()
        return list(db.execute(select(Group).where(Group.id.in_(taught)).order_by(Group.code)).scalars())

    return []
