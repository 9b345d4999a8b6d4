"""Seed a small demo campus: one department, two groups, staff, students and a week of slots.

Run:
  PYTHONPATH=backend python scripts/seed_demo_campus.py

Prints a bearer token per demo account so the API can be exercised directly.
"""

from __future__ import annotations

from datetime import date, timedelta
import logging
import os

from sqlalchemy import select

from app.core.exceptions import SchedulingConflictError
from app.core.security import create_access_token
from app.db.bootstrap import ensure_runtime_schema
from app.db.session import SessionLocal
from app.models.academic import Department, Group, Level, Specialty, Subject
from app.models.room import Room, RoomType
from app.models.semester import Semester
from app.models.timetable import DayOfWeek, SessionType, TimetableSlot
from app.models.user import User, UserRole
from app.schemas.timetable import TimetableSlotCreate
from app.services import schedule

logger = logging.getLogger("seed_demo_campus")

TOKEN_HOURS = int(os.getenv("DEMO_TOKEN_HOURS", "12"))

DEMO_USERS = {
    "admin": {"name": "Demo Admin", "email": "admin.demo@campus.test", "role": UserRole.admin},
    "head": {"name": "Demo Head", "email": "head.demo@campus.test", "role": UserRole.department_head},
    "teacher_1": {"name": "Demo Teacher One", "email": "teacher1.demo@campus.test", "role": UserRole.teacher},
    "teacher_2": {"name": "Demo Teacher Two", "email": "teacher2.demo@campus.test", "role": UserRole.teacher},
    "student_a": {"name": "Demo Student A", "email": "studenta.demo@campus.test", "role": UserRole.student},
    "student_b": {"name": "Demo Student B", "email": "studentb.demo@campus.test", "role": UserRole.student},
}

# (day, start, end, subject, teacher, room, group, session type)
WEEK_PLAN = [
    (DayOfWeek.monday, "08:00", "10:00", "ALG", "teacher_1", "A1", "G1", SessionType.lecture),
    (DayOfWeek.monday, "10:00", "12:00", "DB", "teacher_2", "A1", "G1", SessionType.lecture),
    (DayOfWeek.monday, "08:00", "10:00", "DB", "teacher_2", "B12", "G2", SessionType.td),
    (DayOfWeek.tuesday, "09:00", "11:00", "NET", "teacher_1", "LAB3", "G1", SessionType.tp),
    (DayOfWeek.tuesday, "13:00", "15:00", "ALG", "teacher_1", "A1", "G2", SessionType.lecture),
    (DayOfWeek.wednesday, "08:00", "10:00", "NET", "teacher_2", "LAB3", "G2", SessionType.tp),
]


def _get_or_create(db, model, lookup: dict, **values):
    instance = db.execute(select(model).filter_by(**lookup)).scalars().first()
    if instance is not None:
        return instance
    instance = model(**lookup, **values)
    db.add(instance)
    db.flush()
    return instance


def seed_reference_data(db) -> dict:
    department = _get_or_create(db, Department, {"code": "CS"}, name="Computer Science")
    specialty = _get_or_create(db, Specialty, {"code": "CS-SE"}, name="Software Engineering", department_id=department.id)
    level = _get_or_create(db, Level, {"specialty_id": specialty.id, "code": "L2"}, name="Licence 2")
    groups = {
        code: _get_or_create(db, Group, {"code": code}, name=f"Group {code[-1]}", level_id=level.id)
        for code in ("G1", "G2")
    }
    subjects = {
        code: _get_or_create(db, Subject, {"code": code}, name=name, department_id=department.id)
        for code, name in (("ALG", "Algorithms"), ("DB", "Databases"), ("NET", "Networks"))
    }
    rooms = {
        name: _get_or_create(db, Room, {"name": name}, building="Main", capacity=capacity, type=room_type)
        for name, capacity, room_type in (
            ("A1", 200, RoomType.amphitheater),
            ("B12", 40, RoomType.classroom),
            ("LAB3", 24, RoomType.lab),
        )
    }
    today = date.today()
    semester = _get_or_create(
        db,
        Semester,
        {"code": f"S{today.year}-DEMO"},
        name="Demo semester",
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=90),
        is_active=True,
    )
    return {"department": department, "groups": groups, "subjects": subjects, "rooms": rooms, "semester": semester}


def seed_users(db, reference: dict) -> dict[str, User]:
    users: dict[str, User] = {}
    for key, entry in DEMO_USERS.items():
        group = None
        if entry["role"] == UserRole.student:
            group = reference["groups"]["G1" if key == "student_a" else "G2"]
        users[key] = _get_or_create(
            db,
            User,
            {"email": entry["email"]},
            name=entry["name"],
            role=entry["role"],
            department_id=reference["department"].id,
            group_id=group.id if group else None,
        )
    return users


def seed_week(db, reference: dict, users: dict[str, User]) -> int:
    created = 0
    semester = reference["semester"]
    for day, start, end, subject, teacher, room, group, session_type in WEEK_PLAN:
        group_id = reference["groups"][group].id
        exists = db.execute(
            select(TimetableSlot.id).where(
                TimetableSlot.semester_id == semester.id,
                TimetableSlot.group_id == group_id,
                TimetableSlot.day_of_week == day,
                TimetableSlot.start_time == start,
            )
        ).first()
        if exists is not None:
            continue
        data = TimetableSlotCreate(
            semester_id=semester.id,
            day_of_week=day,
            start_time=start,
            end_time=end,
            subject_id=reference["subjects"][subject].id,
            teacher_id=users[teacher].id,
            room_id=reference["rooms"][room].id,
            group_id=group_id,
            session_type=session_type,
        )
        try:
            schedule.create_slot(db, data=data, actor=users["admin"])
        except SchedulingConflictError as exc:
            logger.warning("Skipped %s %s-%s for %s: %s", day.value, start, end, group, exc.message)
            continue
        created += 1
    return created


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    ensure_runtime_schema()
    db = SessionLocal()
    try:
        reference = seed_reference_data(db)
        users = seed_users(db, reference)
        created = seed_week(db, reference, users)
        db.commit()
    except Exception:
        db.rollback()
        raise
    else:
        print(f"Seeded demo campus ({created} new slots).")
        for key, user in users.items():
            token = create_access_token(user.id, expires_delta=timedelta(hours=TOKEN_HOURS))
            print(f"{key:<10} {user.email:<30} {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
