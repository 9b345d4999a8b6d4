import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.academic import Group, Subject
from app.models.room import Room
from app.models.semester import Semester
from app.models.user import User


class DayOfWeek(str, Enum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"


DAY_ORDER = {day: index for index, day in enumerate(DayOfWeek)}


class SessionType(str, Enum):
    lecture = "lecture"
    td = "td"
    tp = "tp"
    exam = "exam"
    makeup = "makeup"


class TimetableSlot(Base):
    __tablename__ = "timetable_slots"
    __table_args__ = (
        Index("ix_timetable_slots_semester_day_teacher", "semester_id", "day_of_week", "teacher_id"),
        Index("ix_timetable_slots_semester_day_room", "semester_id", "day_of_week", "room_id"),
        Index("ix_timetable_slots_semester_day_group", "semester_id", "day_of_week", "group_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    semester_id: Mapped[str] = mapped_column(ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[DayOfWeek] = mapped_column(SAEnum(DayOfWeek, name="day_of_week"), nullable=False)
    # HH:MM wall-clock values; start_time < end_time on the same day.
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    subject_id: Mapped[str] = mapped_column(ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    room_id: Mapped[str] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    group_id: Mapped[str] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    session_type: Mapped[SessionType] = mapped_column(
        SAEnum(SessionType, name="session_type"),
        nullable=False,
        default=SessionType.lecture,
    )
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    semester: Mapped[Semester] = relationship()
    subject: Mapped[Subject] = relationship()
    teacher: Mapped[User] = relationship()
    room: Mapped[Room] = relationship()
    group: Mapped[Group] = relationship()
