import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.timetable import TimetableSlot
from app.models.user import User


class AbsenceStatus(str, Enum):
    unexcused = "unexcused"
    pending = "pending"
    excused = "excused"
    rejected = "rejected"


class Absence(Base):
    __tablename__ = "absences"
    __table_args__ = (
        UniqueConstraint("student_id", "timetable_slot_id", name="uq_absences_student_slot"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    timetable_slot_id: Mapped[str] = mapped_column(
        ForeignKey("timetable_slots.id"),
        nullable=False,
        index=True,
    )
    recorded_by_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    status: Mapped[AbsenceStatus] = mapped_column(
        SAEnum(AbsenceStatus, name="absence_status"),
        nullable=False,
        default=AbsenceStatus.unexcused,
        index=True,
    )
    excuse_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    excuse_document_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    excuse_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    student: Mapped[User] = relationship(foreign_keys=[student_id])
    timetable_slot: Mapped[TimetableSlot] = relationship()

    # Concurrent transitions on the same row raise StaleDataError on flush.
    __mapper_args__ = {"version_id_col": version}
