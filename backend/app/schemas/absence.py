from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.absence import AbsenceStatus
from app.models.user import UserStatus


class AbsenceCreate(BaseModel):
    student_id: str = Field(min_length=1, max_length=36)
    timetable_slot_id: str = Field(min_length=1, max_length=36)


class ExcuseSubmit(BaseModel):
    reason: str = Field(min_length=3, max_length=2000)
    document_ref: str | None = Field(default=None, max_length=500)

    @field_validator("reason", mode="before")
    @classmethod
    def strip_reason(cls, value: object) -> object:
        # Length limits apply to the text without surrounding blanks.
        return value.strip() if isinstance(value, str) else value


class ExcuseReview(BaseModel):
    # Checked by the service so an unknown decision maps to invalid_format.
    decision: str = Field(min_length=1, max_length=20)
    notes: str | None = Field(default=None, max_length=2000)


class AbsenceOut(BaseModel):
    id: str
    student_id: str
    timetable_slot_id: str
    recorded_by_id: str | None = None
    status: AbsenceStatus
    excuse_reason: str | None = None
    excuse_document_ref: str | None = None
    excuse_submitted_at: datetime | None = None
    reviewed_by_id: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubjectAbsenceCount(BaseModel):
    subject_id: str
    subject_name: str
    count: int


class StudentAbsenceSummary(BaseModel):
    student_id: str
    status: UserStatus
    total: int = 0
    unexcused: int = 0
    pending: int = 0
    excused: int = 0
    rejected: int = 0
    by_subject: list[SubjectAbsenceCount] = Field(default_factory=list)
    absences: list[AbsenceOut] = Field(default_factory=list)


class StudentAtRisk(BaseModel):
    student_id: str
    student_name: str
    unexcused_count: int
    status: UserStatus


class AbsenceStatistics(BaseModel):
    total_absences: int
    by_status: dict[str, int]
    by_subject: list[SubjectAbsenceCount] = Field(default_factory=list)
    students_at_risk: list[StudentAtRisk] = Field(default_factory=list)
