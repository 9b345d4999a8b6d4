from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.timetable import DayOfWeek, SessionType
from app.services.time_range import to_minutes, validate_range

DAY_SHORT_MAP = {
    "mon": "monday",
    "tue": "tuesday",
    "wed": "wednesday",
    "thu": "thursday",
    "fri": "friday",
    "sat": "saturday",
    "sun": "sunday",
}


def normalize_day(value: object) -> object:
    if isinstance(value, str):
        lowered = value.strip().lower()
        return DAY_SHORT_MAP.get(lowered, lowered)
    return value


class TimetableSlotCreate(BaseModel):
    semester_id: str = Field(min_length=1, max_length=36)
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    subject_id: str = Field(min_length=1, max_length=36)
    teacher_id: str = Field(min_length=1, max_length=36)
    room_id: str = Field(min_length=1, max_length=36)
    group_id: str = Field(min_length=1, max_length=36)
    session_type: SessionType = SessionType.lecture
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day_of_week(cls, value: object) -> object:
        return normalize_day(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "TimetableSlotCreate":
        validate_range(self.start_time, self.end_time)
        return self


class TimetableSlotUpdate(BaseModel):
    semester_id: str | None = Field(default=None, min_length=1, max_length=36)
    day_of_week: DayOfWeek | None = None
    start_time: str | None = None
    end_time: str | None = None
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    teacher_id: str | None = Field(default=None, min_length=1, max_length=36)
    room_id: str | None = Field(default=None, min_length=1, max_length=36)
    group_id: str | None = Field(default=None, min_length=1, max_length=36)
    session_type: SessionType | None = None
    notes: str | None = Field(default=None, max_length=2000)
    is_cancelled: bool | None = None

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day_of_week(cls, value: object) -> object:
        return normalize_day(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is not None:
            to_minutes(value)
        return value

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "TimetableSlotUpdate":
        nullable = {"notes"}
        for name in self.model_fields_set - nullable:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class TimetableSlotCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class SlotAvailabilityQuery(BaseModel):
    semester_id: str = Field(min_length=1, max_length=36)
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    teacher_id: str = Field(min_length=1, max_length=36)
    room_id: str = Field(min_length=1, max_length=36)
    group_id: str = Field(min_length=1, max_length=36)
    exclude_slot_id: str | None = None

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day_of_week(cls, value: object) -> object:
        return normalize_day(value)

    @model_validator(mode="after")
    def validate_order(self) -> "SlotAvailabilityQuery":
        validate_range(self.start_time, self.end_time)
        return self


class TimetableSlotOut(BaseModel):
    id: str
    semester_id: str
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    subject_id: str
    teacher_id: str
    room_id: str
    group_id: str
    session_type: SessionType
    is_cancelled: bool
    cancellation_reason: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class GroupOut(BaseModel):
    id: str
    code: str
    name: str
    level_id: str

    model_config = {"from_attributes": True}
