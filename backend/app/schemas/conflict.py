from typing import Literal

from pydantic import BaseModel

from app.models.timetable import DayOfWeek

ConflictAxis = Literal["teacher", "room", "group"]


class ConflictDetail(BaseModel):
    id: str
    conflict_type: Literal["teacher_conflict", "room_conflict", "group_conflict"]
    description: str
    day_of_week: DayOfWeek
    affected_slots: list[str]  # Timetable slot ids involved


class ResolutionAction(BaseModel):
    action_type: Literal["move_slot", "change_room", "change_teacher"]
    description: str
    target_slot_id: str
    parameters: dict  # e.g. {"room_id": "r1"}


class ConflictReport(BaseModel):
    semester_id: str
    conflicts: list[ConflictDetail]
    suggested_resolutions: list[ResolutionAction]


class AvailabilityResult(BaseModel):
    available: bool
    conflict_axes: list[ConflictAxis] = []
    conflicting_slot_id: str | None = None
    conflicting_subject: str | None = None
    conflicting_time_range: str | None = None
    message: str | None = None
