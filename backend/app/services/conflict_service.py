from __future__ import annotations

from collections import defaultdict

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.academic import Group, Subject
from app.models.room import Room
from app.models.semester import Semester
from app.models.timetable import DayOfWeek, TimetableSlot
from app.models.user import STAFF_ROLES, User
from app.schemas.conflict import (
    AvailabilityResult,
    ConflictAxis,
    ConflictDetail,
    ConflictReport,
    ResolutionAction,
)
from app.services.time_range import minutes_to_hhmm, overlaps, to_minutes, validate_range

AXIS_ORDER: tuple[ConflictAxis, ...] = ("teacher", "room", "group")


def require_references(
    db: Session,
    *,
    semester_id: str | None = None,
    subject_id: str | None = None,
    teacher_id: str | None = None,
    room_id: str | None = None,
    group_id: str | None = None,
) -> None:
    """Raise ``ResourceNotFoundError`` for the first id that does not resolve."""
    if semester_id is not None and db.get(Semester, semester_id) is None:
        raise ResourceNotFoundError("Semester", semester_id)
    if subject_id is not None and db.get(Subject, subject_id) is None:
        raise ResourceNotFoundError("Subject", subject_id)
    if teacher_id is not None:
        teacher = db.get(User, teacher_id)
        if teacher is None or teacher.role not in STAFF_ROLES:
            raise ResourceNotFoundError("Teacher", teacher_id)
    if room_id is not None and db.get(Room, room_id) is None:
        raise ResourceNotFoundError("Room", room_id)
    if group_id is not None and db.get(Group, group_id) is None:
        raise ResourceNotFoundError("Group", group_id)


def find_conflict(
    db: Session,
    *,
    semester_id: str,
    day_of_week: DayOfWeek,
    start_time: str,
    end_time: str,
    teacher_id: str,
    room_id: str,
    group_id: str,
    exclude_slot_id: str | None = None,
) -> TimetableSlot | None:
    """Return the first active slot that collides with the proposal, if any.

    All three resource axes are checked in a single query; the caller works
    out which axis collided with :func:`conflict_axes`.
    """
    start, end = validate_range(start_time, end_time)
    query = select(TimetableSlot).where(
        TimetableSlot.semester_id == semester_id,
        TimetableSlot.day_of_week == day_of_week,
        TimetableSlot.is_cancelled.is_(False),
        or_(
            TimetableSlot.teacher_id == teacher_id,
            TimetableSlot.room_id == room_id,
            TimetableSlot.group_id == group_id,
        ),
    )
    if exclude_slot_id is not None:
        query = query.where(TimetableSlot.id != exclude_slot_id)
    query = query.order_by(TimetableSlot.start_time, TimetableSlot.id)

    for candidate in db.execute(query).scalars():
        if overlaps(start, end, to_minutes(candidate.start_time), to_minutes(candidate.end_time)):
            return candidate
    return None


def conflict_axes(
    slot: TimetableSlot,
    *,
    teacher_id: str,
    room_id: str,
    group_id: str,
) -> list[ConflictAxis]:
    proposed = {"teacher": teacher_id, "room": room_id, "group": group_id}
    existing = {"teacher": slot.teacher_id, "room": slot.room_id, "group": slot.group_id}
    return [axis for axis in AXIS_ORDER if proposed[axis] == existing[axis]]


def describe_conflict(db: Session, slot: TimetableSlot, axes: list[ConflictAxis]) -> tuple[str, dict]:
    subject = db.get(Subject, slot.subject_id)
    subject_name = subject.name if subject is not None else slot.subject_id
    time_range = f"{slot.start_time}-{slot.end_time}"
    message = (
        f"{', '.join(axis.capitalize() for axis in axes)} conflict: overlaps with {subject_name} "
        f"on {slot.day_of_week.value} {time_range}"
    )
    details = {
        "axes": list(axes),
        "conflicting_slot_id": slot.id,
        "conflicting_subject": subject_name,
        "conflicting_time_range": time_range,
        "day_of_week": slot.day_of_week.value,
    }
    return message, details


def check_availability(
    db: Session,
    *,
    semester_id: str,
    day_of_week: DayOfWeek,
    start_time: str,
    end_time: str,
    teacher_id: str,
    room_id: str,
    group_id: str,
    exclude_slot_id: str | None = None,
) -> AvailabilityResult:
    """Read-only variant of the scheduling gate used by planning screens."""
    require_references(
        db,
        semester_id=semester_id,
        teacher_id=teacher_id,
        room_id=room_id,
        group_id=group_id,
    )
    slot = find_conflict(
        db,
        semester_id=semester_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        teacher_id=teacher_id,
        room_id=room_id,
        group_id=group_id,
        exclude_slot_id=exclude_slot_id,
    )
    if slot is None:
        return AvailabilityResult(available=True)

    axes = conflict_axes(slot, teacher_id=teacher_id, room_id=room_id, group_id=group_id)
    message, details = describe_conflict(db, slot, axes)
    return AvailabilityResult(
        available=False,
        conflict_axes=axes,
        conflicting_slot_id=slot.id,
        conflicting_subject=details["conflicting_subject"],
        conflicting_time_range=details["conflicting_time_range"],
        message=message,
    )


class ConflictService:
    """Pairwise audit of every active slot in a semester."""

    def __init__(self, semester_id: str, slots: list[TimetableSlot], subject_names: dict[str, str]):
        self.semester_id = semester_id
        self.slots = [slot for slot in slots if not slot.is_cancelled]
        self.subject_names = subject_names

    def _subject(self, slot: TimetableSlot) -> str:
        return self.subject_names.get(slot.subject_id, slot.subject_id)

    def detect_conflicts(self) -> ConflictReport:
        conflicts: list[ConflictDetail] = []

        # Only slots on the same day can collide, so compare within day buckets.
        slots_by_day: dict[DayOfWeek, list[TimetableSlot]] = defaultdict(list)
        for slot in self.slots:
            slots_by_day[slot.day_of_week].append(slot)

        for day, day_slots in slots_by_day.items():
            day_slots.sort(key=lambda item: (item.start_time, item.id))
            for i, s1 in enumerate(day_slots):
                start1, end1 = to_minutes(s1.start_time), to_minutes(s1.end_time)
                for s2 in day_slots[i + 1 :]:
                    start2, end2 = to_minutes(s2.start_time), to_minutes(s2.end_time)
                    if start2 >= end1:
                        # Sorted by start, nothing later can overlap s1.
                        break
                    if not overlaps(start1, end1, start2, end2):
                        continue
                    pair = f"{self._subject(s1)} and {self._subject(s2)}"
                    if s1.teacher_id == s2.teacher_id:
                        conflicts.append(ConflictDetail(
                            id=f"teacher-{s1.id}-{s2.id}",
                            conflict_type="teacher_conflict",
                            description=f"Teacher {s1.teacher_id} double-booked on {day.value}: {pair}",
                            day_of_week=day,
                            affected_slots=[s1.id, s2.id],
                        ))
                    if s1.room_id == s2.room_id:
                        conflicts.append(ConflictDetail(
                            id=f"room-{s1.id}-{s2.id}",
                            conflict_type="room_conflict",
                            description=f"Room {s1.room_id} double-booked on {day.value}: {pair}",
                            day_of_week=day,
                            affected_slots=[s1.id, s2.id],
                        ))
                    if s1.group_id == s2.group_id:
                        conflicts.append(ConflictDetail(
                            id=f"group-{s1.id}-{s2.id}",
                            conflict_type="group_conflict",
                            description=f"Group {s1.group_id} has overlapping sessions on {day.value}: {pair}",
                            day_of_week=day,
                            affected_slots=[s1.id, s2.id],
                        ))

        return ConflictReport(semester_id=self.semester_id, conflicts=conflicts, suggested_resolutions=[])

    def _move_parameters(self, conflict: ConflictDetail) -> dict:
        # Push the later slot to start when the blocking one ends.
        by_id = {slot.id: slot for slot in self.slots}
        blocking = by_id.get(conflict.affected_slots[0])
        target = by_id.get(conflict.affected_slots[-1])
        if blocking is None or target is None:
            return {}
        duration = to_minutes(target.end_time) - to_minutes(target.start_time)
        start = to_minutes(blocking.end_time)
        if start + duration > 23 * 60 + 59:
            return {}
        return {"start_time": minutes_to_hhmm(start), "end_time": minutes_to_hhmm(start + duration)}

    def generate_resolutions(self, conflict: ConflictDetail) -> list[ResolutionAction]:
        target = conflict.affected_slots[-1]
        resolutions = [
            ResolutionAction(
                action_type="move_slot",
                description="Move to a different time slot",
                target_slot_id=target,
                parameters=self._move_parameters(conflict),
            )
        ]
        if conflict.conflict_type == "room_conflict":
            resolutions.append(ResolutionAction(
                action_type="change_room",
                description="Find a free room for the same time",
                target_slot_id=target,
                parameters={},
            ))
        elif conflict.conflict_type == "teacher_conflict":
            resolutions.append(ResolutionAction(
                action_type="change_teacher",
                description="Assign another teacher to this session",
                target_slot_id=target,
                parameters={},
            ))
        return resolutions


def build_semester_report(db: Session, semester_id: str) -> ConflictReport:
    slots = list(
        db.execute(
            select(TimetableSlot).where(
                TimetableSlot.semester_id == semester_id,
                TimetableSlot.is_cancelled.is_(False),
            )
        ).scalars()
    )
    subject_ids = {slot.subject_id for slot in slots}
    subject_names: dict[str, str] = {}
    if subject_ids:
        subject_names = {
            subject.id: subject.name
            for subject in db.execute(select(Subject).where(Subject.id.in_(subject_ids))).scalars()
        }
    service = ConflictService(semester_id, slots, subject_names)
    report = service.detect_conflicts()
    for conflict in report.conflicts:
        report.suggested_resolutions.extend(service.generate_resolutions(conflict))
    return report
