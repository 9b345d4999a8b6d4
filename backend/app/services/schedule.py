from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError, SchedulingConflictError
from app.models.absence import Absence
from app.models.academic import Group
from app.models.semester import Semester
from app.models.timetable import DAY_ORDER, TimetableSlot
from app.models.user import User
from app.schemas.timetable import TimetableSlotCreate, TimetableSlotUpdate
from app.services import access_scope
from app.services.audit import log_activity
from app.services.conflict_service import conflict_axes, describe_conflict, find_conflict, require_references
from app.services.time_range import validate_range

logger = logging.getLogger(__name__)

# Changing any of these on an active slot re-runs the conflict gate.
SCHEDULING_FIELDS = (
    "semester_id",
    "day_of_week",
    "start_time",
    "end_time",
    "teacher_id",
    "room_id",
    "group_id",
)


def _get_slot(db: Session, slot_id: str) -> TimetableSlot:
    slot = db.get(TimetableSlot, slot_id)
    if slot is None:
        raise ResourceNotFoundError("Timetable slot", slot_id)
    return slot


def _lock_semesters(db: Session, semester_ids: set[str]) -> None:
    """Serialize check-then-write per semester.

    Rows are locked in id order so two requests touching the same pair of
    semesters cannot deadlock.
    """
    ordered = sorted(semester_ids)
    found = set(
        db.execute(
            select(Semester.id).where(Semester.id.in_(ordered)).order_by(Semester.id).with_for_update()
        ).scalars()
    )
    for semester_id in ordered:
        if semester_id not in found:
            raise ResourceNotFoundError("Semester", semester_id)


def _ensure_no_conflict(db: Session, values: dict, *, exclude_slot_id: str | None = None) -> None:
    collision = find_conflict(
        db,
        semester_id=values["semester_id"],
        day_of_week=values["day_of_week"],
        start_time=values["start_time"],
        end_time=values["end_time"],
        teacher_id=values["teacher_id"],
        room_id=values["room_id"],
        group_id=values["group_id"],
        exclude_slot_id=exclude_slot_id,
    )
    if collision is None:
        return
    axes = conflict_axes(
        collision,
        teacher_id=values["teacher_id"],
        room_id=values["room_id"],
        group_id=values["group_id"],
    )
    message, details = describe_conflict(db, collision, axes)
    logger.info("Rejected slot %s: %s", exclude_slot_id or "(new)", message)
    raise SchedulingConflictError(message, details=details)


def create_slot(db: Session, *, data: TimetableSlotCreate, actor: User) -> TimetableSlot:
    validate_range(data.start_time, data.end_time)
    _lock_semesters(db, {data.semester_id})
    require_references(
        db,
        subject_id=data.subject_id,
        teacher_id=data.teacher_id,
        room_id=data.room_id,
        group_id=data.group_id,
    )
    access_scope.require_edit(db, user=actor, group_id=data.group_id)
    values = data.model_dump()
    _ensure_no_conflict(db, values)

    slot = TimetableSlot(**values)
    db.add(slot)
    db.flush()
    log_activity(
        db,
        actor=actor,
        action="timetable.slot.create",
        entity_type="timetable_slot",
        entity_id=slot.id,
        details={
            "group_id": slot.group_id,
            "day_of_week": slot.day_of_week.value,
            "start_time": slot.start_time,
            "end_time": slot.end_time,
        },
    )
    return slot


def update_slot(db: Session, *, slot_id: str, patch: TimetableSlotUpdate, actor: User) -> TimetableSlot:
    slot = _get_slot(db, slot_id)
    access_scope.require_edit(db, user=actor, group_id=slot.group_id)

    changes = patch.model_dump(exclude_unset=True)
    merged = {field: changes.get(field, getattr(slot, field)) for field in SCHEDULING_FIELDS}
    validate_range(merged["start_time"], merged["end_time"])

    require_references(
        db,
        subject_id=changes.get("subject_id"),
        teacher_id=changes.get("teacher_id"),
        room_id=changes.get("room_id"),
        group_id=changes.get("group_id"),
    )
    if merged["group_id"] != slot.group_id:
        # Moving a slot needs edit rights on both groups.
        access_scope.require_edit(db, user=actor, group_id=merged["group_id"])

    scheduling_changed = any(
        field in changes and changes[field] != getattr(slot, field) for field in SCHEDULING_FIELDS
    )
    restoring = slot.is_cancelled and changes.get("is_cancelled") is False
    stays_active = not changes.get("is_cancelled", slot.is_cancelled)

    _lock_semesters(db, {slot.semester_id, merged["semester_id"]})
    if stays_active and (scheduling_changed or restoring):
        _ensure_no_conflict(db, merged, exclude_slot_id=slot.id)

    for field, value in changes.items():
        setattr(slot, field, value)
    if restoring:
        slot.cancellation_reason = None
    db.flush()

    log_activity(
        db,
        actor=actor,
        action="timetable.slot.update",
        entity_type="timetable_slot",
        entity_id=slot.id,
        details={"changed_fields": sorted(changes)},
    )
    return slot


def cancel_slot(db: Session, *, slot_id: str, actor: User, reason: str | None = None) -> TimetableSlot:
    slot = _get_slot(db, slot_id)
    access_scope.require_edit(db, user=actor, group_id=slot.group_id)
    slot.is_cancelled = True
    slot.cancellation_reason = (reason or "").strip() or None
    db.flush()
    log_activity(
        db,
        actor=actor,
        action="timetable.slot.cancel",
        entity_type="timetable_slot",
        entity_id=slot.id,
        details={"reason": slot.cancellation_reason},
    )
    return slot


def delete_slot(db: Session, *, slot_id: str, actor: User) -> None:
    slot = _get_slot(db, slot_id)
    access_scope.require_edit(db, user=actor, group_id=slot.group_id)

    absence_count = db.execute(
        select(func.count(Absence.id)).where(Absence.timetable_slot_id == slot.id)
    ).scalar_one()
    if absence_count:
        raise SchedulingConflictError(
            f"Cannot delete a slot with {absence_count} recorded absence(s); remove them first",
            details={"slot_id": slot.id, "absence_count": absence_count},
        )

    log_activity(
        db,
        actor=actor,
        action="timetable.slot.delete",
        entity_type="timetable_slot",
        entity_id=slot.id,
        details={"group_id": slot.group_id, "semester_id": slot.semester_id},
    )
    db.delete(slot)
    db.flush()


def get_slot(db: Session, *, slot_id: str, actor: User) -> TimetableSlot:
    slot = _get_slot(db, slot_id)
    access_scope.require_view(db, user=actor, group_id=slot.group_id)
    return slot


def list_group_slots(
    db: Session,
    *,
    group_id: str,
    actor: User,
    semester_id: str | None = None,
) -> list[TimetableSlot]:
    if db.get(Group, group_id) is None:
        raise ResourceNotFoundError("Group", group_id)
    access_scope.require_view(db, user=actor, group_id=group_id)

    query = select(TimetableSlot).where(TimetableSlot.group_id == group_id)
    if semester_id is None:
        active = db.execute(select(Semester.id).where(Semester.is_active.is_(True))).scalars().first()
        semester_id = active
    if semester_id is not None:
        query = query.where(TimetableSlot.semester_id == semester_id)

    slots = list(db.execute(query).scalars())
    return sorted(slots, key=lambda item: (DAY_ORDER[item.day_of_week], item.start_time))


def list_accessible_groups(db: Session, *, actor: User) -> list[Group]:
    return access_scope.list_accessible_groups(db, user=actor)
