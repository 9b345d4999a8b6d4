import pytest
from conftest import make_slot
from sqlalchemy import select

from app.core.exceptions import ForbiddenError, InvalidFormatError, ResourceNotFoundError, SchedulingConflictError
from app.models.absence import Absence
from app.models.activity_log import ActivityLog
from app.models.timetable import DayOfWeek, TimetableSlot
from app.schemas.timetable import TimetableSlotCreate, TimetableSlotUpdate
from app.services import schedule
from app.services.conflict_service import build_semester_report


def _create_payload(campus, **overrides) -> TimetableSlotCreate:
    values = {
        "semester_id": campus.semester.id,
        "day_of_week": "monday",
        "start_time": "08:00",
        "end_time": "10:00",
        "subject_id": campus.algorithms.id,
        "teacher_id": campus.teacher.id,
        "room_id": campus.amphi.id,
        "group_id": campus.g1.id,
    }
    values.update(overrides)
    return TimetableSlotCreate(**values)


def test_create_slot_persists_and_audits(db_session, campus):
    slot = schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.admin)
    db_session.commit()

    assert slot.id
    assert slot.day_of_week == DayOfWeek.monday
    entry = db_session.execute(select(ActivityLog).where(ActivityLog.entity_id == slot.id)).scalar_one()
    assert entry.action == "timetable.slot.create"
    assert entry.user_id == campus.admin.id


def test_same_teacher_overlap_is_rejected_with_details(db_session, campus):
    schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.admin)

    clash = _create_payload(
        campus,
        start_time="09:00",
        end_time="11:00",
        room_id=campus.classroom.id,
        group_id=campus.g2.id,
        subject_id=campus.databases.id,
    )
    with pytest.raises(SchedulingConflictError) as exc_info:
        schedule.create_slot(db_session, data=clash, actor=campus.admin)

    details = exc_info.value.details
    assert details["axes"] == ["teacher"]
    assert details["conflicting_subject"] == "Algorithms"
    assert details["conflicting_time_range"] == "08:00-10:00"
    assert exc_info.value.message.startswith("Teacher conflict")


def test_disjoint_and_touching_slots_are_accepted(db_session, campus):
    schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.admin)
    schedule.create_slot(
        db_session,
        data=_create_payload(
            campus,
            start_time="09:00",
            end_time="11:00",
            teacher_id=campus.other_teacher.id,
            room_id=campus.classroom.id,
            group_id=campus.g2.id,
        ),
        actor=campus.admin,
    )
    schedule.create_slot(
        db_session,
        data=_create_payload(campus, start_time="10:00", end_time="12:00"),
        actor=campus.admin,
    )
    db_session.commit()
    assert len(db_session.execute(select(TimetableSlot)).scalars().all()) == 3


def test_create_requires_edit_rights(db_session, campus):
    for actor in (campus.student, campus.teacher, campus.math_head):
        with pytest.raises(ForbiddenError):
            schedule.create_slot(db_session, data=_create_payload(campus), actor=actor)
    schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.head)


def test_create_rejects_unknown_references(db_session, campus):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        schedule.create_slot(db_session, data=_create_payload(campus, room_id="no-room"), actor=campus.admin)
    assert exc_info.value.details["resource_type"] == "Room"

    with pytest.raises(ResourceNotFoundError):
        schedule.create_slot(db_session, data=_create_payload(campus, semester_id="no-semester"), actor=campus.admin)

    # A student cannot be booked as the teacher of a slot.
    with pytest.raises(ResourceNotFoundError):
        schedule.create_slot(db_session, data=_create_payload(campus, teacher_id=campus.student.id), actor=campus.admin)


def test_payload_validation_rejects_bad_times():
    with pytest.raises(ValueError):
        TimetableSlotCreate(
            semester_id="s",
            day_of_week="Mon",
            start_time="10:00",
            end_time="09:00",
            subject_id="x",
            teacher_id="t",
            room_id="r",
            group_id="g",
        )


def test_short_day_names_are_normalized(campus):
    payload = _create_payload(campus, day_of_week="Tue")
    assert payload.day_of_week == DayOfWeek.tuesday


def test_update_rechecks_conflicts_excluding_itself(db_session, campus):
    first = schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.admin)
    second = schedule.create_slot(
        db_session,
        data=_create_payload(campus, start_time="10:00", end_time="12:00"),
        actor=campus.admin,
    )

    # Stretching within its own footprint is fine.
    schedule.update_slot(
        db_session,
        slot_id=first.id,
        patch=TimetableSlotUpdate(start_time="07:30"),
        actor=campus.admin,
    )
    assert first.start_time == "07:30"

    with pytest.raises(SchedulingConflictError):
        schedule.update_slot(
            db_session,
            slot_id=second.id,
            patch=TimetableSlotUpdate(start_time="09:00"),
            actor=campus.admin,
        )
    assert second.start_time == "10:00"

    with pytest.raises(InvalidFormatError):
        schedule.update_slot(
            db_session,
            slot_id=second.id,
            patch=TimetableSlotUpdate(end_time="09:00"),
            actor=campus.admin,
        )


def test_update_notes_only_skips_conflict_gate(db_session, campus):
    slot = make_slot(db_session, campus)
    # Written directly so an overlapping pair already exists.
    make_slot(db_session, campus, start_time="09:00", end_time="11:00", group_id=campus.g2.id, room_id=campus.lab.id)

    updated = schedule.update_slot(
        db_session,
        slot_id=slot.id,
        patch=TimetableSlotUpdate(notes="Bring laptops"),
        actor=campus.admin,
    )
    assert updated.notes == "Bring laptops"


def test_moving_a_slot_needs_rights_on_both_groups(db_session, campus):
    slot = schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.head)
    with pytest.raises(ForbiddenError):
        schedule.update_slot(
            db_session,
            slot_id=slot.id,
            patch=TimetableSlotUpdate(group_id=campus.g3.id),
            actor=campus.head,
        )
    moved = schedule.update_slot(
        db_session,
        slot_id=slot.id,
        patch=TimetableSlotUpdate(group_id=campus.g2.id),
        actor=campus.head,
    )
    assert moved.group_id == campus.g2.id


def test_update_rejects_explicit_null_for_required_fields():
    with pytest.raises(ValueError):
        TimetableSlotUpdate(room_id=None)
    assert TimetableSlotUpdate(notes=None).model_fields_set == {"notes"}


def test_cancelled_slots_free_their_resources_until_restored(db_session, campus):
    original = schedule.create_slot(db_session, data=_create_payload(campus), actor=campus.admin)
    schedule.cancel_slot(db_session, slot_id=original.id, actor=campus.admin, reason="Teacher at conference")
    assert original.is_cancelled
    assert original.cancellation_reason == "Teacher at conference"

    schedule.create_slot(
        db_session,
        data=_create_payload(campus, room_id=campus.classroom.id, group_id=campus.g2.id),
        actor=campus.admin,
    )

    with pytest.raises(SchedulingConflictError):
        schedule.update_slot(
            db_session,
            slot_id=original.id,
            patch=TimetableSlotUpdate(is_cancelled=False),
            actor=campus.admin,
        )
    assert original.is_cancelled


def test_delete_is_blocked_by_recorded_absences(db_session, campus):
    slot = make_slot(db_session, campus)
    db_session.add(Absence(student_id=campus.student.id, timetable_slot_id=slot.id, recorded_by_id=campus.teacher.id))
    db_session.commit()

    with pytest.raises(SchedulingConflictError) as exc_info:
        schedule.delete_slot(db_session, slot_id=slot.id, actor=campus.admin)
    assert exc_info.value.details["absence_count"] == 1

    free_slot = make_slot(db_session, campus, day_of_week=DayOfWeek.friday)
    schedule.delete_slot(db_session, slot_id=free_slot.id, actor=campus.admin)
    db_session.commit()
    assert db_session.get(TimetableSlot, free_slot.id) is None


def test_reads_are_scoped(db_session, campus):
    slot = make_slot(db_session, campus)
    assert schedule.get_slot(db_session, slot_id=slot.id, actor=campus.student).id == slot.id
    with pytest.raises(ForbiddenError):
        schedule.get_slot(db_session, slot_id=slot.id, actor=campus.math_student)
    with pytest.raises(ResourceNotFoundError):
        schedule.get_slot(db_session, slot_id="missing", actor=campus.admin)


def test_group_listing_defaults_to_active_semester_and_sorts(db_session, campus):
    make_slot(db_session, campus, day_of_week=DayOfWeek.wednesday, start_time="14:00", end_time="16:00")
    make_slot(db_session, campus, day_of_week=DayOfWeek.monday, start_time="10:00", end_time="12:00")
    make_slot(db_session, campus, day_of_week=DayOfWeek.monday, start_time="08:00", end_time="10:00")
    make_slot(db_session, campus, semester_id=campus.archived.id)

    slots = schedule.list_group_slots(db_session, group_id=campus.g1.id, actor=campus.student)
    assert [(slot.day_of_week, slot.start_time) for slot in slots] == [
        (DayOfWeek.monday, "08:00"),
        (DayOfWeek.monday, "10:00"),
        (DayOfWeek.wednesday, "14:00"),
    ]

    archived = schedule.list_group_slots(
        db_session, group_id=campus.g1.id, actor=campus.admin, semester_id=campus.archived.id
    )
    assert len(archived) == 1

    with pytest.raises(ResourceNotFoundError):
        schedule.list_group_slots(db_session, group_id="missing", actor=campus.admin)


def test_gated_writes_never_leave_overlaps(db_session, campus):
    teachers = [campus.teacher, campus.other_teacher]
    rooms = [campus.amphi, campus.classroom, campus.lab]
    groups = [campus.g1, campus.g2, campus.g3]
    starts = ["08:00", "09:00", "10:00", "11:00"]

    attempt = 0
    for start in starts:
        for teacher in teachers:
            for room in rooms:
                for group in groups:
                    attempt += 1
                    end = f"{int(start[:2]) + 1 + attempt % 2:02d}:00"
                    payload = _create_payload(
                        campus,
                        start_time=start,
                        end_time=end,
                        teacher_id=teacher.id,
                        room_id=room.id,
                        group_id=group.id,
                    )
                    try:
                        schedule.create_slot(db_session, data=payload, actor=campus.admin)
                    except SchedulingConflictError:
                        pass

    report = build_semester_report(db_session, campus.semester.id)
    assert report.conflicts == []
    assert db_session.execute(select(TimetableSlot)).scalars().first() is not None


@pytest.mark.parametrize("start_time", ["08:00\n", "\u0660\u0668:\u0660\u0660"])
def test_non_wall_clock_times_never_reach_storage(db_session, campus, start_time):
    with pytest.raises(ValueError):
        _create_payload(campus, start_time=start_time)
    with pytest.raises(InvalidFormatError):
        schedule.create_slot(
            db_session,
            data=_create_payload(campus).model_copy(update={"start_time": start_time}),
            actor=campus.admin,
        )
    assert db_session.execute(select(TimetableSlot)).first() is None
