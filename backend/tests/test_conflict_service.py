import pytest
from conftest import make_slot

from app.core.exceptions import ResourceNotFoundError
from app.models.timetable import DayOfWeek, TimetableSlot
from app.services.conflict_service import (
    ConflictService,
    build_semester_report,
    check_availability,
    conflict_axes,
    find_conflict,
)


def _proposal(campus, **overrides):
    values = {
        "semester_id": campus.semester.id,
        "day_of_week": DayOfWeek.monday,
        "start_time": "09:00",
        "end_time": "11:00",
        "teacher_id": campus.other_teacher.id,
        "room_id": campus.classroom.id,
        "group_id": campus.g2.id,
    }
    values.update(overrides)
    return values


def test_same_teacher_overlap_is_found(db_session, campus):
    existing = make_slot(db_session, campus)
    hit = find_conflict(db_session, **_proposal(campus, teacher_id=campus.teacher.id))
    assert hit is not None
    assert hit.id == existing.id
    assert conflict_axes(
        hit, teacher_id=campus.teacher.id, room_id=campus.classroom.id, group_id=campus.g2.id
    ) == ["teacher"]


def test_disjoint_resources_do_not_conflict(db_session, campus):
    make_slot(db_session, campus)
    assert find_conflict(db_session, **_proposal(campus)) is None


def test_touching_boundaries_do_not_conflict(db_session, campus):
    make_slot(db_session, campus)
    proposal = _proposal(campus, start_time="10:00", end_time="12:00", room_id=campus.amphi.id)
    assert find_conflict(db_session, **proposal) is None


def test_other_day_and_other_semester_are_ignored(db_session, campus):
    make_slot(db_session, campus)
    assert find_conflict(db_session, **_proposal(campus, teacher_id=campus.teacher.id, day_of_week=DayOfWeek.tuesday)) is None
    assert find_conflict(db_session, **_proposal(campus, teacher_id=campus.teacher.id, semester_id=campus.archived.id)) is None


def test_cancelled_and_excluded_slots_are_ignored(db_session, campus):
    cancelled = make_slot(db_session, campus, is_cancelled=True)
    assert find_conflict(db_session, **_proposal(campus, teacher_id=campus.teacher.id)) is None

    cancelled.is_cancelled = False
    db_session.commit()
    proposal = _proposal(campus, teacher_id=campus.teacher.id, exclude_slot_id=cancelled.id)
    assert find_conflict(db_session, **proposal) is None


def test_axes_report_every_shared_resource(db_session, campus):
    existing = make_slot(db_session, campus)
    axes = conflict_axes(existing, teacher_id=campus.teacher.id, room_id=campus.amphi.id, group_id=campus.g1.id)
    assert axes == ["teacher", "room", "group"]


def test_check_availability_describes_the_collision(db_session, campus):
    make_slot(db_session, campus)
    result = check_availability(db_session, **_proposal(campus, room_id=campus.amphi.id))
    assert result.available is False
    assert result.conflict_axes == ["room"]
    assert result.conflicting_subject == "Algorithms"
    assert result.conflicting_time_range == "08:00-10:00"
    assert "Room conflict" in result.message

    free = check_availability(db_session, **_proposal(campus))
    assert free.available is True
    assert free.conflicting_slot_id is None


@pytest.mark.parametrize(
    "field, resource",
    [("semester_id", "Semester"), ("teacher_id", "Teacher"), ("room_id", "Room"), ("group_id", "Group")],
)
def test_check_availability_rejects_unknown_ids(db_session, campus, field, resource):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        check_availability(db_session, **_proposal(campus, **{field: "missing"}))
    assert exc_info.value.details["resource_type"] == resource


def test_check_availability_rejects_a_student_as_teacher(db_session, campus):
    with pytest.raises(ResourceNotFoundError):
        check_availability(db_session, **_proposal(campus, teacher_id=campus.student.id))


def _slot(slot_id, start, end, teacher="t1", room="r1", group="g1", day=DayOfWeek.monday):
    return TimetableSlot(
        id=slot_id,
        semester_id="sem",
        day_of_week=day,
        start_time=start,
        end_time=end,
        subject_id="sub",
        teacher_id=teacher,
        room_id=room,
        group_id=group,
        is_cancelled=False,
    )


def test_semester_audit_reports_one_conflict_per_shared_axis():
    slots = [
        _slot("s1", "09:00", "10:00", teacher="t1", room="r1", group="g1"),
        _slot("s2", "09:30", "10:30", teacher="t2", room="r1", group="g2"),
        _slot("s3", "10:00", "11:00", teacher="t1", room="r2", group="g1"),
        _slot("s4", "09:00", "10:00", teacher="t1", room="r3", group="g3", day=DayOfWeek.friday),
    ]
    report = ConflictService("sem", slots, {"sub": "Algorithms"}).detect_conflicts()

    assert [conflict.conflict_type for conflict in report.conflicts] == ["room_conflict"]
    conflict = report.conflicts[0]
    assert set(conflict.affected_slots) == {"s1", "s2"}
    assert "Room r1" in conflict.description


def test_semester_audit_suggests_resolutions(db_session, campus):
    make_slot(db_session, campus)
    # Written directly to bypass the scheduling gate.
    make_slot(db_session, campus, start_time="09:00", end_time="11:00", room_id=campus.lab.id, group_id=campus.g2.id)

    report = build_semester_report(db_session, campus.semester.id)
    assert [conflict.conflict_type for conflict in report.conflicts] == ["teacher_conflict"]
    actions = {action.action_type for action in report.suggested_resolutions}
    assert actions == {"move_slot", "change_teacher"}


def test_move_suggestion_starts_when_blocking_slot_ends():
    service = ConflictService(
        "sem",
        [
            _slot("s1", "08:00", "10:00", room="r1"),
            _slot("s2", "09:00", "10:30", teacher="t2", room="r1", group="g2"),
        ],
        {},
    )
    conflict = service.detect_conflicts().conflicts[0]

    move = service.generate_resolutions(conflict)[0]
    assert move.action_type == "move_slot"
    assert move.target_slot_id == "s2"
    assert move.parameters == {"start_time": "10:00", "end_time": "11:30"}


def test_move_suggestion_is_empty_past_midnight():
    service = ConflictService(
        "sem",
        [
            _slot("s1", "20:00", "23:30"),
            _slot("s2", "22:00", "23:00", teacher="t2", group="g2"),
        ],
        {},
    )
    conflict = service.detect_conflicts().conflicts[0]

    assert service.generate_resolutions(conflict)[0].parameters == {}
