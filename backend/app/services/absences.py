"""Absence lifecycle and elimination tracking.

    UNEXCUSED --submit_excuse--> PENDING --review_excuse--> EXCUSED | REJECTED

EXCUSED and REJECTED are terminal. A student's ``eliminated`` status is
derived from unexcused counts and recomputed on every trigger; it is never
cached.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
import logging

from sqlalchemy import false, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import get_settings
from app.core.exceptions import (
    AlreadyExistsError,
    ForbiddenError,
    InvalidFormatError,
    InvalidStateError,
    ResourceNotFoundError,
)
from app.models.absence import Absence, AbsenceStatus
from app.models.academic import Group, Level, Specialty
from app.models.notification import NotificationType
from app.models.timetable import TimetableSlot
from app.models.user import STAFF_ROLES, User, UserRole, UserStatus
from app.schemas.absence import (
    AbsenceOut,
    AbsenceStatistics,
    StudentAbsenceSummary,
    StudentAtRisk,
    SubjectAbsenceCount,
)
from app.services import access_scope
from app.services.audit import log_activity
from app.services.notifications import create_notification

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = (AbsenceStatus.excused, AbsenceStatus.rejected)
DUPLICATE_ABSENCE_CONSTRAINT = "uq_absences_student_slot"


@dataclass
class AbsenceFilters:
    student_id: str | None = None
    subject_id: str | None = None
    teacher_id: str | None = None
    status: AbsenceStatus | None = None
    date_from: date | None = None
    date_to: date | None = None


# Elimination rule


def compute_status(current: UserStatus, unexcused_count: int, *, threshold: int) -> UserStatus:
    """Derive a student's status from an unexcused absence count.

    Only ``active`` and ``eliminated`` move; inactive or suspended accounts
    are administrative states and are returned unchanged.
    """
    if current == UserStatus.active and unexcused_count >= threshold:
        return UserStatus.eliminated
    if current == UserStatus.eliminated and unexcused_count < threshold:
        return UserStatus.active
    return current


def count_unexcused_in_subject(db: Session, student_id: str, subject_id: str) -> int:
    return db.execute(
        select(func.count(Absence.id))
        .join(TimetableSlot, Absence.timetable_slot_id == TimetableSlot.id)
        .where(
            Absence.student_id == student_id,
            Absence.status == AbsenceStatus.unexcused,
            TimetableSlot.subject_id == subject_id,
        )
    ).scalar_one()


def count_unexcused_global(db: Session, student_id: str) -> int:
    return db.execute(
        select(func.count(Absence.id)).where(
            Absence.student_id == student_id,
            Absence.status == AbsenceStatus.unexcused,
        )
    ).scalar_one()


def _apply_status(db: Session, student: User, unexcused_count: int) -> None:
    threshold = get_settings().elimination_threshold
    new_status = compute_status(student.status, unexcused_count, threshold=threshold)
    if new_status == student.status:
        return

    previous = student.status
    student.status = new_status
    db.flush()
    log_activity(
        db,
        actor=None,
        action="student.status.change",
        entity_type="user",
        entity_id=student.id,
        details={
            "from": previous.value,
            "to": new_status.value,
            "unexcused_count": unexcused_count,
        },
    )
    if new_status == UserStatus.eliminated:
        logger.warning("Student %s eliminated with %d unexcused absences", student.id, unexcused_count)
    else:
        logger.info("Student %s restored to active (unexcused count: %d)", student.id, unexcused_count)


def _evaluate_after_record(db: Session, student: User, slot: TimetableSlot) -> None:
    """Subject-scoped trigger: warn at the warning threshold, escalate at elimination."""
    settings = get_settings()
    count = count_unexcused_in_subject(db, student.id, slot.subject_id)
    subject_name = slot.subject.name if slot.subject is not None else slot.subject_id

    if count == settings.absence_warning_threshold:
        create_notification(
            db,
            user_id=student.id,
            title="Absence Warning",
            message=(
                f"You have {count} unexcused absences in {subject_name}. "
                "Please submit excuses if applicable."
            ),
            notification_type=NotificationType.absence_warning,
        )

    if count >= settings.elimination_threshold:
        create_notification(
            db,
            user_id=student.id,
            title="Elimination Risk",
            message=(
                f"URGENT: You have {count} unexcused absences in {subject_name}. "
                "You are at risk of elimination."
            ),
            notification_type=NotificationType.elimination_risk,
        )
        _apply_status(db, student, count)


def _reevaluate_global(db: Session, student_id: str) -> None:
    # Only ever lifts an elimination; uses the count across all subjects.
    student = db.get(User, student_id)
    if student is None or student.status != UserStatus.eliminated:
        return
    _apply_status(db, student, count_unexcused_global(db, student_id))


# Authorization helpers


def _department_groups(department_id: str):
    return (
        select(Group.id)
        .join(Level, Group.level_id == Level.id)
        .join(Specialty, Level.specialty_id == Specialty.id)
        .where(Specialty.department_id == department_id)
    )


def _in_department(db: Session, student: User, department_id: str | None) -> bool:
    if not department_id:
        return False
    if student.department_id == department_id:
        return True
    if student.group_id:
        return access_scope.group_department_id(db, student.group_id) == department_id
    return False


def _can_review(db: Session, user: User, absence: Absence) -> bool:
    if user.role == UserRole.admin:
        return True
    if user.role == UserRole.department_head:
        return _in_department(db, absence.student, user.department_id)
    if user.role == UserRole.teacher:
        return absence.timetable_slot.teacher_id == user.id
    return False


def _can_view_absence(db: Session, user: User, absence: Absence) -> bool:
    if user.role == UserRole.admin:
        return True
    if user.role == UserRole.student:
        return absence.student_id == user.id
    if user.role == UserRole.teacher:
        return absence.timetable_slot.teacher_id == user.id or absence.recorded_by_id == user.id
    if user.role == UserRole.department_head:
        return _in_department(db, absence.student, user.department_id)
    return False


def _scope_absence_query(query, user: User):
    """Restrict an absence query (already joined to timetable_slots) to what ``user`` may see."""
    if user.role == UserRole.admin:
        return query
    if user.role == UserRole.student:
        return query.where(Absence.student_id == user.id)
    if user.role == UserRole.teacher:
        return query.where(or_(TimetableSlot.teacher_id == user.id, Absence.recorded_by_id == user.id))
    if user.role == UserRole.department_head and user.department_id:
        students = select(User.id).where(
            or_(
                User.department_id == user.department_id,
                User.group_id.in_(_department_groups(user.department_id)),
            )
        )
        return query.where(Absence.student_id.in_(students))
    return query.where(false())


def _can_view_student(db: Session, user: User, student: User) -> bool:
    if user.role == UserRole.admin or user.id == student.id:
        return True
    if user.role == UserRole.department_head:
        return _in_department(db, student, user.department_id)
    if user.role == UserRole.teacher and student.group_id:
        return access_scope.can_view(db, user=user, group_id=student.group_id)
    return False


# Lifecycle


def _lock_absence(db: Session, absence_id: str) -> Absence:
    absence = db.execute(
        select(Absence)
        .where(Absence.id == absence_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if absence is None:
        raise ResourceNotFoundError("Absence", absence_id)
    return absence


def _is_duplicate_absence(exc: IntegrityError) -> bool:
    # PostgreSQL names the constraint; SQLite only lists its columns.
    message = str(exc.orig)
    return DUPLICATE_ABSENCE_CONSTRAINT in message or "absences.student_id, absences.timetable_slot_id" in message


def _flush_transition(db: Session, absence: Absence) -> None:
    try:
        db.flush()
    except StaleDataError as exc:
        db.rollback()
        raise InvalidStateError(
            "Absence was modified by another request; reload and retry",
            details={"absence_id": absence.id},
        ) from exc


def record_absence(db: Session, *, student_id: str, slot_id: str, recorded_by_id: str) -> Absence:
    student = db.get(User, student_id)
    if student is None or student.role != UserRole.student:
        raise ResourceNotFoundError("Student", student_id)
    slot = db.get(TimetableSlot, slot_id)
    if slot is None:
        raise ResourceNotFoundError("Timetable slot", slot_id)
    recorder = db.get(User, recorded_by_id)
    if recorder is None:
        raise ResourceNotFoundError("User", recorded_by_id)
    if recorder.role not in STAFF_ROLES:
        raise ForbiddenError("Only teaching staff can record absences")

    duplicate_details = {"student_id": student_id, "timetable_slot_id": slot_id}
    existing = db.execute(
        select(Absence.id).where(Absence.student_id == student_id, Absence.timetable_slot_id == slot_id)
    ).first()
    if existing is not None:
        raise AlreadyExistsError("Absence already recorded for this session", details=duplicate_details)

    absence = Absence(
        student_id=student_id,
        timetable_slot_id=slot_id,
        recorded_by_id=recorded_by_id,
        status=AbsenceStatus.unexcused,
    )
    db.add(absence)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if not _is_duplicate_absence(exc):
            raise
        # Lost a race with a concurrent insert for the same session.
        raise AlreadyExistsError("Absence already recorded for this session", details=duplicate_details) from exc

    log_activity(
        db,
        actor=recorder,
        action="absence.record",
        entity_type="absence",
        entity_id=absence.id,
        details=duplicate_details,
    )
    logger.info("Recorded absence %s for student %s", absence.id, student_id)
    _evaluate_after_record(db, student, slot)
    return absence


def submit_excuse(
    db: Session,
    *,
    absence_id: str,
    student_id: str,
    reason: str,
    document_ref: str | None = None,
) -> Absence:
    reason = reason.strip()
    if not reason:
        raise InvalidFormatError("Excuse reason cannot be blank", details={"absence_id": absence_id})
    absence = _lock_absence(db, absence_id)
    if absence.student_id != student_id:
        raise ForbiddenError("Not authorized to submit an excuse for this absence")
    if absence.status != AbsenceStatus.unexcused:
        raise InvalidStateError(
            f"Cannot submit excuse for absence with status: {absence.status.value}",
            details={"absence_id": absence.id, "status": absence.status.value},
        )

    absence.status = AbsenceStatus.pending
    absence.excuse_reason = reason
    absence.excuse_document_ref = document_ref
    absence.excuse_submitted_at = datetime.now(timezone.utc)
    _flush_transition(db, absence)

    slot = absence.timetable_slot
    subject_name = slot.subject.name if slot.subject is not None else slot.subject_id
    create_notification(
        db,
        user_id=slot.teacher_id,
        title="Excuse Submitted",
        message=(
            f"{absence.student.name} submitted an excuse for {subject_name} "
            f"({slot.day_of_week.value} {slot.start_time}-{slot.end_time})."
        ),
        notification_type=NotificationType.excuse_submitted,
    )
    log_activity(
        db,
        actor=absence.student,
        action="absence.excuse.submit",
        entity_type="absence",
        entity_id=absence.id,
    )
    return absence


def review_excuse(
    db: Session,
    *,
    absence_id: str,
    reviewer_id: str,
    decision: str,
    notes: str | None = None,
) -> Absence:
    try:
        outcome = AbsenceStatus(decision)
    except ValueError:
        outcome = None
    if outcome not in REVIEW_DECISIONS:
        raise InvalidFormatError(
            f"Invalid decision {decision!r}: expected 'excused' or 'rejected'",
            details={"decision": decision},
        )

    absence = _lock_absence(db, absence_id)
    reviewer = db.get(User, reviewer_id)
    if reviewer is None:
        raise ResourceNotFoundError("User", reviewer_id)
    if not _can_review(db, reviewer, absence):
        raise ForbiddenError("Not authorized to review this excuse")
    if absence.status != AbsenceStatus.pending:
        raise InvalidStateError(
            f"Cannot review excuse with status: {absence.status.value}",
            details={"absence_id": absence.id, "status": absence.status.value},
        )

    absence.status = outcome
    absence.review_notes = notes
    absence.reviewed_by_id = reviewer.id
    absence.reviewed_at = datetime.now(timezone.utc)
    _flush_transition(db, absence)

    slot = absence.timetable_slot
    subject_name = slot.subject.name if slot.subject is not None else slot.subject_id
    create_notification(
        db,
        user_id=absence.student_id,
        title="Excuse Reviewed",
        message=f"Your excuse for {subject_name} has been {outcome.value}.",
        notification_type=NotificationType.excuse_reviewed,
    )
    log_activity(
        db,
        actor=reviewer,
        action="absence.excuse.review",
        entity_type="absence",
        entity_id=absence.id,
        details={"decision": outcome.value},
    )

    if outcome == AbsenceStatus.excused:
        _reevaluate_global(db, absence.student_id)
    return absence


def delete_absence(db: Session, *, absence_id: str, actor_id: str) -> None:
    absence = _lock_absence(db, absence_id)
    actor = db.get(User, actor_id)
    if actor is None:
        raise ResourceNotFoundError("User", actor_id)

    allowed = (
        _can_review(db, actor, absence)
        or absence.student_id == actor.id
        or absence.recorded_by_id == actor.id
    )
    if not allowed:
        raise ForbiddenError("Not authorized to delete this absence record")

    student_id = absence.student_id
    log_activity(
        db,
        actor=actor,
        action="absence.delete",
        entity_type="absence",
        entity_id=absence.id,
        details={"student_id": student_id, "timetable_slot_id": absence.timetable_slot_id},
    )
    db.delete(absence)
    _flush_transition(db, absence)
    _reevaluate_global(db, student_id)


# Reads


def get_absence(db: Session, *, absence_id: str, actor: User) -> Absence:
    absence = db.get(Absence, absence_id)
    if absence is None:
        raise ResourceNotFoundError("Absence", absence_id)
    if not _can_view_absence(db, actor, absence):
        raise ForbiddenError("You do not have permission to view this absence")
    return absence


def _filtered_query(filters: AbsenceFilters):
    query = select(Absence).join(TimetableSlot, Absence.timetable_slot_id == TimetableSlot.id)
    if filters.student_id:
        query = query.where(Absence.student_id == filters.student_id)
    if filters.subject_id:
        query = query.where(TimetableSlot.subject_id == filters.subject_id)
    if filters.teacher_id:
        query = query.where(TimetableSlot.teacher_id == filters.teacher_id)
    if filters.status is not None:
        query = query.where(Absence.status == filters.status)
    if filters.date_from is not None:
        query = query.where(Absence.created_at >= datetime.combine(filters.date_from, time.min))
    if filters.date_to is not None:
        query = query.where(Absence.created_at < datetime.combine(filters.date_to + timedelta(days=1), time.min))
    return query.order_by(Absence.created_at.desc(), Absence.id)


def list_absences(db: Session, *, actor: User, filters: AbsenceFilters | None = None) -> list[Absence]:
    query = _scope_absence_query(_filtered_query(filters or AbsenceFilters()), actor)
    return list(db.execute(query).scalars())


def _subject_counts(absences: list[Absence]) -> list[SubjectAbsenceCount]:
    counts: Counter[str] = Counter()
    names: dict[str, str] = {}
    for absence in absences:
        slot = absence.timetable_slot
        counts[slot.subject_id] += 1
        names[slot.subject_id] = slot.subject.name if slot.subject is not None else slot.subject_id
    return [
        SubjectAbsenceCount(subject_id=subject_id, subject_name=names[subject_id], count=count)
        for subject_id, count in sorted(counts.items(), key=lambda item: (-item[1], names[item[0]]))
    ]


def student_summary(
    db: Session,
    *,
    student_id: str,
    actor: User,
    subject_id: str | None = None,
) -> StudentAbsenceSummary:
    student = db.get(User, student_id)
    if student is None or student.role != UserRole.student:
        raise ResourceNotFoundError("Student", student_id)
    if not _can_view_student(db, actor, student):
        raise ForbiddenError("You do not have permission to view this student's absences")

    query = _filtered_query(AbsenceFilters(student_id=student_id, subject_id=subject_id))
    absences = list(db.execute(query).scalars())
    by_status = Counter(absence.status for absence in absences)
    return StudentAbsenceSummary(
        student_id=student.id,
        status=student.status,
        total=len(absences),
        unexcused=by_status[AbsenceStatus.unexcused],
        pending=by_status[AbsenceStatus.pending],
        excused=by_status[AbsenceStatus.excused],
        rejected=by_status[AbsenceStatus.rejected],
        by_subject=_subject_counts(absences),
        absences=[AbsenceOut.model_validate(absence) for absence in absences],
    )


def absence_statistics(
    db: Session,
    *,
    actor: User,
    group_id: str | None = None,
    subject_id: str | None = None,
) -> AbsenceStatistics:
    if actor.role not in STAFF_ROLES:
        raise ForbiddenError("Absence statistics are available to staff only")

    query = _scope_absence_query(_filtered_query(AbsenceFilters(subject_id=subject_id)), actor)
    if group_id:
        query = query.where(Absence.student_id.in_(select(User.id).where(User.group_id == group_id)))
    absences = list(db.execute(query).scalars())

    by_status = {status.value: 0 for status in AbsenceStatus}
    unexcused_by_student: Counter[str] = Counter()
    for absence in absences:
        by_status[absence.status.value] += 1
        if absence.status == AbsenceStatus.unexcused:
            unexcused_by_student[absence.student_id] += 1

    warning_threshold = get_settings().absence_warning_threshold
    at_risk_ids = [student for student, count in unexcused_by_student.items() if count >= warning_threshold]
    students = {}
    if at_risk_ids:
        students = {user.id: user for user in db.execute(select(User).where(User.id.in_(at_risk_ids))).scalars()}

    students_at_risk = sorted(
        (
            StudentAtRisk(
                student_id=student_id,
                student_name=students[student_id].name,
                unexcused_count=unexcused_by_student[student_id],
                status=students[student_id].status,
            )
            for student_id in at_risk_ids
            if student_id in students
        ),
        key=lambda item: (-item.unexcused_count, item.student_name),
    )
    return AbsenceStatistics(
        total_absences=len(absences),
        by_status=by_status,
        by_subject=_subject_counts(absences),
        students_at_risk=students_at_risk,
    )
