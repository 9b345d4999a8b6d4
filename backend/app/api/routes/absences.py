from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import InvalidFormatError
from app.models.absence import AbsenceStatus
from app.models.user import User, UserRole
from app.schemas.absence import (
    AbsenceCreate,
    AbsenceOut,
    AbsenceStatistics,
    ExcuseReview,
    ExcuseSubmit,
    StudentAbsenceSummary,
)
from app.services import absences
from app.services.absences import AbsenceFilters

router = APIRouter()


@router.post("", response_model=AbsenceOut, status_code=status.HTTP_201_CREATED)
def record_absence(
    payload: AbsenceCreate,
    current_user: User = Depends(
        require_roles(UserRole.admin, UserRole.department_head, UserRole.teacher)
    ),
    db: Session = Depends(get_db),
) -> AbsenceOut:
    absence = absences.record_absence(
        db,
        student_id=payload.student_id,
        slot_id=payload.timetable_slot_id,
        recorded_by_id=current_user.id,
    )
    db.commit()
    db.refresh(absence)
    return absence


@router.get("", response_model=list[AbsenceOut])
def list_absences(
    student_id: str | None = Query(default=None),
    subject_id: str | None = Query(default=None),
    teacher_id: str | None = Query(default=None),
    absence_status: AbsenceStatus | None = Query(default=None, alias="status"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[AbsenceOut]:
    if date_from and date_to and date_from > date_to:
        raise InvalidFormatError(
            "date_from must be on or before date_to",
            details={"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
        )
    filters = AbsenceFilters(
        student_id=student_id,
        subject_id=subject_id,
        teacher_id=teacher_id,
        status=absence_status,
        date_from=date_from,
        date_to=date_to,
    )
    return absences.list_absences(db, actor=current_user, filters=filters)


@router.get("/me", response_model=StudentAbsenceSummary)
def my_absences(
    subject_id: str | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> StudentAbsenceSummary:
    return absences.student_summary(db, student_id=current_user.id, actor=current_user, subject_id=subject_id)


@router.get("/statistics", response_model=AbsenceStatistics)
def absence_statistics(
    group_id: str | None = Query(default=None),
    subject_id: str | None = Query(default=None),
    current_user: User = Depends(
        require_roles(UserRole.admin, UserRole.department_head, UserRole.teacher)
    ),
    db: Session = Depends(get_db),
) -> AbsenceStatistics:
    return absences.absence_statistics(db, actor=current_user, group_id=group_id, subject_id=subject_id)


@router.get("/students/{student_id}", response_model=StudentAbsenceSummary)
def student_absences(
    student_id: str,
    subject_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StudentAbsenceSummary:
    return absences.student_summary(db, student_id=student_id, actor=current_user, subject_id=subject_id)


@router.get("/{absence_id}", response_model=AbsenceOut)
def get_absence(
    absence_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AbsenceOut:
    return absences.get_absence(db, absence_id=absence_id, actor=current_user)


@router.post("/{absence_id}/excuse", response_model=AbsenceOut)
def submit_excuse(
    absence_id: str,
    payload: ExcuseSubmit,
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> AbsenceOut:
    absence = absences.submit_excuse(
        db,
        absence_id=absence_id,
        student_id=current_user.id,
        reason=payload.reason,
        document_ref=payload.document_ref,
    )
    db.commit()
    db.refresh(absence)
    return absence


@router.post("/{absence_id}/review", response_model=AbsenceOut)
def review_excuse(
    absence_id: str,
    payload: ExcuseReview,
    current_user: User = Depends(
        require_roles(UserRole.admin, UserRole.department_head, UserRole.teacher)
    ),
    db: Session = Depends(get_db),
) -> AbsenceOut:
    absence = absences.review_excuse(
        db,
        absence_id=absence_id,
        reviewer_id=current_user.id,
        decision=payload.decision,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(absence)
    return absence


@router.delete("/{absence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_absence(
    absence_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    absences.delete_absence(db, absence_id=absence_id, actor_id=current_user.id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
