import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import ResourceNotFoundError
from app.models.semester import Semester
from app.models.user import User, UserRole
from app.schemas.conflict import AvailabilityResult, ConflictReport
from app.schemas.timetable import (
    GroupOut,
    SlotAvailabilityQuery,
    TimetableSlotCancel,
    TimetableSlotCreate,
    TimetableSlotOut,
    TimetableSlotUpdate,
)
from app.services import schedule
from app.services.conflict_service import build_semester_report, check_availability

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=TimetableSlotOut, status_code=status.HTTP_201_CREATED)
def create_timetable_slot(
    payload: TimetableSlotCreate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    slot = schedule.create_slot(db, data=payload, actor=current_user)
    db.commit()
    db.refresh(slot)
    logger.info("Slot %s created by %s", slot.id, current_user.id)
    return slot


@router.get("/groups", response_model=list[GroupOut])
def list_my_groups(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[GroupOut]:
    return schedule.list_accessible_groups(db, actor=current_user)


@router.get("/groups/{group_id}", response_model=list[TimetableSlotOut])
def list_group_timetable(
    group_id: str,
    semester_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimetableSlotOut]:
    return schedule.list_group_slots(db, group_id=group_id, actor=current_user, semester_id=semester_id)


@router.post("/check-availability", response_model=AvailabilityResult)
def check_slot_availability(
    payload: SlotAvailabilityQuery,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
) -> AvailabilityResult:
    return check_availability(db, **payload.model_dump())


@router.get("/conflicts", response_model=ConflictReport)
def audit_semester_conflicts(
    semester_id: str = Query(min_length=1),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
) -> ConflictReport:
    if db.get(Semester, semester_id) is None:
        raise ResourceNotFoundError("Semester", semester_id)
    return build_semester_report(db, semester_id)


@router.get("/{slot_id}", response_model=TimetableSlotOut)
def get_timetable_slot(
    slot_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    return schedule.get_slot(db, slot_id=slot_id, actor=current_user)


@router.put("/{slot_id}", response_model=TimetableSlotOut)
def update_timetable_slot(
    slot_id: str,
    payload: TimetableSlotUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    slot = schedule.update_slot(db, slot_id=slot_id, patch=payload, actor=current_user)
    db.commit()
    db.refresh(slot)
    return slot


@router.post("/{slot_id}/cancel", response_model=TimetableSlotOut)
def cancel_timetable_slot(
    slot_id: str,
    payload: TimetableSlotCancel,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    slot = schedule.cancel_slot(db, slot_id=slot_id, actor=current_user, reason=payload.reason)
    db.commit()
    db.refresh(slot)
    return slot


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_timetable_slot(
    slot_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
) -> Response:
    schedule.delete_slot(db, slot_id=slot_id, actor=current_user)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
