# backend/salonbook/routers/appointments.py

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import SchedulingError, to_http_exception
from ..models.generated import (
    Appointments as DBAppointments,
    Businesses as DBBusinesses,
)
from ..schemas.appointment_logs import AppointmentLogRead
from ..schemas.appointments import (
    AppointmentCreate,
    AppointmentRead,
    AppointmentReschedule,
    BookingRead,
    ConflictCheckRead,
    ConflictRead,
    RecurringAppointmentCreate,
    StatusChange,
)
from ..services.appointments.booking import BookingRequest, book_appointment, book_recurring
from ..services.appointments.lifecycle import get_appointment, list_logs, transition
from ..services.appointments.reschedule import RescheduleChanges, reschedule
from ..services.scheduling.business_time import (
    business_offset,
    normalize_utc,
    to_utc,
    utc_now,
)
from ..services.scheduling.config import get_scheduling_config
from ..services.scheduling.conflicts import allowed_resolutions, check_conflict

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("", response_model=list[AppointmentRead])
def list_appointments(
    business_id: int,
    target_date: Optional[date] = Query(None, alias="date"),
    staff_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """
    Appointments of a business.

    Filters:
    - date (business-local day)
    - staff_id
    """
    q = db.query(DBAppointments).filter(DBAppointments.business_id == business_id)

    if target_date:
        offset = business_offset(db.get(DBBusinesses, business_id))
        day_start = to_utc(datetime.combine(target_date, time.min), offset)
        q = q.filter(
            DBAppointments.start_time >= day_start,
            DBAppointments.start_time < day_start + timedelta(days=1),
        )

    if staff_id:
        q = q.filter(DBAppointments.staff_id == staff_id)

    return [AppointmentRead.from_db(a) for a in q.order_by(DBAppointments.start_time.asc()).all()]


@router.get("/conflicts", response_model=ConflictCheckRead)
def get_conflicts(
    business_id: int,
    customer_id: int,
    start_time: datetime,
    lookahead_days: Optional[int] = Query(None, ge=0, le=60),
    db: Session = Depends(get_db),
):
    """Preview the customer conflict guard for a proposed start."""
    if lookahead_days is None:
        lookahead_days = get_scheduling_config().conflict_lookahead_days

    check = check_conflict(
        db, customer_id, business_id, normalize_utc(start_time), lookahead_days, utc_now()
    )
    if check.conflict is None:
        return ConflictCheckRead(check_failed=check.failed)

    return ConflictCheckRead(
        conflict=ConflictRead.model_validate(check.conflict),
        allowed_resolutions=allowed_resolutions(check.conflict),
    )


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: AppointmentCreate,
    actor_user_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        outcome = book_appointment(
            db,
            _to_request(data),
            actor_user_id,
            utc_now(),
            resolution=data.resolution,
            lookahead_days=data.lookahead_days,
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e

    conflict = ConflictRead.model_validate(outcome.conflict) if outcome.conflict else None

    if outcome.needs_decision:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "kind": "conflict",
                "reason": "Customer already has an upcoming appointment",
                "conflict": conflict.model_dump(mode="json"),
                "allowed_resolutions": [r.value for r in outcome.allowed_resolutions],
            },
        )

    return BookingRead(
        appointment=AppointmentRead.from_db(outcome.appointment) if outcome.appointment else None,
        canceled_appointment_id=outcome.canceled_appointment_id,
        aborted=outcome.aborted,
        conflict=conflict,
        conflict_check_failed=outcome.conflict_check_failed,
    )


@router.post(
    "/recurring",
    response_model=list[AppointmentRead],
    status_code=status.HTTP_201_CREATED,
)
def create_recurring(
    data: RecurringAppointmentCreate,
    actor_user_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        created = book_recurring(
            db, _to_request(data), data.frequency, data.count, actor_user_id, utc_now()
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return [AppointmentRead.from_db(a) for a in created]


@router.get("/{id}", response_model=AppointmentRead)
def get_appointment_by_id(id: int, db: Session = Depends(get_db)):
    try:
        return AppointmentRead.from_db(get_appointment(db, id))
    except SchedulingError as e:
        raise to_http_exception(e) from e


@router.post("/{id}/status", response_model=AppointmentRead)
def change_status(id: int, data: StatusChange, db: Session = Depends(get_db)):
    try:
        obj = transition(db, id, data.status, data.reason, data.actor_user_id, utc_now())
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return AppointmentRead.from_db(obj)


@router.patch("/{id}", response_model=AppointmentRead)
def reschedule_appointment(
    id: int,
    data: AppointmentReschedule,
    db: Session = Depends(get_db),
):
    changes = RescheduleChanges(**data.model_dump(exclude={"actor_user_id"}))
    try:
        obj = reschedule(db, id, changes, data.actor_user_id, utc_now())
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return AppointmentRead.from_db(obj)


@router.get("/{id}/logs", response_model=list[AppointmentLogRead])
def get_appointment_logs(id: int, db: Session = Depends(get_db)):
    try:
        return list_logs(db, id)
    except SchedulingError as e:
        raise to_http_exception(e) from e


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Appointments are canceled, not deleted",
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _to_request(data: AppointmentCreate) -> BookingRequest:
    return BookingRequest(
        business_id=data.business_id,
        customer_id=data.customer_id,
        staff_id=data.staff_id,
        service_id=data.service_id,
        start_time=normalize_utc(data.start_time),
        duration=data.duration,
        customer_notes=data.customer_notes,
        metadata=data.metadata,
    )
