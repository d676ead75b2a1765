# backend/salonbook/services/appointments/reschedule.py
"""
Reschedule operations: time, staff, service, duration and customer phone.

A change set is validated completely before anything is written; a
rejected change leaves the appointment untouched and appends no log.
Each changed field gets its own log entry, all sharing one timestamp.

Exactly one of `duration` / `end_time` is authoritative per call:
  - duration given  → end_time = start_time + duration
  - end_time given  → duration = end_time - start_time
  - service changed → the new service's duration
  - otherwise       → the current duration is kept
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NotFoundError, SchedulingError, TransientIOError, ValidationError
from ...models.generated import (
    Appointments as DBAppointment,
    Businesses as DBBusiness,
    Customers as DBCustomer,
    Services as DBService,
    Users as DBUser,
)
from ..scheduling.business_time import business_offset, to_business_time, to_utc
from ..scheduling.durations import Duration, format_clock, parse_clock
from .lifecycle import CANCELED, append_log, ensure_staff_free, get_appointment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RescheduleChanges:
    """Partial change set. Dates and clock times are business-local."""
    date: str | None = None
    time: str | None = None
    end_time: str | None = None
    duration: int | str | None = None
    staff_id: int | None = None
    service_id: int | None = None
    customer_phone: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class _Plan:
    start_time: datetime
    end_time: datetime
    duration: Duration
    staff: DBUser
    service: DBService
    phone: str | None


def reschedule(
    db: Session,
    appointment_id: int,
    changes: RescheduleChanges,
    actor_id: int | None,
    now: datetime,
) -> DBAppointment:
    """
    Apply a change set atomically.

    Raises:
        NotFoundError: unknown appointment, staff member or service
        ValidationError: malformed or inconsistent change set
        OverlapError: new interval is taken for the staff member
        TransientIOError: storage failure
    """
    try:
        appointment = get_appointment(db, appointment_id)
        customer = db.get(DBCustomer, appointment.customer_id)
        offset = business_offset(db.get(DBBusiness, appointment.business_id))

        plan = _plan(db, appointment, customer, changes, offset)
        _apply(db, appointment, customer, plan, changes.reason, actor_id, now, offset)
        db.commit()
    except SchedulingError as e:
        db.rollback()
        logger.warning(f"Reschedule rejected for appointment {appointment_id}: {e.reason}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientIOError("Could not update the appointment") from e

    db.refresh(appointment)
    logger.info(f"Appointment {appointment_id} rescheduled")
    return appointment


def _plan(
    db: Session,
    appointment: DBAppointment,
    customer: DBCustomer | None,
    changes: RescheduleChanges,
    offset: int,
) -> _Plan:
    """Validate the change set and compute the new state. Writes nothing."""
    if appointment.status == CANCELED:
        raise ValidationError("A canceled appointment cannot be changed")

    if changes.duration is not None and changes.end_time is not None:
        raise ValidationError("Provide either a duration or an end time, not both")

    # Step 1: Start time (business-local)
    local_start = to_business_time(appointment.start_time, offset)
    new_date = local_start.date()
    if changes.date is not None:
        try:
            new_date = date.fromisoformat(changes.date)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid date: {changes.date!r}") from e

    start_minutes = local_start.hour * 60 + local_start.minute
    if changes.time is not None:
        start_minutes = parse_clock(changes.time)

    day_start = datetime.combine(new_date, datetime.min.time())
    new_local_start = day_start + timedelta(minutes=start_minutes)

    # Step 2: Staff and service
    staff = db.get(DBUser, appointment.staff_id)
    if changes.staff_id is not None and changes.staff_id != appointment.staff_id:
        staff = db.get(DBUser, changes.staff_id)
        if staff is None or staff.business_id != appointment.business_id or not staff.is_active:
            raise NotFoundError(f"Staff member {changes.staff_id} not found")

    service = db.get(DBService, appointment.service_id)
    service_changed = changes.service_id is not None and changes.service_id != appointment.service_id
    if service_changed:
        service = db.get(DBService, changes.service_id)
        if service is None or service.business_id != appointment.business_id or not service.is_active:
            raise NotFoundError(f"Service {changes.service_id} not found")

    # Step 3: Duration / end time
    if changes.duration is not None:
        duration = Duration.parse(changes.duration)
    elif changes.end_time is not None:
        new_local_end = day_start + timedelta(minutes=parse_clock(changes.end_time))
        duration = Duration.between(new_local_start, new_local_end)
    elif service_changed:
        duration = Duration.parse(service.duration)
    else:
        duration = Duration.between(appointment.start_time, appointment.end_time)

    new_start = to_utc(new_local_start, offset)
    new_end = new_start + duration.delta
    if new_end <= new_start:
        raise ValidationError("End time must be after start time")

    # Step 4: Phone
    phone = customer.phone if customer else None
    if changes.customer_phone is not None:
        if customer is None:
            raise NotFoundError(f"Customer {appointment.customer_id} not found")
        phone = changes.customer_phone

    # Step 5: Overlap re-validation
    interval_changed = (
        new_start != appointment.start_time
        or new_end != appointment.end_time
        or staff.id != appointment.staff_id
    )
    if interval_changed:
        ensure_staff_free(db, staff, new_start, new_end, exclude_appointment_id=appointment.id)

    plan = _Plan(new_start, new_end, duration, staff, service, phone)
    if not _has_changes(appointment, customer, plan):
        raise ValidationError("No changes to save")
    return plan


def _has_changes(appointment: DBAppointment, customer: DBCustomer | None, plan: _Plan) -> bool:
    return (
        plan.start_time != appointment.start_time
        or plan.end_time != appointment.end_time
        or plan.staff.id != appointment.staff_id
        or plan.service.id != appointment.service_id
        or (customer is not None and plan.phone != customer.phone)
    )


def _apply(
    db: Session,
    appointment: DBAppointment,
    customer: DBCustomer | None,
    plan: _Plan,
    reason: str | None,
    actor_id: int | None,
    now: datetime,
    offset: int,
) -> None:
    """Persist the planned state and append one log entry per changed field."""
    entries: list[tuple[str, dict]] = []

    if plan.start_time != appointment.start_time:
        entries.append(("time_change", {
            "old_time": _local_label(appointment.start_time, offset),
            "new_time": _local_label(plan.start_time, offset),
        }))

    if plan.staff.id != appointment.staff_id:
        old_staff = db.get(DBUser, appointment.staff_id)
        entries.append(("staff_change", {
            "old_staff_id": appointment.staff_id,
            "old_staff": old_staff.name if old_staff else None,
            "new_staff_id": plan.staff.id,
            "new_staff": plan.staff.name,
        }))

    if plan.service.id != appointment.service_id:
        old_service = db.get(DBService, appointment.service_id)
        entries.append(("service_change", {
            "old_service_id": appointment.service_id,
            "old_service": old_service.name if old_service else None,
            "new_service_id": plan.service.id,
            "new_service": plan.service.name,
        }))

    if plan.duration.minutes != appointment.duration_minutes:
        entries.append(("duration_change", {
            "old_duration": appointment.duration_minutes,
            "new_duration": plan.duration.minutes,
        }))

    if customer is not None and plan.phone != customer.phone:
        entries.append(("phone_change", {
            "old_phone": customer.phone,
            "new_phone": plan.phone,
        }))
        customer.phone = plan.phone

    appointment.start_time = plan.start_time
    appointment.end_time = plan.end_time
    appointment.duration_minutes = plan.duration.minutes
    appointment.staff_id = plan.staff.id
    appointment.service_id = plan.service.id
    appointment.updated_at = now

    for action, details in entries:
        append_log(db, appointment, action, actor_id, {**details, "reason": reason}, now)


def _local_label(utc_dt: datetime, offset: int) -> str:
    local = to_business_time(utc_dt, offset)
    return f"{local.date().isoformat()} {format_clock(local.hour * 60 + local.minute)}"
