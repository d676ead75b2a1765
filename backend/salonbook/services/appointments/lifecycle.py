# backend/salonbook/services/appointments/lifecycle.py
"""
Appointment lifecycle.

Authoritative state machine for appointment status and the append-only
audit log of every status and field change.

    booked ──► confirmed ──► completed | no_show
    booked | confirmed | completed ──► canceled (canceled is terminal)
    completed | no_show ──► booked             (manual reopen, re-checks overlap)

Every successful transition appends one `status_change` log entry.
Events are emitted only after the change is committed.
"""

import json
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NotFoundError, OverlapError, SchedulingError, TransientIOError, ValidationError
from ...models.generated import (
    AppointmentLogs as DBAppointmentLog,
    Appointments as DBAppointment,
    Businesses as DBBusiness,
    Customers as DBCustomer,
    Services as DBService,
    Users as DBUser,
)
from ..events import (
    APPOINTMENT_CANCELED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_CREATED,
    emit_event,
)
from ..scheduling.availability import ACTIVE_STATUSES, rest_time_minutes
from ..scheduling.calculator import BookedInterval, is_interval_free
from ..scheduling.durations import Duration

logger = logging.getLogger(__name__)

BOOKED = "booked"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELED = "canceled"
NO_SHOW = "no_show"

STATUSES = (BOOKED, CONFIRMED, COMPLETED, CANCELED, NO_SHOW)

TRANSITIONS: dict[str, frozenset[str]] = {
    BOOKED: frozenset({CONFIRMED, CANCELED}),
    CONFIRMED: frozenset({COMPLETED, NO_SHOW, CANCELED}),
    COMPLETED: frozenset({BOOKED, CANCELED}),
    NO_SHOW: frozenset({BOOKED}),
    CANCELED: frozenset(),
}

LOG_ACTIONS = (
    "create",
    "time_change",
    "staff_change",
    "service_change",
    "duration_change",
    "phone_change",
    "status_change",
)

PendingEvent = tuple[str, dict]


def can_transition(old_status: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(old_status, frozenset())


def get_appointment(db: Session, appointment_id: int) -> DBAppointment:
    appointment = db.get(DBAppointment, appointment_id)
    if appointment is None:
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return appointment


def load_metadata(appointment: DBAppointment) -> dict:
    try:
        value = json.loads(appointment.meta) if appointment.meta else {}
    except (TypeError, ValueError):
        value = {}
    return value if isinstance(value, dict) else {}


# ── Audit log ────────────────────────────────────────────────────────────


def append_log(
    db: Session,
    appointment: DBAppointment,
    action: str,
    actor_id: int | None,
    details: dict,
    now: datetime,
    old_status: str | None = None,
    new_status: str | None = None,
) -> DBAppointmentLog:
    """
    Append an immutable log entry.

    created_at never goes backwards for one appointment, so entries keep
    their order even if the caller's clock does.
    """
    if action not in LOG_ACTIONS:
        raise ValueError(f"Unknown log action: {action}")

    last = (
        db.query(DBAppointmentLog.created_at)
        .filter(DBAppointmentLog.appointment_id == appointment.id)
        .order_by(DBAppointmentLog.created_at.desc())
        .first()
    )
    created_at = max(now, last[0]) if last else now

    entry = DBAppointmentLog(
        appointment_id=appointment.id,
        actor_user_id=actor_id,
        action=action,
        old_status=old_status,
        new_status=new_status,
        details=json.dumps({"timestamp": created_at.isoformat(), **details}, default=str),
        created_at=created_at,
    )
    db.add(entry)
    db.flush()
    return entry


def list_logs(db: Session, appointment_id: int) -> list[DBAppointmentLog]:
    """Log entries of an appointment, newest first."""
    get_appointment(db, appointment_id)
    return (
        db.query(DBAppointmentLog)
        .filter(DBAppointmentLog.appointment_id == appointment_id)
        .order_by(DBAppointmentLog.created_at.desc(), DBAppointmentLog.id.desc())
        .all()
    )


# ── Overlap re-validation ────────────────────────────────────────────────


def ensure_staff_free(
    db: Session,
    staff: DBUser,
    start_time: datetime,
    end_time: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    """
    Re-run the availability overlap check inside the writing transaction.

    Raises:
        OverlapError: [start_time, end_time) collides with another active
            appointment of the staff member (extended by rest time)
    """
    rest = rest_time_minutes(staff)
    q = db.query(DBAppointment).filter(
        DBAppointment.staff_id == staff.id,
        DBAppointment.status.in_(ACTIVE_STATUSES),
        DBAppointment.start_time < end_time,
        DBAppointment.end_time > start_time - timedelta(minutes=rest),
    )
    if exclude_appointment_id is not None:
        q = q.filter(DBAppointment.id != exclude_appointment_id)

    booked = [BookedInterval(a.start_time, a.end_time, a.staff_id) for a in q.all()]
    if not is_interval_free(start_time, end_time, booked, rest):
        raise OverlapError("The selected time overlaps another appointment")


# ── Create ───────────────────────────────────────────────────────────────


def add_appointment(
    db: Session,
    business_id: int,
    customer_id: int,
    staff_id: int,
    service_id: int,
    start_time: datetime,
    actor_id: int | None,
    now: datetime,
    duration: Duration | None = None,
    customer_notes: str | None = None,
    metadata: dict | None = None,
    log_details: dict | None = None,
) -> tuple[DBAppointment, list[PendingEvent]]:
    """
    Stage a new `booked` appointment and its `create` log entry.

    Does not commit. Returns the appointment and the events to emit once
    the caller has committed.
    """
    business = db.get(DBBusiness, business_id)
    if business is None:
        raise NotFoundError(f"Business {business_id} not found")

    customer = db.get(DBCustomer, customer_id)
    if customer is None or customer.business_id != business_id:
        raise NotFoundError(f"Customer {customer_id} not found")

    staff = db.get(DBUser, staff_id)
    if staff is None or staff.business_id != business_id or not staff.is_active:
        raise NotFoundError(f"Staff member {staff_id} not found")

    service = db.get(DBService, service_id)
    if service is None or service.business_id != business_id or not service.is_active:
        raise NotFoundError(f"Service {service_id} not found")

    duration = duration or Duration.parse(service.duration)
    end_time = start_time + duration.delta

    ensure_staff_free(db, staff, start_time, end_time)

    meta = {"created_by": actor_id, "created_at": now.isoformat(), **(metadata or {})}
    appointment = DBAppointment(
        business_id=business_id,
        customer_id=customer_id,
        staff_id=staff_id,
        service_id=service_id,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration.minutes,
        status=BOOKED,
        meta=json.dumps(meta, default=str),
        customer_notes=customer_notes,
        created_at=now,
        updated_at=now,
    )
    db.add(appointment)
    db.flush()

    append_log(
        db,
        appointment,
        "create",
        actor_id,
        {
            "customer_name": customer.name,
            "service_name": service.name,
            "staff_name": staff.name,
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            **(log_details or {}),
        },
        now,
        new_status=BOOKED,
    )

    event = (APPOINTMENT_CREATED, {
        "appointment_id": appointment.id,
        "business_id": business_id,
        "customer_id": customer_id,
        "staff_id": staff_id,
        "start_time": start_time.isoformat(),
    })
    return appointment, [event]


def create_appointment(
    db: Session,
    business_id: int,
    customer_id: int,
    staff_id: int,
    service_id: int,
    start_time: datetime,
    actor_id: int | None,
    now: datetime,
    duration: Duration | None = None,
    customer_notes: str | None = None,
    metadata: dict | None = None,
) -> DBAppointment:
    """Create an appointment in `booked` state, commit, emit appointment.created."""
    try:
        appointment, events = add_appointment(
            db, business_id, customer_id, staff_id, service_id, start_time,
            actor_id, now, duration, customer_notes, metadata,
        )
        db.commit()
    except SchedulingError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientIOError("Could not save the appointment") from e

    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} created for staff={staff_id} at {start_time}")
    emit_all(events)
    return appointment


# ── Status transitions ───────────────────────────────────────────────────


def apply_transition(
    db: Session,
    appointment: DBAppointment,
    new_status: str,
    reason: str | None,
    actor_id: int | None,
    now: datetime,
) -> list[PendingEvent]:
    """Stage a status change and its log entry. Does not commit."""
    if new_status not in STATUSES:
        raise ValidationError(f"Unknown status: {new_status}")

    old_status = appointment.status
    if old_status == new_status:
        raise ValidationError(f"Appointment is already {new_status}")
    if not can_transition(old_status, new_status):
        raise ValidationError(f"Cannot change status from {old_status} to {new_status}")

    # Reopened appointments take their interval back
    if new_status in ACTIVE_STATUSES and old_status not in ACTIVE_STATUSES:
        staff = db.get(DBUser, appointment.staff_id)
        ensure_staff_free(
            db, staff, appointment.start_time, appointment.end_time,
            exclude_appointment_id=appointment.id,
        )

    appointment.status = new_status
    appointment.updated_at = now
    if reason:
        meta = load_metadata(appointment)
        meta["status_change_reason"] = reason
        appointment.meta = json.dumps(meta, default=str)

    append_log(
        db,
        appointment,
        "status_change",
        actor_id,
        {"reason": reason},
        now,
        old_status=old_status,
        new_status=new_status,
    )

    payload = {
        "appointment_id": appointment.id,
        "business_id": appointment.business_id,
        "customer_id": appointment.customer_id,
        "old_status": old_status,
    }
    if new_status == COMPLETED:
        return [(APPOINTMENT_COMPLETED, payload)]
    if new_status == CANCELED:
        return [(APPOINTMENT_CANCELED, {**payload, "reason": reason})]
    return []


def transition(
    db: Session,
    appointment_id: int,
    new_status: str,
    reason: str | None,
    actor_id: int | None,
    now: datetime,
) -> DBAppointment:
    """
    Change appointment status.

    Raises:
        NotFoundError: unknown appointment
        ValidationError: transition not allowed; nothing is changed
        OverlapError: reopening onto an interval taken in the meantime
        TransientIOError: storage failure; nothing is changed
    """
    try:
        appointment = get_appointment(db, appointment_id)
        old_status = appointment.status
        events = apply_transition(db, appointment, new_status, reason, actor_id, now)
        db.commit()
    except SchedulingError as e:
        db.rollback()
        logger.warning(f"Status change rejected for appointment {appointment_id}: {e.reason}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientIOError("Could not update appointment status") from e

    db.refresh(appointment)
    logger.info(f"Appointment {appointment_id}: {old_status} → {new_status}")
    emit_all(events)
    return appointment


def emit_all(events: list[PendingEvent]) -> None:
    for event_type, payload in events:
        emit_event(event_type, payload)
