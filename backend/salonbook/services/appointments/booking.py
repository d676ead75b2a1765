# backend/salonbook/services/appointments/booking.py
"""
Booking flow.

1. Check the customer's nearby appointments (conflict guard)
2. Conflict without a chosen resolution → return it to the caller
3. Apply the resolution:
   - keep_both        → create the new appointment
   - cancel_existing  → cancel the old one and create, in one transaction
   - abort            → create nothing
4. Create the appointment in `booked` state with its `create` log entry

Recurring series are simple date stepping (daily / weekly), created
all-or-nothing.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import SchedulingError, TransientIOError, ValidationError
from ...models.generated import Appointments as DBAppointment
from ..scheduling.config import get_scheduling_config
from ..scheduling.conflicts import (
    Conflict,
    ConflictResolution,
    allowed_resolutions,
    check_conflict,
)
from ..scheduling.durations import Duration
from .lifecycle import CANCELED, add_appointment, apply_transition, emit_all, get_appointment

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "Canceled automatically: customer booked a new appointment"

RECURRENCE_STEPS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
}
MAX_RECURRENCE_COUNT = 52


@dataclass(frozen=True)
class BookingRequest:
    business_id: int
    customer_id: int
    staff_id: int
    service_id: int
    start_time: datetime  # UTC
    duration: int | str | None = None
    customer_notes: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass
class BookingOutcome:
    appointment: DBAppointment | None = None
    conflict: Conflict | None = None
    allowed_resolutions: list[ConflictResolution] = field(default_factory=list)
    canceled_appointment_id: int | None = None
    conflict_check_failed: bool = False
    aborted: bool = False

    @property
    def needs_decision(self) -> bool:
        return self.appointment is None and self.conflict is not None and not self.aborted


def book_appointment(
    db: Session,
    request: BookingRequest,
    actor_id: int | None,
    now: datetime,
    resolution: ConflictResolution | None = None,
    lookahead_days: int | None = None,
) -> BookingOutcome:
    """
    Book an appointment, honouring the customer conflict policy.

    Returns:
        BookingOutcome. `needs_decision` is True when a conflict was found
        and no resolution was chosen; nothing is written in that case.
    """
    if lookahead_days is None:
        lookahead_days = get_scheduling_config().conflict_lookahead_days

    duration = Duration.parse(request.duration) if request.duration is not None else None

    # Step 1: Conflict guard
    check = check_conflict(
        db, request.customer_id, request.business_id, request.start_time, lookahead_days, now
    )
    if check.failed:
        logger.warning(f"Booking proceeds without conflict check: {check.reason}")

    outcome = BookingOutcome(conflict=check.conflict, conflict_check_failed=check.failed)
    conflict = check.conflict

    # Step 2: Decision required
    if conflict is not None:
        outcome.allowed_resolutions = allowed_resolutions(conflict)
        if resolution is None:
            return outcome
        if resolution not in outcome.allowed_resolutions:
            raise ValidationError(
                f"Resolution {resolution.value} is not allowed for this conflict"
            )
        if resolution == ConflictResolution.ABORT:
            outcome.aborted = True
            logger.info(f"Booking aborted for customer={request.customer_id}")
            return outcome

    # Step 3: Write
    events = []
    try:
        if conflict is not None and resolution == ConflictResolution.CANCEL_EXISTING:
            existing = get_appointment(db, conflict.appointment_id)
            events += apply_transition(db, existing, CANCELED, AUTO_CANCEL_REASON, actor_id, now)
            outcome.canceled_appointment_id = existing.id

        appointment, created_events = add_appointment(
            db,
            request.business_id,
            request.customer_id,
            request.staff_id,
            request.service_id,
            request.start_time,
            actor_id,
            now,
            duration=duration,
            customer_notes=request.customer_notes,
            metadata=request.metadata,
        )
        events += created_events
        db.commit()
    except SchedulingError as e:
        db.rollback()
        logger.warning(f"Booking rejected for customer={request.customer_id}: {e.reason}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientIOError("Could not save the appointment") from e

    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} booked for customer={request.customer_id}")
    emit_all(events)
    outcome.appointment = appointment
    return outcome


def recurrence_starts(first_start: datetime, frequency: str, count: int) -> list[datetime]:
    """Start instants of a simple recurring series."""
    if frequency not in RECURRENCE_STEPS:
        raise ValidationError(f"Unknown recurrence: {frequency}")
    if count < 1 or count > MAX_RECURRENCE_COUNT:
        raise ValidationError(f"Recurrence count must be between 1 and {MAX_RECURRENCE_COUNT}")
    step = RECURRENCE_STEPS[frequency]
    return [first_start + step * i for i in range(count)]


def book_recurring(
    db: Session,
    request: BookingRequest,
    frequency: str,
    count: int,
    actor_id: int | None,
    now: datetime,
) -> list[DBAppointment]:
    """
    Create a recurring series. Any occurrence that cannot be booked
    rejects the whole series.
    """
    starts = recurrence_starts(request.start_time, frequency, count)
    duration = Duration.parse(request.duration) if request.duration is not None else None
    group = uuid.uuid4().hex

    created = []
    events = []
    try:
        for index, start_time in enumerate(starts):
            appointment, created_events = add_appointment(
                db,
                request.business_id,
                request.customer_id,
                request.staff_id,
                request.service_id,
                start_time,
                actor_id,
                now,
                duration=duration,
                customer_notes=request.customer_notes,
                metadata={
                    **request.metadata,
                    "is_recurring": True,
                    "recurring_group": group,
                    "recurring_index": index,
                },
                log_details={"is_recurring": True, "recurring_group": group},
            )
            created.append(appointment)
            events += created_events
        db.commit()
    except SchedulingError as e:
        db.rollback()
        logger.warning(f"Recurring booking rejected for customer={request.customer_id}: {e.reason}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientIOError("Could not save the recurring appointments") from e

    for appointment in created:
        db.refresh(appointment)
    logger.info(f"Recurring series {group} created: {len(created)} appointments")
    emit_all(events)
    return created
