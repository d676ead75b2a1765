# backend/salonbook/services/scheduling/availability.py
"""
Service availability for a staff member on a specific day.

Reads everything fresh from storage on every call and delegates the
slot logic to calculator.compute_slots.

Takes into account:
- Resolved working window and breaks (staff / business / default)
- Service duration
- Staff rest time between appointments
- Existing active appointments of the staff member
"""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NotFoundError, TransientIOError
from .business_time import business_offset, to_business_time, to_utc
from .calculator import BookedInterval, compute_slots
from .config import SchedulingConfig, get_scheduling_config
from .durations import Duration
from .working_hours import resolve_for_staff, staff_settings

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("booked", "confirmed")


def calculate_staff_availability(
    db: Session,
    staff_id: int,
    service_id: int,
    target_date: date,
    now: datetime,
    config: SchedulingConfig | None = None,
) -> dict:
    """
    Calculate time slots for a service with one staff member.

    Args:
        target_date: Business-local calendar date
        now: Current instant, naive UTC

    Returns:
        Dict for SlotsDayResponse.
    """
    config = config or get_scheduling_config()

    try:
        staff, service, business = _get_staff_service(db, staff_id, service_id)
        offset = business_offset(business)

        # Step 1: Working window
        window = resolve_for_staff(db, staff_id, staff.business_id, target_date, config)

        # Step 2: Service duration and staff rest time
        duration = Duration.parse(service.duration)
        rest_time = rest_time_minutes(staff)

        # Step 3: Existing bookings, converted to business-local time
        booked = get_booked_intervals(db, staff_id, target_date, offset)
    except SQLAlchemyError as e:
        logger.error(f"Availability lookup failed for staff={staff_id}: {e}")
        raise TransientIOError("Could not load availability, try again") from e

    # Step 4: Slots
    local_now = to_business_time(now, offset)
    slots = compute_slots(
        window,
        window.breaks,
        booked,
        duration.minutes,
        rest_time_minutes=rest_time,
        slot_step_minutes=config.slot_step_minutes,
        now=local_now,
        target_date=target_date,
    )

    return {
        "staff_id": staff_id,
        "service_id": service_id,
        "date": target_date,
        "is_working_day": window.active,
        "start_time": window.start_time,
        "end_time": window.end_time,
        "service_duration_min": duration.minutes,
        "rest_time_min": rest_time,
        "slot_step_minutes": config.slot_step_minutes,
        "slots": [
            {
                "time": slot.time,
                "start_time": to_utc(slot.start, offset),
                "available": slot.available,
                "is_break": slot.is_break,
            }
            for slot in slots
        ],
    }


def get_booked_intervals(
    db: Session,
    staff_id: int,
    target_date: date,
    offset_minutes: int,
    exclude_appointment_id: int | None = None,
) -> list[BookedInterval]:
    """Active appointments of a staff member on a business-local day."""
    from ...models.generated import Appointments

    day_start = to_utc(datetime.combine(target_date, datetime.min.time()), offset_minutes)
    day_end = day_start + timedelta(days=1)

    q = db.query(Appointments).filter(
        Appointments.staff_id == staff_id,
        Appointments.status.in_(ACTIVE_STATUSES),
        Appointments.start_time < day_end,
        Appointments.end_time > day_start,
    )
    if exclude_appointment_id is not None:
        q = q.filter(Appointments.id != exclude_appointment_id)

    return [
        BookedInterval(
            start=to_business_time(apt.start_time, offset_minutes),
            end=to_business_time(apt.end_time, offset_minutes),
            staff_id=apt.staff_id,
        )
        for apt in q.order_by(Appointments.start_time).all()
    ]


# ── Helpers ──────────────────────────────────────────────────────────────


def rest_time_minutes(staff) -> int:
    """Rest time (minutes) a staff member needs after each appointment."""
    value = staff_settings(staff).get("rest_time") or 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _get_staff_service(db: Session, staff_id: int, service_id: int):
    """Get active staff member, active service and their business."""
    from ...models.generated import Businesses, Services, Users

    staff = db.query(Users).filter(Users.id == staff_id, Users.is_active == 1).first()
    if not staff:
        raise NotFoundError(f"Staff member {staff_id} not found")

    service = db.query(Services).filter(
        Services.id == service_id,
        Services.business_id == staff.business_id,
        Services.is_active == 1,
    ).first()
    if not service:
        raise NotFoundError(f"Service {service_id} not found")

    business = db.get(Businesses, staff.business_id)
    return staff, service, business
