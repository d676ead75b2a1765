# backend/salonbook/services/scheduling/conflicts.py
"""
Customer conflict guard.

Looks for the customer's soonest upcoming active appointment inside a
lookahead horizon. The guard only reports facts; which resolution is
applied is the caller's decision (see services/appointments/booking.py).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import TransientIOError
from .business_time import business_offset, to_business_time

logger = logging.getLogger(__name__)

CONFLICT_STATUSES = ("booked", "confirmed")


class ConflictResolution(str, Enum):
    KEEP_BOTH = "keep_both"
    CANCEL_EXISTING = "cancel_existing"
    ABORT = "abort"


@dataclass(frozen=True)
class Conflict:
    appointment_id: int
    start_time: datetime  # UTC
    service_name: str | None
    staff_name: str | None
    is_same_day: bool


@dataclass(frozen=True)
class ConflictCheck:
    conflict: Conflict | None
    failed: bool = False
    reason: str | None = None


def find_conflict(
    db: Session,
    customer_id: int,
    business_id: int,
    proposed_start: datetime,
    lookahead_days: int,
    now: datetime,
) -> Conflict | None:
    """
    Soonest booked/confirmed appointment of the customer starting in
    [now, now + lookahead_days].

    Args:
        proposed_start: Start of the new booking, naive UTC
        now: Current instant, naive UTC

    Raises:
        TransientIOError: storage read failed
    """
    from ...models.generated import Appointments, Businesses

    horizon = now + timedelta(days=lookahead_days)

    try:
        existing = (
            db.query(Appointments)
            .filter(
                Appointments.business_id == business_id,
                Appointments.customer_id == customer_id,
                Appointments.status.in_(CONFLICT_STATUSES),
                Appointments.start_time >= now,
                Appointments.start_time <= horizon,
            )
            .order_by(Appointments.start_time.asc(), Appointments.id.asc())
            .first()
        )
        if existing is None:
            return None

        offset = business_offset(db.get(Businesses, business_id))
        service_name = existing.service.name if existing.service else None
        staff_name = existing.staff.name if existing.staff else None
    except SQLAlchemyError as e:
        raise TransientIOError("Could not check existing appointments") from e

    return Conflict(
        appointment_id=existing.id,
        start_time=existing.start_time,
        service_name=service_name,
        staff_name=staff_name,
        is_same_day=_same_local_day(existing.start_time, proposed_start, offset),
    )


def check_conflict(
    db: Session,
    customer_id: int,
    business_id: int,
    proposed_start: datetime,
    lookahead_days: int,
    now: datetime,
) -> ConflictCheck:
    """
    Same as find_conflict but never blocks booking: a storage failure
    rolls the session back and resolves to "no conflict" with failed=True
    for the caller to log.
    """
    try:
        conflict = find_conflict(db, customer_id, business_id, proposed_start, lookahead_days, now)
    except TransientIOError as e:
        db.rollback()
        logger.error(f"Conflict check failed for customer={customer_id}: {e.__cause__}")
        return ConflictCheck(conflict=None, failed=True, reason=e.reason)
    return ConflictCheck(conflict=conflict)


def allowed_resolutions(conflict: Conflict) -> list[ConflictResolution]:
    """
    Same day: another appointment that day is permitted, nothing to cancel.
    Other day: the existing appointment may be canceled in favour of the new one.
    """
    if conflict.is_same_day:
        return [ConflictResolution.KEEP_BOTH, ConflictResolution.ABORT]
    return [
        ConflictResolution.CANCEL_EXISTING,
        ConflictResolution.KEEP_BOTH,
        ConflictResolution.ABORT,
    ]


def _same_local_day(a: datetime, b: datetime, offset_minutes: int) -> bool:
    return to_business_time(a, offset_minutes).date() == to_business_time(b, offset_minutes).date()
