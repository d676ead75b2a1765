import json
from datetime import datetime, timedelta

import pytest

from conftest import NOW
from salonbook.errors import OverlapError, ValidationError
from salonbook.models.generated import Appointments
from salonbook.services.appointments.booking import (
    AUTO_CANCEL_REASON,
    BookingRequest,
    book_appointment,
    book_recurring,
    recurrence_starts,
)
from salonbook.services.appointments.lifecycle import list_logs, load_metadata
from salonbook.services.scheduling.conflicts import ConflictResolution

TOMORROW_10 = datetime(2030, 1, 8, 10, 0)
THURSDAY_10 = datetime(2030, 1, 10, 10, 0)


def request_for(salon, start: datetime, **kwargs) -> BookingRequest:
    return BookingRequest(
        business_id=salon.business.id,
        customer_id=salon.alice.id,
        staff_id=salon.anna.id,
        service_id=salon.haircut.id,
        start_time=start,
        **kwargs,
    )


def test_booking_without_conflict_creates_appointment(db, salon) -> None:
    outcome = book_appointment(db, request_for(salon, TOMORROW_10, duration='00:45:00'), None, NOW)

    assert outcome.needs_decision is False
    assert outcome.appointment.status == 'booked'
    assert outcome.appointment.duration_minutes == 45
    assert outcome.conflict is None


def test_conflict_without_resolution_writes_nothing(db, salon) -> None:
    first = book_appointment(db, request_for(salon, TOMORROW_10), None, NOW).appointment

    outcome = book_appointment(db, request_for(salon, THURSDAY_10), None, NOW)

    assert outcome.needs_decision is True
    assert outcome.conflict.appointment_id == first.id
    assert ConflictResolution.CANCEL_EXISTING in outcome.allowed_resolutions
    assert db.query(Appointments).count() == 1


def test_cancel_existing_replaces_old_appointment(db, salon) -> None:
    first = book_appointment(db, request_for(salon, TOMORROW_10), None, NOW).appointment

    outcome = book_appointment(
        db, request_for(salon, THURSDAY_10), salon.anna.id, NOW, resolution=ConflictResolution.CANCEL_EXISTING,
    )

    db.refresh(first)
    assert outcome.canceled_appointment_id == first.id
    assert first.status == 'canceled'
    assert load_metadata(first)['status_change_reason'] == AUTO_CANCEL_REASON
    assert outcome.appointment.status == 'booked'
    assert len(salon.events.events('appointment.canceled')) == 1
    assert len(salon.events.events('appointment.created')) == 2


def test_keep_both_and_abort(db, salon) -> None:
    book_appointment(db, request_for(salon, TOMORROW_10), None, NOW)

    aborted = book_appointment(db, request_for(salon, THURSDAY_10), None, NOW, resolution=ConflictResolution.ABORT)
    kept = book_appointment(db, request_for(salon, THURSDAY_10), None, NOW, resolution=ConflictResolution.KEEP_BOTH)

    assert aborted.aborted is True
    assert aborted.appointment is None
    assert aborted.needs_decision is False
    assert kept.appointment is not None
    assert db.query(Appointments).filter(Appointments.status == 'booked').count() == 2


def test_same_day_conflict_rejects_cancel_existing(db, salon) -> None:
    book_appointment(db, request_for(salon, TOMORROW_10), None, NOW)

    with pytest.raises(ValidationError):
        book_appointment(
            db,
            request_for(salon, TOMORROW_10 + timedelta(hours=3)),
            None,
            NOW,
            resolution=ConflictResolution.CANCEL_EXISTING,
        )

    assert db.query(Appointments).count() == 1


def test_cancel_existing_rolls_back_when_new_slot_is_taken(db, salon) -> None:
    first = book_appointment(db, request_for(salon, TOMORROW_10), None, NOW).appointment
    book_appointment(
        db,
        BookingRequest(salon.business.id, salon.bob.id, salon.anna.id, salon.haircut.id, THURSDAY_10),
        None,
        NOW,
    )

    with pytest.raises(OverlapError):
        book_appointment(
            db, request_for(salon, THURSDAY_10), None, NOW, resolution=ConflictResolution.CANCEL_EXISTING,
        )

    db.refresh(first)
    assert first.status == 'booked'


def test_invalid_duration_is_rejected(db, salon) -> None:
    with pytest.raises(ValidationError):
        book_appointment(db, request_for(salon, TOMORROW_10, duration='soon'), None, NOW)


def test_recurrence_starts() -> None:
    assert recurrence_starts(TOMORROW_10, 'weekly', 3) == [
        TOMORROW_10,
        TOMORROW_10 + timedelta(weeks=1),
        TOMORROW_10 + timedelta(weeks=2),
    ]

    with pytest.raises(ValidationError):
        recurrence_starts(TOMORROW_10, 'monthly', 3)
    with pytest.raises(ValidationError):
        recurrence_starts(TOMORROW_10, 'daily', 53)


def test_recurring_series_shares_a_group(db, salon) -> None:
    created = book_recurring(db, request_for(salon, TOMORROW_10), 'daily', 3, None, NOW)

    groups = {load_metadata(a)['recurring_group'] for a in created}
    assert len(created) == 3
    assert len(groups) == 1
    assert [load_metadata(a)['recurring_index'] for a in created] == [0, 1, 2]
    assert json.loads(list_logs(db, created[0].id)[0].details)['is_recurring'] is True


def test_recurring_series_is_all_or_nothing(db, salon) -> None:
    book_appointment(
        db,
        BookingRequest(salon.business.id, salon.bob.id, salon.anna.id, salon.haircut.id, TOMORROW_10 + timedelta(days=2)),
        None,
        NOW,
    )

    with pytest.raises(OverlapError):
        book_recurring(db, request_for(salon, TOMORROW_10), 'daily', 3, None, NOW)

    assert db.query(Appointments).filter(Appointments.customer_id == salon.alice.id).count() == 0
