import json
from datetime import datetime, timedelta

import pytest

from conftest import NOW, set_staff_settings
from salonbook.errors import NotFoundError, OverlapError, ValidationError
from salonbook.models.generated import AppointmentLogs
from salonbook.services.appointments.lifecycle import (
    STATUSES,
    TRANSITIONS,
    append_log,
    can_transition,
    create_appointment,
    list_logs,
    load_metadata,
    transition,
)
from salonbook.services.scheduling.durations import Duration

START = datetime(2030, 1, 8, 10, 0)


def book(db, salon, start: datetime = START, staff=None, **kwargs):
    staff = staff or salon.anna
    return create_appointment(
        db, salon.business.id, salon.alice.id, staff.id, salon.haircut.id, start, None, NOW, **kwargs,
    )


def test_create_appointment_starts_booked_with_create_log(db, salon) -> None:
    appointment = book(db, salon, customer_notes='Short on the sides')

    assert appointment.status == 'booked'
    assert appointment.end_time == START + timedelta(minutes=30)
    assert appointment.duration_minutes == 30
    assert appointment.customer_notes == 'Short on the sides'

    logs = list_logs(db, appointment.id)
    assert [log.action for log in logs] == ['create']
    assert logs[0].new_status == 'booked'
    assert json.loads(logs[0].details)['service_name'] == 'Haircut'

    created = salon.events.events('appointment.created')
    assert len(created) == 1
    assert created[0]['appointment_id'] == appointment.id


def test_create_appointment_with_explicit_duration(db, salon) -> None:
    appointment = book(db, salon, duration=Duration(50), metadata={'source': 'phone'})

    assert appointment.end_time == START + timedelta(minutes=50)
    assert load_metadata(appointment)['source'] == 'phone'


def test_create_appointment_rejects_overlap_and_respects_rest_time(db, salon) -> None:
    set_staff_settings(db, salon.anna, rest_time=15)
    book(db, salon)

    with pytest.raises(OverlapError):
        book(db, salon, start=START + timedelta(minutes=40))

    assert book(db, salon, start=START + timedelta(minutes=45)).status == 'booked'
    assert book(db, salon, start=START + timedelta(minutes=10), staff=salon.boris).status == 'booked'


def test_create_appointment_rejects_unknown_references(db, salon) -> None:
    with pytest.raises(NotFoundError):
        create_appointment(db, salon.business.id, 999, salon.anna.id, salon.haircut.id, START, None, NOW)


def test_state_machine_shape() -> None:
    assert TRANSITIONS['canceled'] == frozenset()
    assert can_transition('booked', 'confirmed')
    assert can_transition('confirmed', 'completed')
    assert can_transition('completed', 'booked')
    assert can_transition('completed', 'canceled')
    assert not can_transition('no_show', 'canceled')
    assert not can_transition('booked', 'completed')
    assert not can_transition('canceled', 'booked')


def test_transition_logs_and_stores_reason(db, salon) -> None:
    appointment = book(db, salon)

    transition(db, appointment.id, 'confirmed', None, salon.anna.id, NOW)
    updated = transition(db, appointment.id, 'canceled', 'Customer called', salon.anna.id, NOW)

    assert updated.status == 'canceled'
    assert load_metadata(updated)['status_change_reason'] == 'Customer called'

    latest = list_logs(db, appointment.id)[0]
    assert latest.action == 'status_change'
    assert (latest.old_status, latest.new_status) == ('confirmed', 'canceled')
    assert latest.actor_user_id == salon.anna.id

    canceled = salon.events.events('appointment.canceled')
    assert canceled[0]['reason'] == 'Customer called'


@pytest.mark.parametrize('target', [s for s in STATUSES if s != 'canceled'])
def test_canceled_is_terminal(db, salon, target: str) -> None:
    appointment = book(db, salon)
    transition(db, appointment.id, 'canceled', None, None, NOW)

    with pytest.raises(ValidationError):
        transition(db, appointment.id, target, None, None, NOW)

    db.refresh(appointment)
    assert appointment.status == 'canceled'
    assert len(list_logs(db, appointment.id)) == 2


def test_rejected_transition_changes_nothing(db, salon) -> None:
    appointment = book(db, salon)

    with pytest.raises(ValidationError) as exception_info:
        transition(db, appointment.id, 'completed', None, None, NOW)
    assert exception_info.value.reason == 'Cannot change status from booked to completed'

    with pytest.raises(ValidationError) as exception_info:
        transition(db, appointment.id, 'booked', None, None, NOW)
    assert exception_info.value.reason == 'Appointment is already booked'

    with pytest.raises(ValidationError):
        transition(db, appointment.id, 'archived', None, None, NOW)

    db.refresh(appointment)
    assert appointment.status == 'booked'
    assert len(list_logs(db, appointment.id)) == 1


def test_completed_event_fires_once_per_completion(db, salon) -> None:
    appointment = book(db, salon)

    transition(db, appointment.id, 'confirmed', None, None, NOW)
    transition(db, appointment.id, 'completed', None, None, NOW)
    assert len(salon.events.events('appointment.completed')) == 1

    transition(db, appointment.id, 'booked', 'Reopened', None, NOW)
    transition(db, appointment.id, 'confirmed', None, None, NOW)
    transition(db, appointment.id, 'completed', None, None, NOW)
    assert len(salon.events.events('appointment.completed')) == 2


def test_completed_appointment_can_be_canceled(db, salon) -> None:
    appointment = book(db, salon)
    transition(db, appointment.id, 'confirmed', None, None, NOW)
    transition(db, appointment.id, 'completed', None, None, NOW)

    canceled = transition(db, appointment.id, 'canceled', 'Entered by mistake', None, NOW)

    assert canceled.status == 'canceled'
    assert list_logs(db, appointment.id)[0].old_status == 'completed'
    assert len(salon.events.events('appointment.canceled')) == 1


def test_reopen_rejects_interval_taken_in_the_meantime(db, salon) -> None:
    appointment = book(db, salon)
    transition(db, appointment.id, 'confirmed', None, None, NOW)
    transition(db, appointment.id, 'no_show', None, None, NOW)
    create_appointment(db, salon.business.id, salon.bob.id, salon.anna.id, salon.haircut.id, START, None, NOW)

    with pytest.raises(OverlapError):
        transition(db, appointment.id, 'booked', 'Customer showed up late', None, NOW)

    db.refresh(appointment)
    assert appointment.status == 'no_show'
    assert list_logs(db, appointment.id)[0].new_status == 'no_show'


def test_reopen_succeeds_when_interval_is_still_free(db, salon) -> None:
    appointment = book(db, salon)
    transition(db, appointment.id, 'confirmed', None, None, NOW)
    transition(db, appointment.id, 'no_show', None, None, NOW)

    reopened = transition(db, appointment.id, 'booked', 'Customer showed up late', None, NOW)

    assert reopened.status == 'booked'


def test_transition_unknown_appointment(db, salon) -> None:
    with pytest.raises(NotFoundError):
        transition(db, 12345, 'confirmed', None, None, NOW)


def test_logs_are_newest_first_and_never_go_backwards(db, salon) -> None:
    appointment = book(db, salon)

    transition(db, appointment.id, 'confirmed', None, None, NOW + timedelta(minutes=5))
    # clock skew: the caller's clock went back
    transition(db, appointment.id, 'canceled', None, None, NOW - timedelta(hours=1))

    logs = list_logs(db, appointment.id)

    assert [log.new_status for log in logs] == ['canceled', 'confirmed', 'booked']
    assert logs[0].created_at >= logs[1].created_at >= logs[2].created_at


def test_append_log_rejects_unknown_action(db, salon) -> None:
    appointment = book(db, salon)

    with pytest.raises(ValueError):
        append_log(db, appointment, 'deleted', None, {}, NOW)

    assert db.query(AppointmentLogs).count() == 1
