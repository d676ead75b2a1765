import json
import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('REDIS_URL', 'redis://localhost:6379/15')

from salonbook.models.generated import (  # noqa: E402
    Base,
    BusinessHours,
    Businesses,
    Customers,
    Services,
    StaffHours,
    Users,
)

# Monday; every test date below is relative to this instant (naive UTC)
NOW = datetime(2030, 1, 7, 8, 0)

WEEKDAY_HOURS = {
    day: {'is_active': True, 'start_time': '09:00', 'end_time': '17:00', 'breaks': []}
    for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday')
}


class RecordingRedis:
    def __init__(self) -> None:
        self.pushed: list[tuple[str, dict]] = []

    def rpush(self, key: str, value: str) -> int:
        self.pushed.append((key, json.loads(value)))
        return len(self.pushed)

    def ping(self) -> bool:
        return True

    def events(self, event_type: str | None = None) -> list[dict]:
        return [e for _, e in self.pushed if event_type is None or e['type'] == event_type]


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, 'connect')
    def enable_sqlite_fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def events(monkeypatch: pytest.MonkeyPatch) -> RecordingRedis:
    fake = RecordingRedis()
    monkeypatch.setattr('salonbook.services.events.redis_client', fake)
    return fake


@pytest.fixture
def salon(db, events) -> SimpleNamespace:
    """One business (UTC offset 0) with two staff members, two customers and two services."""
    business = Businesses(name='Salon', utc_offset_minutes=0)
    db.add(business)
    db.flush()

    anna = Users(business_id=business.id, name='Anna', settings=json.dumps({'rest_time': 0}))
    boris = Users(business_id=business.id, name='Boris', settings='{}')
    alice = Customers(business_id=business.id, name='Alice', phone='+10000000001')
    bob = Customers(business_id=business.id, name='Bob', phone='+10000000002')
    haircut = Services(business_id=business.id, name='Haircut', duration='00:30:00', price=30)
    coloring = Services(business_id=business.id, name='Coloring', duration='01:30:00', price=90)
    db.add_all([anna, boris, alice, bob, haircut, coloring])
    db.flush()

    db.add(BusinessHours(
        business_id=business.id,
        regular_hours=json.dumps(WEEKDAY_HOURS),
        special_dates='[]',
    ))
    db.commit()

    return SimpleNamespace(
        business=business,
        anna=anna,
        boris=boris,
        alice=alice,
        bob=bob,
        haircut=haircut,
        coloring=coloring,
        events=events,
    )


def set_staff_settings(db, staff, **settings) -> None:
    staff.settings = json.dumps(settings)
    db.commit()


def set_staff_hours(db, staff, regular_hours: dict, special_dates: list | None = None) -> None:
    db.add(StaffHours(
        staff_id=staff.id,
        regular_hours=json.dumps(regular_hours),
        special_dates=json.dumps(special_dates or []),
    ))
    db.commit()
