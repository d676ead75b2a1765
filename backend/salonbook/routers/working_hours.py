# backend/salonbook/routers/working_hours.py

import json
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import SchedulingError, TransientIOError, to_http_exception
from ..models.generated import (
    Businesses as DBBusinesses,
    BusinessHours as DBBusinessHours,
    StaffHours as DBStaffHours,
    Users as DBUsers,
)
from ..schemas.working_hours import (
    WorkingHoursRead,
    WorkingHoursUpdate,
    WorkingWindowRead,
)
from ..services.scheduling.working_hours import resolve_for_staff, validate_profile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/working-hours", tags=["working-hours"])


@router.get("/resolve", response_model=WorkingWindowRead)
def resolve_working_window(
    staff_id: int,
    business_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    """Effective working window of a staff member on a date."""
    try:
        window = resolve_for_staff(db, staff_id, business_id, target_date)
    except SchedulingError as e:
        raise to_http_exception(e) from e

    return WorkingWindowRead(
        staff_id=staff_id,
        business_id=business_id,
        date=target_date,
        active=window.active,
        start_time=window.start_time,
        end_time=window.end_time,
        breaks=[{"start_time": b.start_time, "end_time": b.end_time} for b in window.breaks],
        source=window.source,
    )


@router.get("/business/{business_id}", response_model=WorkingHoursRead)
def get_business_hours(business_id: int, db: Session = Depends(get_db)):
    row = db.query(DBBusinessHours).filter(DBBusinessHours.business_id == business_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Not found")
    return _to_read("business", business_id, row)


@router.put("/business/{business_id}", response_model=WorkingHoursRead)
def put_business_hours(
    business_id: int,
    data: WorkingHoursUpdate,
    db: Session = Depends(get_db),
):
    if not db.get(DBBusinesses, business_id):
        raise HTTPException(status_code=404, detail="Not found")

    row = db.query(DBBusinessHours).filter(DBBusinessHours.business_id == business_id).first()
    if row is None:
        row = DBBusinessHours(business_id=business_id)
        db.add(row)
    _store(db, row, data)
    logger.info(f"Business hours updated for business={business_id}")
    return _to_read("business", business_id, row)


@router.put("/staff/{staff_id}", response_model=WorkingHoursRead)
def put_staff_hours(
    staff_id: int,
    data: WorkingHoursUpdate,
    db: Session = Depends(get_db),
):
    if not db.get(DBUsers, staff_id):
        raise HTTPException(status_code=404, detail="Not found")

    row = db.query(DBStaffHours).filter(DBStaffHours.staff_id == staff_id).first()
    if row is None:
        row = DBStaffHours(staff_id=staff_id)
        db.add(row)
    _store(db, row, data)
    logger.info(f"Staff hours updated for staff={staff_id}")
    return _to_read("staff", staff_id, row)


# ── Helpers ──────────────────────────────────────────────────────────────


def _store(db: Session, row, data: WorkingHoursUpdate) -> None:
    payload = data.model_dump(mode="json")
    try:
        validate_profile(payload["regular_hours"], payload["special_dates"])
        row.regular_hours = json.dumps(payload["regular_hours"])
        row.special_dates = json.dumps(payload["special_dates"])
        db.commit()
        db.refresh(row)
    except SchedulingError as e:
        db.rollback()
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        db.rollback()
        raise to_http_exception(TransientIOError("Could not save working hours")) from e


def _to_read(owner_type: str, owner_id: int, row) -> WorkingHoursRead:
    return WorkingHoursRead(
        owner_type=owner_type,
        owner_id=owner_id,
        regular_hours=json.loads(row.regular_hours or "{}"),
        special_dates=json.loads(row.special_dates or "[]"),
    )
