"""
Slots API endpoints.

GET /slots/day - Candidate start times of a staff member for a service on a day
"""

from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import SchedulingError, to_http_exception
from ..schemas.slots import SlotsDayResponse
from ..services.scheduling import calculate_staff_availability
from ..services.scheduling.business_time import utc_now


router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/day", response_model=SlotsDayResponse)
def get_slots_day(
    staff_id: int,
    service_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    """Get time slots for a service with one staff member on a business-local day."""
    try:
        return calculate_staff_availability(db, staff_id, service_id, target_date, utc_now())
    except SchedulingError as e:
        raise to_http_exception(e) from e
