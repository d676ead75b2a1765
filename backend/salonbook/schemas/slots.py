"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class SlotInfo(BaseModel):
    """Information about a single candidate start time."""
    time: str = Field(description="Business-local start time, HH:MM")
    start_time: datetime = Field(description="UTC instant")
    available: bool
    is_break: bool

    model_config = {"from_attributes": True}


class SlotsDayResponse(BaseModel):
    """Slots of one staff member for one service on one day."""
    staff_id: int
    service_id: int
    date: date
    is_working_day: bool
    start_time: str
    end_time: str

    service_duration_min: int
    rest_time_min: int
    slot_step_minutes: int

    slots: list[SlotInfo]

    model_config = {"from_attributes": True}
