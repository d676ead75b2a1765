# backend/salonbook/schemas/working_hours.py

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class BreakSchema(BaseModel):
    start_time: str
    end_time: str


class DayHoursSchema(BaseModel):
    is_active: bool = True
    start_time: str = "09:00"
    end_time: str = "20:00"
    breaks: list[BreakSchema] = Field(default_factory=list)


class SpecialDateSchema(BaseModel):
    date: date
    is_closed: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    note: Optional[str] = None


class WorkingHoursUpdate(BaseModel):
    regular_hours: dict[str, DayHoursSchema] = Field(
        description="Keyed by weekday name: sunday .. saturday"
    )
    special_dates: list[SpecialDateSchema] = Field(default_factory=list)


class WorkingHoursRead(WorkingHoursUpdate):
    owner_type: str
    owner_id: int


class WorkingWindowRead(BaseModel):
    staff_id: int
    business_id: int
    date: date
    active: bool
    start_time: str
    end_time: str
    breaks: list[BreakSchema]
    source: str

    model_config = {"from_attributes": True}
