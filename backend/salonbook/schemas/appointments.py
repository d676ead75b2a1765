# backend/salonbook/schemas/appointments.py

import json
import re
from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator

from ..services.scheduling.conflicts import ConflictResolution

AppointmentStatus = Literal["booked", "confirmed", "completed", "canceled", "no_show"]


class AppointmentCreate(BaseModel):
    business_id: int
    customer_id: int
    staff_id: int
    service_id: int

    start_time: datetime = Field(description="UTC instant")
    duration: Optional[Union[int, str]] = Field(
        None, description="Minutes or HH:MM:SS; defaults to the service duration"
    )

    customer_notes: Optional[str] = None
    metadata: dict = Field(default_factory=dict)
    resolution: Optional[ConflictResolution] = None
    lookahead_days: Optional[int] = Field(None, ge=0, le=60)


class RecurringAppointmentCreate(AppointmentCreate):
    frequency: Literal["daily", "weekly"]
    count: int = Field(ge=1, le=52)


class AppointmentRead(BaseModel):
    id: int

    business_id: int
    customer_id: int
    staff_id: int
    service_id: int

    start_time: datetime
    end_time: datetime
    duration_minutes: int

    status: str
    metadata: dict = Field(default_factory=dict)
    customer_notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_db(cls, obj) -> "AppointmentRead":
        try:
            meta = json.loads(obj.meta) if obj.meta else {}
        except ValueError:
            meta = {}
        return cls(
            id=obj.id,
            business_id=obj.business_id,
            customer_id=obj.customer_id,
            staff_id=obj.staff_id,
            service_id=obj.service_id,
            start_time=obj.start_time,
            end_time=obj.end_time,
            duration_minutes=obj.duration_minutes,
            status=obj.status,
            metadata=meta,
            customer_notes=obj.customer_notes,
            created_at=obj.created_at,
            updated_at=obj.updated_at,
        )


class ConflictRead(BaseModel):
    appointment_id: int
    start_time: datetime
    service_name: Optional[str] = None
    staff_name: Optional[str] = None
    is_same_day: bool

    model_config = {"from_attributes": True}


class ConflictCheckRead(BaseModel):
    conflict: Optional[ConflictRead] = None
    allowed_resolutions: list[ConflictResolution] = Field(default_factory=list)
    check_failed: bool = False


class BookingRead(BaseModel):
    appointment: Optional[AppointmentRead] = None
    canceled_appointment_id: Optional[int] = None
    aborted: bool = False
    conflict: Optional[ConflictRead] = None
    conflict_check_failed: bool = False


class StatusChange(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = None
    actor_user_id: Optional[int] = None


class AppointmentReschedule(BaseModel):
    """Partial change set. date/time/end_time are business-local."""
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM, exclusive with duration")
    duration: Optional[Union[int, str]] = Field(None, description="Minutes or HH:MM:SS")
    staff_id: Optional[int] = None
    service_id: Optional[int] = None
    customer_phone: Optional[str] = None
    reason: Optional[str] = None
    actor_user_id: Optional[int] = None

    @field_validator("customer_phone")
    @classmethod
    def normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not re.fullmatch(r"\+?[\d\s\-()]{6,20}", v):
            raise ValueError("Invalid phone number")
        if v.startswith("+"):
            return "+" + re.sub(r"\D", "", v[1:])
        return re.sub(r"\D", "", v)
