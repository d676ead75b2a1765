
import json
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator


class AppointmentLogRead(BaseModel):
    id: int
    appointment_id: int
    action: str

    actor_user_id: Optional[int] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None

    details: dict
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("details", mode="before")
    @classmethod
    def parse_details(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else {}
        return v
