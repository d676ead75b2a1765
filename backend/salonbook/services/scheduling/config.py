# backend/salonbook/services/scheduling/config.py
"""
Scheduling configuration for slots calculation and conflict checks.
"""

from dataclasses import dataclass
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class SchedulingConfig:
    """
    Configuration for the scheduling core.

    Attributes:
        slot_step_minutes: Distance between candidate start times
        conflict_lookahead_days: Horizon searched for a customer's other bookings
        business_utc_offset_minutes: Fallback business-local offset from UTC
        default_start_time / default_end_time: Hours used when no profile resolves
    """
    slot_step_minutes: int = 20
    conflict_lookahead_days: int = 4
    business_utc_offset_minutes: int = 180
    default_start_time: str = "09:00"
    default_end_time: str = "20:00"

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes <= 0 or (24 * 60) % self.slot_step_minutes != 0:
            raise ValueError(
                f"slot_step_minutes must divide a day evenly, got {self.slot_step_minutes}"
            )
        if self.conflict_lookahead_days < 0:
            raise ValueError(
                f"conflict_lookahead_days must be >= 0, got {self.conflict_lookahead_days}"
            )


@lru_cache
def get_scheduling_config() -> SchedulingConfig:
    """Get scheduling configuration (singleton, read from settings)."""
    return SchedulingConfig(
        slot_step_minutes=settings.slot_step_minutes,
        conflict_lookahead_days=settings.conflict_lookahead_days,
        business_utc_offset_minutes=settings.business_utc_offset_minutes,
    )
