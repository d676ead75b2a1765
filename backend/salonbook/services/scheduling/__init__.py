# backend/salonbook/services/scheduling/__init__.py
"""
Scheduling core.

Working hours resolution, slot calculation and the customer conflict
guard. Nothing here is cached: every call reads current bookings.
"""

from .config import SchedulingConfig, get_scheduling_config
from .durations import Duration, format_clock, parse_clock
from .working_hours import WorkingWindow, BreakInterval, resolve_working_hours, resolve_for_staff
from .calculator import BookedInterval, TimeSlot, compute_slots, intervals_overlap, is_interval_free
from .availability import calculate_staff_availability
from .conflicts import Conflict, ConflictCheck, ConflictResolution, check_conflict, find_conflict

__all__ = [
    "SchedulingConfig",
    "get_scheduling_config",
    "Duration",
    "format_clock",
    "parse_clock",
    "WorkingWindow",
    "BreakInterval",
    "resolve_working_hours",
    "resolve_for_staff",
    "BookedInterval",
    "TimeSlot",
    "compute_slots",
    "intervals_overlap",
    "is_interval_free",
    "calculate_staff_availability",
    "Conflict",
    "ConflictCheck",
    "ConflictResolution",
    "check_conflict",
    "find_conflict",
]
