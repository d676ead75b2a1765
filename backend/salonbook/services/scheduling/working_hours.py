# backend/salonbook/services/scheduling/working_hours.py
"""
Working hours resolution.

Turns staff/business working-hour profiles into the effective window of
one calendar date. Resolution order, first match wins:

  1. staff special date
  2. staff weekday entry (with its breaks)
  3. business special date, then business weekday entry
  4. default: open every day except Saturday, 09:00–20:00, no breaks

Resolution never raises for missing or malformed profile data.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from .config import SchedulingConfig, get_scheduling_config
from .durations import parse_clock

logger = logging.getLogger(__name__)

# date.weekday(): 0 = Monday
DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class BreakInterval:
    start_time: str
    end_time: str


@dataclass(frozen=True)
class WorkingWindow:
    active: bool
    start_time: str
    end_time: str
    breaks: tuple[BreakInterval, ...] = field(default_factory=tuple)
    source: str = "default"


@dataclass(frozen=True)
class WorkingHoursProfile:
    regular_hours: dict
    special_dates: list

    @classmethod
    def from_row(cls, row) -> "WorkingHoursProfile | None":
        """Build a profile from a BusinessHours/StaffHours row (JSON columns)."""
        if row is None:
            return None
        return cls(
            regular_hours=_load_json(row.regular_hours, {}),
            special_dates=_load_json(row.special_dates, []),
        )


def resolve_working_hours(
    staff_profile: WorkingHoursProfile | None,
    business_profile: WorkingHoursProfile | None,
    target_date: date,
    use_business_hours: bool = False,
    config: SchedulingConfig | None = None,
) -> WorkingWindow:
    """Resolve the effective working window for target_date."""
    config = config or get_scheduling_config()

    candidates = []
    if staff_profile is not None and not use_business_hours:
        candidates.append(("staff", staff_profile))
    if business_profile is not None:
        candidates.append(("business", business_profile))

    for owner, profile in candidates:
        special = _find_special_date(profile.special_dates, target_date)
        if special is not None:
            return _window_from_special(special, f"{owner}_special_date", config)

        weekday_entry = _find_weekday_entry(profile.regular_hours, target_date)
        if weekday_entry is not None:
            return _window_from_weekday(weekday_entry, f"{owner}_weekday", config)

    return WorkingWindow(
        active=DAY_NAMES[target_date.weekday()] != "saturday",
        start_time=config.default_start_time,
        end_time=config.default_end_time,
        breaks=(),
        source="default",
    )


def resolve_for_staff(
    db: Session,
    staff_id: int,
    business_id: int,
    target_date: date,
    config: SchedulingConfig | None = None,
) -> WorkingWindow:
    """Load profiles from storage and resolve the window of a staff member."""
    from ...models.generated import BusinessHours, StaffHours, Users

    staff = db.get(Users, staff_id)
    if staff is None or staff.business_id != business_id:
        raise NotFoundError(f"Staff member {staff_id} not found")

    settings = staff_settings(staff)
    staff_row = db.query(StaffHours).filter(StaffHours.staff_id == staff_id).first()
    business_row = db.query(BusinessHours).filter(BusinessHours.business_id == business_id).first()

    return resolve_working_hours(
        WorkingHoursProfile.from_row(staff_row),
        WorkingHoursProfile.from_row(business_row),
        target_date,
        use_business_hours=bool(settings.get("use_business_hours")),
        config=config,
    )


def staff_settings(staff) -> dict:
    """Parsed settings JSON of a staff member (rest_time, use_business_hours)."""
    settings = _load_json(staff.settings, {})
    return settings if isinstance(settings, dict) else {}


# ── Validation ───────────────────────────────────────────────────────────


def validate_breaks(breaks: list, day_start: str, day_end: str) -> None:
    """Breaks must lie inside working hours, start before they end and not overlap."""
    start_min = parse_clock(day_start)
    end_min = parse_clock(day_end)

    parsed = sorted(
        (parse_clock(b["start_time"]), parse_clock(b["end_time"]))
        for b in breaks
    )

    last_end = start_min
    for break_start, break_end in parsed:
        if break_start < start_min or break_end > end_min:
            raise ValidationError("Break must be within working hours")
        if break_start >= break_end:
            raise ValidationError("Break start must be before break end")
        if break_start < last_end:
            raise ValidationError("Breaks cannot overlap")
        last_end = break_end


def validate_profile(regular_hours: dict, special_dates: list | None = None) -> None:
    """Validate a working-hours profile before it is stored."""
    for day_name, hours in regular_hours.items():
        if day_name not in DAY_NAMES:
            raise ValidationError(f"Unknown weekday: {day_name}")
        if not hours.get("is_active", True):
            continue

        try:
            start_min = parse_clock(hours["start_time"])
            end_min = parse_clock(hours["end_time"])
            if start_min >= end_min:
                raise ValidationError("Start time must be before end time")
            validate_breaks(hours.get("breaks") or [], hours["start_time"], hours["end_time"])
        except KeyError as e:
            raise ValidationError(f"Missing {e.args[0]} on {day_name}") from e
        except ValidationError as e:
            raise ValidationError(f"{e.reason} on {day_name}") from e

    for special in special_dates or []:
        try:
            date.fromisoformat(special["date"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid special date: {special!r}") from e
        if special.get("is_closed"):
            continue
        start = special.get("start_time")
        end = special.get("end_time")
        if start and end and parse_clock(start) >= parse_clock(end):
            raise ValidationError(f"Start time must be before end time on {special['date']}")


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_json(value, default):
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        logger.warning("Malformed working hours JSON ignored")
        return default


def _find_special_date(special_dates, target_date: date) -> dict | None:
    if not isinstance(special_dates, list):
        return None
    date_str = target_date.isoformat()
    for entry in special_dates:
        if isinstance(entry, dict) and entry.get("date") == date_str:
            return entry
    return None


def _find_weekday_entry(regular_hours, target_date: date) -> dict | None:
    if not isinstance(regular_hours, dict):
        return None
    entry = regular_hours.get(DAY_NAMES[target_date.weekday()])
    return entry if isinstance(entry, dict) else None


def _valid_clock(value, fallback: str) -> str:
    try:
        parse_clock(value)
        return value
    except ValidationError:
        return fallback


def _window_from_special(entry: dict, source: str, config: SchedulingConfig) -> WorkingWindow:
    return WorkingWindow(
        active=not entry.get("is_closed", False),
        start_time=_valid_clock(entry.get("start_time"), config.default_start_time),
        end_time=_valid_clock(entry.get("end_time"), config.default_end_time),
        breaks=(),
        source=source,
    )


def _window_from_weekday(entry: dict, source: str, config: SchedulingConfig) -> WorkingWindow:
    breaks = []
    for item in entry.get("breaks") or []:
        if not isinstance(item, dict):
            continue
        try:
            parse_clock(item.get("start_time"))
            parse_clock(item.get("end_time"))
        except ValidationError:
            continue
        breaks.append(BreakInterval(item["start_time"], item["end_time"]))

    return WorkingWindow(
        active=bool(entry.get("is_active", True)),
        start_time=_valid_clock(entry.get("start_time"), config.default_start_time),
        end_time=_valid_clock(entry.get("end_time"), config.default_end_time),
        breaks=tuple(breaks),
        source=source,
    )
