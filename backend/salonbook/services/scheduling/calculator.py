# backend/salonbook/services/scheduling/calculator.py
"""
Slot calculation for one staff member, one service, one day.

Pure function of its inputs: the working window, breaks, booked
intervals, service duration, rest time, step and an explicit `now`.
All times are business-local naive datetimes.

A candidate start is emitted when it is available or falls in a break
(breaks are shown to the UI but are not selectable). Candidates whose
service would run past closing are never emitted.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .durations import parse_clock
from .working_hours import BreakInterval, WorkingWindow


@dataclass(frozen=True)
class BookedInterval:
    start: datetime
    end: datetime
    staff_id: int | None = None


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    available: bool
    is_break: bool

    @property
    def time(self) -> str:
        return self.start.strftime("%H:%M")


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """[a_start, a_end) and [b_start, b_end) overlap."""
    return a_start < b_end and b_start < a_end


def is_interval_free(
    start: datetime,
    end: datetime,
    booked: list[BookedInterval],
    rest_time_minutes: int = 0,
) -> bool:
    """True when [start, end) overlaps no booking extended by rest time."""
    rest = timedelta(minutes=rest_time_minutes)
    return not any(
        intervals_overlap(start, end, b.start, b.end + rest)
        for b in booked
    )


def compute_slots(
    window: WorkingWindow,
    breaks: tuple[BreakInterval, ...] | list[BreakInterval],
    booked_intervals: list[BookedInterval],
    service_duration_minutes: int,
    rest_time_minutes: int = 0,
    slot_step_minutes: int = 20,
    now: datetime | None = None,
    target_date: date | None = None,
) -> list[TimeSlot]:
    """
    Calculate candidate start times for target_date.

    Returns:
        Ordered list of TimeSlot. Empty list = closed or nothing fits.
    """
    if not window.active or service_duration_minutes <= 0 or slot_step_minutes <= 0:
        return []

    if target_date is None:
        target_date = now.date() if now is not None else date.min

    if now is not None and target_date < now.date():
        return []

    day_start = datetime.combine(target_date, datetime.min.time())
    work_start = day_start + timedelta(minutes=parse_clock(window.start_time))
    work_end = day_start + timedelta(minutes=parse_clock(window.end_time))
    if work_end <= work_start:
        return []

    duration = timedelta(minutes=service_duration_minutes)
    step = timedelta(minutes=slot_step_minutes)
    break_ranges = [
        (day_start + timedelta(minutes=parse_clock(b.start_time)),
         day_start + timedelta(minutes=parse_clock(b.end_time)))
        for b in breaks
    ]

    # Step 1: grid candidates
    candidates: list[datetime] = []
    t = work_start
    while t <= work_end:
        candidates.append(t)
        t += step

    # Step 2: latest start that still fits before closing
    closing_start = work_end - duration
    if closing_start >= work_start and closing_start not in candidates:
        candidates.append(closing_start)
        candidates.sort()

    # Step 3: evaluate
    slots: list[TimeSlot] = []
    for t in candidates:
        t_end = t + duration
        if t_end > work_end:
            continue

        in_break = any(b_start <= t < b_end for b_start, b_end in break_ranges)
        available = (
            not in_break
            and t >= work_start
            and is_interval_free(t, t_end, booked_intervals, rest_time_minutes)
        )

        if available or in_break:
            slots.append(TimeSlot(start=t, available=available, is_break=in_break))

    # Step 4: today never offers past times
    if now is not None and target_date == now.date():
        slots = [s for s in slots if s.start > now]

    return slots
