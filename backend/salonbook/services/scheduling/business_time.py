# backend/salonbook/services/scheduling/business_time.py
"""
Business-local <-> UTC conversion.

Storage and the HTTP boundary carry naive UTC instants. The scheduling
core works in naive business-local time: local = UTC + offset.
"""

from datetime import datetime, timedelta, timezone

from .config import get_scheduling_config


def utc_now() -> datetime:
    """Current instant as naive UTC. Only routers call this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_utc(value: datetime) -> datetime:
    """Drop tzinfo after converting aware datetimes to UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_business_time(utc_dt: datetime, offset_minutes: int) -> datetime:
    return normalize_utc(utc_dt) + timedelta(minutes=offset_minutes)


def to_utc(local_dt: datetime, offset_minutes: int) -> datetime:
    return local_dt - timedelta(minutes=offset_minutes)


def business_offset(business) -> int:
    """Offset of a business row, falling back to the configured default."""
    if business is not None and business.utc_offset_minutes is not None:
        return business.utc_offset_minutes
    return get_scheduling_config().business_utc_offset_minutes
