"""
backend/salonbook/services/events.py

Event emitter: pushes appointment events to a Redis list for external
consumers (notifications, loyalty recalculation).

Events:
- appointment.created
- appointment.canceled
- appointment.completed (the consumer recalculates loyalty points)
"""

import json
import time
import logging

from ..config import settings
from ..redis_client import redis_client

logger = logging.getLogger(__name__)

APPOINTMENT_CREATED = "appointment.created"
APPOINTMENT_CANCELED = "appointment.canceled"
APPOINTMENT_COMPLETED = "appointment.completed"


def emit_event(event_type: str, payload: dict) -> None:
    """
    Emit an event (instant delivery).

    Pushed to the Redis list `settings.events_queue`. Delivery failures are
    logged and never undo the committed change that produced the event.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis_client.rpush(settings.events_queue, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {settings.events_queue}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
