"""
backend/slotbook/services/events.py

Event emitter: pushes domain events to a Redis list for downstream consumers
(notifications, calendar sync).

Queue:
- events:p2p: booking events addressed to a vendor and a customer

Events are emitted after commit. A None client (caching and events
disabled, e.g. in tests) or an unreachable Redis only loses the event.
"""

import json
import time
import logging

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(redis: Redis | None, event_type: str, payload: dict) -> bool:
    """
    Emit a p2p event.

    Returns:
        True if the event was queued.
    """
    if redis is None:
        return False

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
        return True
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
        return False


def booking_payload(booking) -> dict:
    return {
        "booking_id": booking.id,
        "vendor_id": booking.vendor_id,
        "customer_id": booking.customer_id,
        "status": booking.status,
        "scheduled_at": booking.scheduled_at.isoformat(),
    }
