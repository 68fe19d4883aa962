"""
Booking horizon extender.

Every day one more date enters the booking horizon (today + horizon_days).
This loop materializes the slots of those dates for every active rule, using
RecurringAvailabilities.generated_until to know where each rule stopped.

Runs as an asyncio task in backend lifespan.
Uses synchronous DB and Redis (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import date

from ..database import SessionLocal
from ..redis_client import redis_client
from .slots.config import get_booking_config
from .slots.invalidator import invalidate_days
from .slots.store import MaterializationResult, extend_horizon

logger = logging.getLogger(__name__)


async def horizon_extender_loop() -> None:
    """Periodic loop; errors are logged and the next run proceeds as usual."""
    config = get_booking_config()
    logger.info("horizon_extender_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(run_horizon_extension)
            except asyncio.CancelledError:
                logger.info("horizon_extender_loop cancelled")
                raise
            except Exception:
                logger.exception("horizon_extender_loop error")

            await asyncio.sleep(config.extend_interval_seconds)
    except asyncio.CancelledError:
        pass


def run_horizon_extension(
    today: date | None = None,
    session_factory=SessionLocal,
    redis=redis_client,
) -> MaterializationResult:
    """Extend every active rule up to the horizon, commit, drop stale cache (synchronous)."""
    db = session_factory()
    try:
        result = extend_horizon(db, today, get_booking_config())
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    invalidate_days(redis, result.days)
    if result.days:
        logger.info(
            f"Horizon extended: {len(result.days)} day(s), +{result.created} slots, "
            f"{len(result.warnings)} warning(s)"
        )
    return result
