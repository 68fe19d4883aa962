from datetime import timedelta
from unittest.mock import MagicMock

from slotbook.models import RecurringAvailabilities, SlotInstances
from slotbook.services.horizon_extender import run_horizon_extension
from slotbook.services.slots.config import get_booking_config

from conftest import TODAY, VENDOR_ID, make_rule


def test_run_horizon_extension_commits_and_invalidates(session_factory):
    with session_factory() as session:
        session.add(make_rule())
        session.commit()

    redis = MagicMock()
    redis.delete.return_value = 1
    result = run_horizon_extension(TODAY, session_factory=session_factory, redis=redis)

    horizon = get_booking_config().horizon_days
    mondays = horizon // 7 + 1
    assert result.created == 4 * mondays
    assert redis.delete.called

    with session_factory() as session:
        assert session.query(SlotInstances).filter(SlotInstances.vendor_id == VENDOR_ID).count() == result.created
        rule = session.query(RecurringAvailabilities).one()
        assert rule.generated_until == TODAY + timedelta(days=horizon)

    # Nothing new until the horizon moves
    assert run_horizon_extension(TODAY, session_factory=session_factory, redis=None).created == 0
