import json
from datetime import date, datetime
from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from slotbook.services.events import emit_event
from slotbook.services.slots.config import BookingConfig
from slotbook.services.slots.invalidator import (
    get_affected_dates,
    invalidate_days,
    invalidate_vendor_cache,
)
from slotbook.services.slots.redis_store import EMPTY_SENTINEL, SlotsRedisStore

DAY = date(2029, 1, 8)


def test_store_day_slots_writes_sorted_set():
    redis = MagicMock()
    pipe = redis.pipeline.return_value
    store = SlotsRedisStore(redis, BookingConfig())

    store.store_day_slots(7, DAY, [("09:00", 100.0), ("10:15", 200.0)])

    pipe.delete.assert_called_once_with("slots:day:7:2029-01-08")
    pipe.zadd.assert_called_once_with("slots:day:7:2029-01-08", {"09:00": 100.0, "10:15": 200.0})
    pipe.expireat.assert_called_once()
    pipe.execute.assert_called_once()


def test_empty_day_stores_sentinel():
    redis = MagicMock()
    pipe = redis.pipeline.return_value

    SlotsRedisStore(redis, BookingConfig()).store_day_slots(7, DAY, [])

    pipe.zadd.assert_called_once_with("slots:day:7:2029-01-08", {EMPTY_SENTINEL: 0})


def test_get_available_slots_miss_and_hit():
    redis = MagicMock()
    store = SlotsRedisStore(redis, BookingConfig())
    now = datetime(2029, 1, 8, 8, 0)

    redis.exists.return_value = 0
    assert store.get_available_slots(7, DAY, now) is None

    redis.exists.return_value = 1
    redis.zrangebyscore.return_value = ["10:15", "15:15"]
    assert store.get_available_slots(7, DAY, now) == ["10:15", "15:15"]
    redis.zrangebyscore.assert_called_with("slots:day:7:2029-01-08", now.timestamp(), "+inf")


def test_cached_empty_day_is_a_hit():
    redis = MagicMock()
    redis.exists.return_value = 1
    redis.zrangebyscore.return_value = []

    assert SlotsRedisStore(redis, BookingConfig()).get_available_slots(7, DAY, datetime(2029, 1, 1)) == []


def test_mget_counts_mixes_hits_and_misses():
    redis = MagicMock()
    pipe = redis.pipeline.return_value
    pipe.execute.side_effect = [[1, 0], [3]]
    other = date(2029, 1, 9)

    counts = SlotsRedisStore(redis, BookingConfig()).mget_counts(7, [DAY, other], datetime(2029, 1, 1))

    assert counts == {DAY: 3, other: None}


def test_invalidate_specific_dates():
    redis = MagicMock()
    redis.delete.return_value = 2

    assert invalidate_vendor_cache(redis, 7, [DAY, DAY, date(2029, 1, 9)]) == 2
    redis.delete.assert_called_once_with("slots:day:7:2029-01-08", "slots:day:7:2029-01-09")


def test_invalidate_all_dates_scans_vendor_keys():
    redis = MagicMock()
    redis.scan_iter.return_value = iter(["slots:day:7:2029-01-08"])
    redis.delete.return_value = 1

    assert invalidate_vendor_cache(redis, 7) == 1
    redis.scan_iter.assert_called_once_with(match="slots:day:7:*")


def test_invalidate_without_redis_or_when_down():
    assert invalidate_vendor_cache(None, 7, [DAY]) == 0

    redis = MagicMock()
    redis.delete.side_effect = RedisConnectionError("down")
    assert invalidate_vendor_cache(redis, 7, [DAY]) == 0


def test_invalidate_days_groups_by_vendor():
    redis = MagicMock()
    redis.delete.return_value = 1

    invalidate_days(redis, [(7, DAY), (8, DAY), (7, DAY)])

    assert redis.delete.call_count == 2


def test_get_affected_dates_is_inclusive():
    assert get_affected_dates(date(2029, 1, 3), date(2029, 1, 1)) == [
        date(2029, 1, 1), date(2029, 1, 2), date(2029, 1, 3),
    ]


def test_emit_event_pushes_json():
    redis = MagicMock()

    assert emit_event(redis, "booking_created", {"booking_id": 5}) is True

    queue, raw = redis.rpush.call_args.args
    assert queue == "events:p2p"
    event = json.loads(raw)
    assert event["type"] == "booking_created"
    assert event["booking_id"] == 5


def test_emit_event_tolerates_missing_or_failing_redis():
    assert emit_event(None, "booking_created", {}) is False

    redis = MagicMock()
    redis.rpush.side_effect = RedisConnectionError("down")
    assert emit_event(redis, "booking_created", {}) is False
