# backend/slotbook/deps.py
"""
Request dependencies.

Identity comes from headers set by the gateway after authentication:
  X-Vendor-Id   - the vendor managing its schedule
  X-Customer-Id - the customer booking a slot
The backend trusts them as-is and is never exposed directly.
"""

from fastapi import Header, HTTPException
from redis import Redis

from .redis_client import redis_client


def get_vendor_id(x_vendor_id: int | None = Header(None)) -> int:
    if x_vendor_id is None:
        raise HTTPException(status_code=401, detail="Missing X-Vendor-Id")
    return x_vendor_id


def get_customer_id(x_customer_id: int | None = Header(None)) -> int:
    if x_customer_id is None:
        raise HTTPException(status_code=401, detail="Missing X-Customer-Id")
    return x_customer_id


def get_actor_ids(
    x_vendor_id: int | None = Header(None),
    x_customer_id: int | None = Header(None),
) -> tuple[int | None, int | None]:
    """(vendor_id, customer_id) for endpoints open to both sides of a booking."""
    if x_vendor_id is None and x_customer_id is None:
        raise HTTPException(status_code=401, detail="Missing X-Vendor-Id or X-Customer-Id")
    return x_vendor_id, x_customer_id


def get_redis() -> Redis | None:
    """Redis client for cache and events; overridden with None to disable both."""
    return redis_client
