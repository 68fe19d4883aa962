# backend/slotbook/redis_client.py

import redis

from .config import settings

# Lazily connects on first command
redis_client = redis.from_url(settings.redis_url, decode_responses=True)
