import json
import logging
from typing import Any, Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

ROOM_PREFIX = "rooms:"
AVAILABILITY_PREFIX = "rooms:availability:"

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured, otherwise None.

    Caching is an optimisation only: if Redis is not reachable the service
    runs uncached.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client
    if not REDIS_URL:
        return None

    try:
        client = redis.from_url(REDIS_URL, decode_responses=True)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable, caching disabled: %s", exc)
        return None

    _redis_client = client
    return _redis_client


def room_key(room_id: str) -> str:
    return f"{ROOM_PREFIX}{room_id}"


def availability_key(check_in, check_out, today) -> str:
    return f"{AVAILABILITY_PREFIX}{check_in.isoformat()}:{check_out.isoformat()}:{today.isoformat()}"


def get_cached_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        raw = client.get(key)
    except redis.RedisError as exc:
        logger.warning("Cache read failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_json(key: str, value: Any, ttl_seconds: int = 60) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
    except redis.RedisError as exc:
        logger.warning("Cache write failed for %s: %s", key, exc)


def delete_prefix(prefix: str) -> None:
    """
    Delete all keys starting with prefix.

    ``rooms:`` drops every room read and availability answer;
    ``rooms:availability:`` drops availability answers only.
    """
    client = get_redis_client()
    if client is None:
        return

    try:
        for key in client.scan_iter(prefix + "*"):
            client.delete(key)
    except redis.RedisError as exc:
        logger.warning("Cache invalidation failed for %s*: %s", prefix, exc)
