"""Redis cache utility functions."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from typing import Any, Callable, Iterable, Sequence, TypeVar

import redis

from . import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_PREFIX = "cache:"
TAG_PREFIX = "cache:tag:"
# Tag sets outlive the entries they index; stale members are harmless.
TAG_TTL = 24 * 60 * 60

# Tags
TAG_CITIES = "cities"
TAG_USERS = "users"
TAG_COMMUNITY = "community"

# Seconds to wait before retrying a failed Redis connection
RECONNECT_INTERVAL_S = 30

# Redis connection
_redis_client: redis.Redis | None = None
_last_connect_failure: float | None = None

_stats_lock = threading.Lock()
_stats = {"hits": 0, "misses": 0}


def get_redis_client() -> redis.Redis | None:
    """
    Get or create Redis client instance.

    Returns None if Redis is not configured or the connection fails.
    """
    global _redis_client, _last_connect_failure

    if _redis_client is not None:
        return _redis_client

    if _last_connect_failure is not None and time.monotonic() - _last_connect_failure < RECONNECT_INTERVAL_S:
        return None

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        # Test connection
        client.ping()
        logger.info("Redis cache connected successfully")
        _redis_client = client
        _last_connect_failure = None
        return _redis_client
    except redis.RedisError as e:
        _last_connect_failure = time.monotonic()
        logger.warning(f"Redis cache unavailable: {e}. Continuing without cache.")
        return None


def cache_get(key: str) -> Any | None:
    """
    Retrieve a cached value by key.

    Args:
        key: Cache key

    Returns:
        Cached value if found, None otherwise
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None
    if value is None:
        return None

    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return value


def cache_set(key: str, value: Any, ttl: int = settings.CACHE_DEFAULT_TTL, tags: Iterable[str] = ()) -> bool:
    """
    JSON-serialize ``value`` under ``key`` for ``ttl`` seconds and index it under ``tags``.

    Returns:
        True if stored, False when Redis is unavailable or the value cannot be serialized
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        pipe = client.pipeline()
        pipe.setex(key, ttl, json.dumps(value, default=str))
        for tag in tags:
            pipe.sadd(f"{TAG_PREFIX}{tag}", key)
            pipe.expire(f"{TAG_PREFIX}{tag}", TAG_TTL)
        pipe.execute()
        return True
    except (redis.RedisError, TypeError, ValueError) as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def cache_invalidate(pattern: str) -> int:
    """
    Invalidate cache entries matching a pattern.

    Args:
        pattern: Redis key pattern (e.g., "cache:recent_cities:*")

    Returns:
        Number of keys deleted
    """
    client = get_redis_client()
    if not client:
        return 0

    try:
        keys = list(client.scan_iter(match=pattern))
        if not keys:
            return 0

        deleted = client.delete(*keys)
        logger.info(f"Invalidated {deleted} cache entries matching pattern '{pattern}'")
        return deleted
    except redis.RedisError as e:
        logger.warning(f"Cache invalidate error for pattern '{pattern}': {e}")
        return 0


def cache_delete(key: str) -> bool:
    """Delete a specific cache key."""
    client = get_redis_client()
    if not client:
        return False

    try:
        return bool(client.delete(key))
    except redis.RedisError as e:
        logger.warning(f"Cache delete error for key '{key}': {e}")
        return False


# ============================================================================
# QUERY CACHE
# ============================================================================


def make_cache_key(name: str, args: Sequence[Any] = ()) -> str:
    """Build ``cache:<name>:<sha1 of JSON args>``."""
    payload = json.dumps(list(args), sort_keys=True, default=str, separators=(",", ":"))
    digest = hashlib.sha1(payload.encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}{name}:{digest}"


def _record(hit: bool) -> None:
    with _stats_lock:
        _stats["hits" if hit else "misses"] += 1


def cached_query(
    loader: Callable[[], T],
    name: str,
    args: Sequence[Any] = (),
    ttl: int = settings.CACHE_DEFAULT_TTL,
    tags: Iterable[str] = (),
) -> T:
    """
    Return the cached result of ``loader`` for ``(name, args)``.

    On a miss the loader runs and its result is stored for ``ttl`` seconds and
    indexed under each tag. The result must be JSON-serializable. Exceptions
    raised by the loader propagate and nothing is stored. Without Redis the
    loader simply runs every time.
    """
    key = make_cache_key(name, args)

    # Entries are wrapped so that a cached None or empty result still counts as a hit
    envelope = cache_get(key)
    if isinstance(envelope, dict) and "v" in envelope:
        _record(hit=True)
        return envelope["v"]

    _record(hit=False)
    value = loader()
    cache_set(key, {"v": value}, ttl=ttl, tags=tags)
    return value


def invalidate_tags(*tags: str) -> int:
    """Delete every entry indexed under any of ``tags``. Returns keys deleted."""
    client = get_redis_client()
    if not client or not tags:
        return 0

    deleted = 0
    try:
        for tag in tags:
            tag_key = f"{TAG_PREFIX}{tag}"
            members = client.smembers(tag_key)
            if members:
                deleted += client.delete(*members)
            cache_delete(tag_key)
    except redis.RedisError as e:
        logger.warning(f"Cache tag invalidation error for {tags}: {e}")
        return deleted

    if deleted:
        logger.debug(f"Invalidated {deleted} cache entries for tags {tags}")
    return deleted


def invalidate_city_cache(city_id: int | None = None) -> int:
    tags = [TAG_CITIES, TAG_COMMUNITY]
    if city_id is not None:
        tags.append(f"city:{city_id}")
    return invalidate_tags(*tags)


def invalidate_user_cache(user_id: int | None = None) -> int:
    tags = [TAG_USERS, TAG_COMMUNITY]
    if user_id is not None:
        tags.append(f"user:{user_id}")
    return invalidate_tags(*tags)


def invalidate_community_cache() -> int:
    return invalidate_tags(TAG_COMMUNITY)


def clear_cache() -> int:
    """Drop every query-cache entry and tag index, and reset the counters."""
    deleted = cache_invalidate(f"{CACHE_PREFIX}*")
    reset_cache_stats()
    return deleted


def reset_cache_stats() -> None:
    with _stats_lock:
        _stats["hits"] = 0
        _stats["misses"] = 0


def get_cache_stats() -> dict:
    with _stats_lock:
        hits = _stats["hits"]
        misses = _stats["misses"]

    total = hits + misses
    client = get_redis_client()
    keys: int | None = None
    if client is not None:
        try:
            keys = sum(
                1
                for key in client.scan_iter(match=f"{CACHE_PREFIX}*")
                if not key.startswith(TAG_PREFIX)
            )
        except redis.RedisError as e:
            logger.warning(f"Cache stats error: {e}")

    return {
        "enabled": client is not None,
        "hits": hits,
        "misses": misses,
        "hitRate": round(hits / total * 100, 2) if total else 0.0,
        "keys": keys,
    }
