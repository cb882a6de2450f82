"""Per-subscription sync locks so one endpoint is never synced twice at once.

Two layers: an in-process set of endpoints currently syncing (covers
concurrent refreshes and the sweep inside one server), and a Redis
``SET NX EX`` key that covers replicas.
"""

import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_in_flight: set[str] = set()


def lock_key(endpoint: str) -> str:
    """Redis key for an endpoint; hashed so the webhook token never lands in Redis."""
    digest = hashlib.sha256(endpoint.encode("utf-8")).hexdigest()[:32]
    return f"noticehook:sync:lock:{digest}"


@asynccontextmanager
async def _redis_lock(redis, endpoint: str, ttl_seconds: int) -> AsyncIterator[bool]:
    if redis is None:
        yield True
        return

    key = lock_key(endpoint)
    try:
        acquired = bool(await redis.set(key, "1", nx=True, ex=ttl_seconds))
    except RedisError as exc:
        logger.warning("Redis lock unavailable, syncing with process lock only: %s", exc)
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                await redis.delete(key)
            except RedisError as exc:
                logger.warning("Failed to release sync lock %s: %s", key, exc)


@asynccontextmanager
async def sync_lock(redis, endpoint: str, ttl_seconds: int) -> AsyncIterator[bool]:
    """Yield True if this process may sync ``endpoint`` now.

    Never blocks: a sync already running here or on another replica
    yields False. Without Redis (local mode) or when Redis is
    unreachable only the in-process guard applies.
    """
    if endpoint in _in_flight:
        yield False
        return

    _in_flight.add(endpoint)
    try:
        async with _redis_lock(redis, endpoint, ttl_seconds) as acquired:
            yield acquired
    finally:
        _in_flight.discard(endpoint)
