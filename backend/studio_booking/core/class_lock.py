"""
Per-class critical section.

Every operation that reads a class's seat count and then writes a booking or a
waitlist entry runs inside ``class_lock(class_id)``. Within one process a
``threading.Lock`` per class serializes callers; when ``REDIS_URL`` is
configured a redis key additionally serializes callers across processes.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .constants import CLASS_LOCK_NAMESPACE
from .exceptions import ClassLockTimeoutException
from .ulid_helper import generate_ulid

logger = logging.getLogger(__name__)

_LOCAL_LOCKS: Dict[str, threading.Lock] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

_REDIS_POLL_INTERVAL_S = 0.05


def _lock_key(class_id: str) -> str:
    return f"booking:class:{class_id}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{CLASS_LOCK_NAMESPACE}:lock:{key}"


def _get_local_lock(class_id: str) -> threading.Lock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(class_id)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[class_id] = lock
        return lock


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("class_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _acquire_redis(
    client: Redis, class_id: str, token: str, ttl_s: int, deadline: float
) -> Optional[bool]:
    """
    Poll for the redis key until ``deadline``.

    Returns True when held, False on timeout, None when redis errored and the
    caller should continue with the local lock only.
    """
    key = _namespaced_key(_lock_key(class_id))
    try:
        while True:
            if client.set(key, token, nx=True, ex=ttl_s):
                prometheus_metrics.record_class_lock("redis", "acquired")
                return True
            if time.monotonic() >= deadline:
                prometheus_metrics.record_class_lock("redis", "timeout")
                return False
            time.sleep(_REDIS_POLL_INTERVAL_S)
    except Exception as exc:
        prometheus_metrics.record_class_lock("redis", "unavailable")
        logger.warning(
            "class_lock_redis_acquire_failed",
            extra={
                "class_id": class_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return None


def _release_redis(client: Redis, class_id: str, token: str) -> None:
    key = _namespaced_key(_lock_key(class_id))
    try:
        # Only delete our own key; an expired TTL may have handed it to someone else
        if client.get(key) == token:
            client.delete(key)
    except Exception as exc:
        logger.warning(
            "class_lock_redis_release_failed",
            extra={
                "class_id": class_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def class_lock(
    class_id: str,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> Iterator[str]:
    """
    Hold the critical section for ``class_id``.

    Yields the strongest backend actually held ("redis" or "local").

    Raises:
        ClassLockTimeoutException: If the section could not be entered in time
    """
    ttl = ttl_s if ttl_s is not None else settings.class_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.class_lock_wait_seconds
    started = time.monotonic()
    deadline = started + wait

    local = _get_local_lock(class_id)
    if not local.acquire(timeout=max(wait, 0)):
        prometheus_metrics.record_class_lock("local", "timeout")
        raise ClassLockTimeoutException(class_id, time.monotonic() - started)
    prometheus_metrics.record_class_lock("local", "acquired")

    backend = "local"
    client = _get_sync_redis()
    token = generate_ulid()
    held_redis = False
    try:
        if client is not None:
            outcome = _acquire_redis(client, class_id, token, ttl, deadline)
            if outcome is False:
                raise ClassLockTimeoutException(class_id, time.monotonic() - started)
            held_redis = bool(outcome)
            if held_redis:
                backend = "redis"
        yield backend
    finally:
        if held_redis and client is not None:
            _release_redis(client, class_id, token)
        local.release()
