from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Iterator, Optional

from redis import Redis
import ulid

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()
_SYNC_REDIS_FAILED_AT: Optional[float] = None
_RECONNECT_AFTER_S = 30.0
_CONNECT_TIMEOUT_S = 2
_POLL_INTERVAL_S = 0.05

# Delete the key only while it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def _lock_key(lesson_id: str) -> str:
    return f"lesson:{lesson_id}:promotion"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS, _SYNC_REDIS_FAILED_AT
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        if (
            _SYNC_REDIS_FAILED_AT is not None
            and time.monotonic() - _SYNC_REDIS_FAILED_AT < _RECONNECT_AFTER_S
        ):
            return None
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=_CONNECT_TIMEOUT_S,
                socket_timeout=_CONNECT_TIMEOUT_S,
            )
            client.ping()
        except Exception as exc:
            _SYNC_REDIS_FAILED_AT = time.monotonic()
            logger.warning("lesson_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        _SYNC_REDIS_FAILED_AT = None
        return _SYNC_REDIS


def new_lock_token() -> str:
    return str(ulid.ULID())


def acquire_lesson_lock(
    lesson_id: str,
    token: str,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> bool:
    """
    Take the per-lesson promotion mutex, storing ``token`` as its value.

    Returns True when the mutex is held or when Redis is not in use; the
    lesson row lock taken inside the transaction still serializes writers
    in that case. Returns False only when another holder kept the mutex for
    longer than ``wait_s``.
    """
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_lesson_lock("acquire", "redis_unavailable")
        return True
    ttl = ttl_s if ttl_s is not None else settings.lesson_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.lesson_lock_wait_seconds
    key = _namespaced_key(_lock_key(lesson_id))
    deadline = time.monotonic() + wait
    try:
        while True:
            if client.set(key, token, nx=True, ex=ttl):
                prometheus_metrics.record_lesson_lock("acquire", "success")
                return True
            if time.monotonic() >= deadline:
                prometheus_metrics.record_lesson_lock("acquire", "blocked")
                return False
            time.sleep(_POLL_INTERVAL_S)
    except Exception as exc:
        prometheus_metrics.record_lesson_lock("acquire", "error")
        logger.warning(
            "lesson_lock_acquire_failed",
            extra={
                "lesson_id": lesson_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True


def release_lesson_lock(lesson_id: str, token: str) -> None:
    """Release the mutex if ``token`` still owns it; someone else's hold is left alone."""
    client = _get_sync_redis()
    if client is None:
        return
    try:
        deleted = client.eval(_RELEASE_SCRIPT, 1, _namespaced_key(_lock_key(lesson_id)), token)
        if deleted:
            prometheus_metrics.record_lesson_lock("release", "success")
        else:
            prometheus_metrics.record_lesson_lock("release", "not_owner")
    except Exception as exc:
        prometheus_metrics.record_lesson_lock("release", "error")
        logger.warning(
            "lesson_lock_release_failed",
            extra={
                "lesson_id": lesson_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def lesson_lock(lesson_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    token = new_lock_token()
    acquired = acquire_lesson_lock(lesson_id, token, ttl_s=ttl_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_lesson_lock(lesson_id, token)
