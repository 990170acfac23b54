# backend/parkzy/core/booking_lock.py
"""
Per-booking mutex held around every phase that moves money.

Backed by redis-py's ``Lock``: the key stores a random token, so a worker
whose lock already expired cannot release a lock another worker now holds.
Without Redis the mutex fails open; row locks and the transition table
still guard each status change.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
from typing import Iterator, Optional

from redis import Redis
from redis.exceptions import LockError, RedisError
from redis.lock import Lock

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_client: Optional[Redis] = None
_client_guard = threading.Lock()


def _redis() -> Optional[Redis]:
    global _client
    if not settings.redis_url:
        return None
    with _client_guard:
        if _client is None:
            try:
                candidate = Redis.from_url(settings.redis_url, decode_responses=True)
                candidate.ping()
            except (RedisError, ValueError) as exc:
                logger.warning("Booking lock Redis unavailable", extra={"error": str(exc)})
                return None
            _client = candidate
    return _client


def _release(lock: Lock, booking_id: str) -> None:
    try:
        lock.release()
        prometheus_metrics.record_booking_lock("release", "success")
    except LockError:
        # TTL elapsed first; the key is gone or belongs to someone else now
        prometheus_metrics.record_booking_lock("release", "not_owned")
        logger.warning("Booking lock expired before release", extra={"booking_id": booking_id})
    except RedisError as exc:
        prometheus_metrics.record_booking_lock("release", "error")
        logger.warning(
            "Booking lock release failed",
            extra={"booking_id": booking_id, "error": str(exc)},
        )


@contextmanager
def booking_lock_sync(booking_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """
    Yield whether the caller may proceed.

    ``False`` means another worker holds the lock; the caller decides how to
    fail. Redis being absent or erroring yields ``True``.
    """
    lock: Optional[Lock] = None
    acquired = True
    client = _redis()
    if client is None:
        prometheus_metrics.record_booking_lock("acquire", "redis_unavailable")
    else:
        lock = client.lock(
            f"parkzy:lock:booking:{booking_id}",
            timeout=ttl_s or settings.booking_lock_ttl_seconds,
            blocking=False,
        )
        try:
            acquired = lock.acquire()
            prometheus_metrics.record_booking_lock("acquire", "success" if acquired else "blocked")
        except RedisError as exc:
            prometheus_metrics.record_booking_lock("acquire", "error")
            logger.warning(
                "Booking lock acquire failed; continuing unlocked",
                extra={"booking_id": booking_id, "error": str(exc)},
            )
            lock = None
            acquired = True
    try:
        yield acquired
    finally:
        if acquired and lock is not None:
            _release(lock, booking_id)
