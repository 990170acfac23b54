from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from parkzy.core import booking_lock


@pytest.fixture
def redis_client(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(booking_lock, "_redis", lambda: client)
    return client


def test_without_redis_the_caller_proceeds(monkeypatch):
    monkeypatch.setattr(booking_lock, "_redis", lambda: None)

    with booking_lock.booking_lock_sync("01HBOOKING") as acquired:
        assert acquired is True


def test_lock_is_taken_per_booking_and_released(redis_client):
    lock = redis_client.lock.return_value
    lock.acquire.return_value = True

    with booking_lock.booking_lock_sync("01HBOOKING", ttl_s=5) as acquired:
        assert acquired is True
        lock.release.assert_not_called()

    redis_client.lock.assert_called_once_with(
        "parkzy:lock:booking:01HBOOKING", timeout=5, blocking=False
    )
    lock.release.assert_called_once()


def test_held_lock_yields_false_and_is_not_released(redis_client):
    lock = redis_client.lock.return_value
    lock.acquire.return_value = False

    with booking_lock.booking_lock_sync("01HBOOKING") as acquired:
        assert acquired is False

    lock.release.assert_not_called()


def test_expired_lock_on_release_is_not_an_error(redis_client):
    lock = redis_client.lock.return_value
    lock.acquire.return_value = True
    lock.release.side_effect = LockError("Cannot release a lock that's no longer owned")

    with booking_lock.booking_lock_sync("01HBOOKING") as acquired:
        assert acquired is True


def test_redis_error_on_acquire_fails_open(redis_client):
    lock = redis_client.lock.return_value
    lock.acquire.side_effect = RedisConnectionError("connection refused")

    with booking_lock.booking_lock_sync("01HBOOKING") as acquired:
        assert acquired is True

    lock.release.assert_not_called()


def test_body_errors_still_release(redis_client):
    lock = redis_client.lock.return_value
    lock.acquire.return_value = True

    with pytest.raises(RuntimeError):
        with booking_lock.booking_lock_sync("01HBOOKING"):
            raise RuntimeError("boom")

    lock.release.assert_called_once()
