"""
Tests for per-route locking

Covers the in-process lock, the redis SET NX EX layer and its
fail-open behavior when redis is unavailable.
"""

import threading
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from core.cache import release_lock, try_acquire_lock
from core.exceptions import RouteLockTimeout
from services.route_locks import _local_locks, route_lock


class TestRouteLock:
    """In-process and distributed layers together."""

    def test_lock_is_held_inside_block(self):
        with route_lock("river loop", wait_s=0.1):
            assert _local_locks["river loop"].lock.locked()
        assert "river loop" not in _local_locks

    def test_released_when_block_raises(self):
        with pytest.raises(ValueError):
            with route_lock("tempo track", wait_s=0.1):
                raise ValueError("boom")
        assert "tempo track" not in _local_locks

    def test_other_thread_times_out(self):
        errors = []

        def contender():
            try:
                with route_lock("hill loop", wait_s=0.05):
                    pass
            except RouteLockTimeout as e:
                errors.append(e)

        with route_lock("hill loop", wait_s=0.1):
            worker = threading.Thread(target=contender)
            worker.start()
            worker.join()

        assert len(errors) == 1
        assert errors[0].route_key == "hill loop"
        assert errors[0].error_code == "ROUTE_LOCK_TIMEOUT"
        assert "hill loop" not in _local_locks

    def test_different_routes_do_not_contend(self):
        with route_lock("loop a", wait_s=0.05):
            with route_lock("loop b", wait_s=0.05):
                assert _local_locks["loop a"].lock.locked()
                assert _local_locks["loop b"].lock.locked()
        assert "loop a" not in _local_locks
        assert "loop b" not in _local_locks

    def test_registry_does_not_grow_with_routes_seen(self):
        for i in range(200):
            with route_lock(f"route {i}", wait_s=0.05):
                pass
        assert not any(key.startswith("route ") for key in _local_locks)

    def test_waiter_keeps_entry_until_it_finishes(self):
        entered = threading.Event()
        release = threading.Event()

        def holder():
            with route_lock("canal loop", wait_s=0.5):
                entered.set()
                release.wait(1)

        worker = threading.Thread(target=holder)
        worker.start()
        entered.wait(1)
        entry = _local_locks["canal loop"]
        assert entry.users == 1

        threading.Timer(0.2, release.set).start()
        with route_lock("canal loop", wait_s=1):
            # the holder left while this thread waited; the entry survived
            assert _local_locks["canal loop"] is entry
        worker.join()
        assert "canal loop" not in _local_locks

    def test_distributed_holder_blocks_until_deadline(self):
        with patch("services.route_locks.try_acquire_lock", return_value=None) as acquire:
            with pytest.raises(RouteLockTimeout) as exc_info:
                with route_lock("bridge loop", wait_s=0.02, poll_s=0.005):
                    pass
        assert acquire.call_count >= 1
        assert exc_info.value.route_key == "route_lock:bridge loop"
        assert "bridge loop" not in _local_locks

    def test_distributed_token_released(self):
        with patch("services.route_locks.try_acquire_lock", return_value="tok") as acquire, \
             patch("services.route_locks.release_lock") as release:
            with route_lock("park loop", ttl_s=15, wait_s=0.1):
                pass
        acquire.assert_called_once_with("route_lock:park loop", 15)
        release.assert_called_once_with("route_lock:park loop", "tok")


class TestRedisLockPrimitives:
    """SET NX EX helpers in the cache layer."""

    def test_fail_open_without_redis(self):
        assert try_acquire_lock("route_lock:x", 30) == ""
        release_lock("route_lock:x", "")

    def test_acquired(self):
        client = MagicMock()
        client.set.return_value = True
        with patch("core.cache.get_redis_client", return_value=client):
            token = try_acquire_lock("route_lock:x", 30)
        assert token
        client.set.assert_called_once_with("route_lock:x", token, nx=True, ex=30)

    def test_held_elsewhere(self):
        client = MagicMock()
        client.set.return_value = None
        with patch("core.cache.get_redis_client", return_value=client):
            assert try_acquire_lock("route_lock:x", 30) is None

    def test_redis_error_fails_open(self):
        client = MagicMock()
        client.set.side_effect = RedisConnectionError("down")
        with patch("core.cache.get_redis_client", return_value=client):
            assert try_acquire_lock("route_lock:x", 30) == ""

    def test_release_only_own_token(self):
        client = MagicMock()
        client.get.return_value = "mine"
        with patch("core.cache.get_redis_client", return_value=client):
            release_lock("route_lock:x", "theirs")
            client.delete.assert_not_called()
            release_lock("route_lock:x", "mine")
            client.delete.assert_called_once_with("route_lock:x")
