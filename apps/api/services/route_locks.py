"""
Per-route serialization for canonical route writes.

Two layers:
- an in-process lock per route key, for batch worker threads sharing
  one interpreter
- a redis SET NX EX lock per route key, for separate worker processes

Both layers cover the route stage's read-modify-write only; they are
released before the workout's single commit. Stats updates stay
serialized past that point because the stage takes a SELECT ... FOR
UPDATE row lock, held until the commit, and creation is an upsert on the
unique route name. Redis being down degrades to the in-process lock.

In-process entries are dropped once no thread holds or waits on them,
so long reprocess runs do not accumulate one lock per route ever seen.
"""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from core.cache import cache_key, release_lock, try_acquire_lock
from core.config import settings
from core.exceptions import RouteLockTimeout

logger = logging.getLogger(__name__)


@dataclass
class _LocalEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0  # holders plus waiters


_registry_guard = threading.Lock()
_local_locks: Dict[str, _LocalEntry] = {}


@contextmanager
def _local_lock(key: str, wait_s: float) -> Iterator[None]:
    with _registry_guard:
        entry = _local_locks.setdefault(key, _LocalEntry())
        entry.users += 1
    try:
        if not entry.lock.acquire(timeout=wait_s):
            raise RouteLockTimeout(key)
        try:
            yield
        finally:
            entry.lock.release()
    finally:
        with _registry_guard:
            entry.users -= 1
            if entry.users == 0:
                del _local_locks[key]


def _acquire_distributed(
    redis_key: str,
    ttl_s: int,
    wait_s: float,
    poll_s: float,
) -> str:
    deadline = time.monotonic() + wait_s
    while True:
        token = try_acquire_lock(redis_key, ttl_s)
        if token is not None:
            return token
        if time.monotonic() >= deadline:
            raise RouteLockTimeout(redis_key)
        time.sleep(poll_s)


@contextmanager
def route_lock(
    route_key: str,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
    poll_s: Optional[float] = None,
) -> Iterator[None]:
    """
    Hold the lock for ``route_key`` for the duration of the block.

    Raises RouteLockTimeout when another holder keeps it past ``wait_s``.
    """
    ttl_s = ttl_s if ttl_s is not None else settings.ROUTE_LOCK_TTL_S
    wait_s = wait_s if wait_s is not None else settings.ROUTE_LOCK_WAIT_S
    poll_s = poll_s if poll_s is not None else settings.ROUTE_LOCK_POLL_S

    with _local_lock(route_key, wait_s):
        redis_key = cache_key("route_lock", route_key)
        token = _acquire_distributed(redis_key, ttl_s, wait_s, poll_s)
        try:
            yield
        finally:
            release_lock(redis_key, token)
