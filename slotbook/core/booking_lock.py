"""
Keyed mutexes used to serialize work on a single booking, slot or
idempotency key without a global lock across unrelated keys.

``InProcessMutex`` covers a single process. ``RedisMutex`` extends the same
contract across processes; it falls back to the in-process mutex (with a
warning) when Redis cannot be reached.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional, Protocol

from redis import Redis
from redis.exceptions import RedisError

from slotbook.core.config import settings
from slotbook.core.ulid_helper import generate_ulid
from slotbook.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_REDIS_POLL_INTERVAL_S = 0.05


def _lock_key(scope: str, key: str) -> str:
    return f"{scope}:{key}:mutex"


class KeyedMutex(Protocol):
    """Mutual exclusion per string key."""

    def acquire(self, key: str, timeout: float) -> Optional[str]:
        """Return an ownership token, or None if the key stayed locked for ``timeout``."""
        ...

    def release(self, key: str, token: str) -> None:
        ...


class InProcessMutex:
    """One ``threading.Lock`` per key, dropped once no thread holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    def acquire(self, key: str, timeout: float) -> Optional[str]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        acquired = lock.acquire(timeout=timeout)
        if not acquired:
            self._forget(key)
            return None
        return key

    def release(self, key: str, token: str) -> None:
        with self._guard:
            lock = self._locks.get(key)
        if lock is None:
            logger.warning("in_process_mutex_release_unknown_key", extra={"key": key})
            return
        lock.release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        with self._guard:
            remaining = self._waiters.get(key, 1) - 1
            if remaining <= 0:
                self._waiters.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._waiters[key] = remaining

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class RedisMutex:
    """SET NX EX based mutex shared across processes."""

    def __init__(
        self,
        client: Redis,
        *,
        namespace: Optional[str] = None,
        ttl_s: Optional[int] = None,
        fallback: Optional[InProcessMutex] = None,
    ) -> None:
        self.client = client
        self.namespace = namespace or settings.lock_namespace
        self.ttl_s = ttl_s or settings.booking_lock_ttl_seconds
        self.fallback = fallback or InProcessMutex()
        self._fallback_tokens: set[str] = set()

    @classmethod
    def from_url(cls, url: str, **kwargs: object) -> "RedisMutex":
        client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, **kwargs)  # type: ignore[arg-type]

    def _namespaced(self, key: str) -> str:
        return f"{self.namespace}:lock:{key}"

    def acquire(self, key: str, timeout: float) -> Optional[str]:
        token = generate_ulid()
        deadline = time.monotonic() + timeout
        try:
            while True:
                if self.client.set(self._namespaced(key), token, nx=True, ex=self.ttl_s):
                    return token
                if time.monotonic() >= deadline:
                    return None
                time.sleep(_REDIS_POLL_INTERVAL_S)
        except RedisError as exc:
            logger.warning(
                "redis_mutex_acquire_failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            prometheus_metrics.record_booking_lock("acquire", "redis_unavailable")
            fallback_token = self.fallback.acquire(key, max(0.0, deadline - time.monotonic()))
            if fallback_token is not None:
                self._fallback_tokens.add(token)
                return token
            return None

    def release(self, key: str, token: str) -> None:
        if token in self._fallback_tokens:
            self._fallback_tokens.discard(token)
            self.fallback.release(key, key)
            return
        try:
            current = self.client.get(self._namespaced(key))
            if current == token:
                self.client.delete(self._namespaced(key))
            else:
                # TTL expired and someone else owns it now
                prometheus_metrics.record_booking_lock("release", "not_owner")
                logger.warning("redis_mutex_release_not_owner", extra={"key": key})
        except RedisError as exc:
            prometheus_metrics.record_booking_lock("release", "error")
            logger.warning(
                "redis_mutex_release_failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )


@contextmanager
def keyed_lock(
    mutex: KeyedMutex, scope: str, key: str, timeout: Optional[float] = None
) -> Iterator[bool]:
    """
    Hold ``mutex`` for ``scope:key`` for the duration of the block.

    Yields False (without holding anything) when the lock could not be
    acquired in time; callers turn that into a ConcurrencyConflictError.
    """
    wait = settings.booking_lock_timeout_seconds if timeout is None else timeout
    name = _lock_key(scope, key)
    token = mutex.acquire(name, wait)
    if token is None:
        prometheus_metrics.record_booking_lock("acquire", "blocked")
        logger.info("keyed_lock_blocked", extra={"scope": scope, "key": key})
        yield False
        return
    prometheus_metrics.record_booking_lock("acquire", "success")
    try:
        yield True
    finally:
        mutex.release(name, token)
        prometheus_metrics.record_booking_lock("release", "success")


def build_mutex(redis_url: Optional[str] = None) -> KeyedMutex:
    """Pick the Redis mutex when a Redis URL is configured, else the in-process one."""
    url = redis_url if redis_url is not None else settings.redis_url
    if url:
        return RedisMutex.from_url(url)
    return InProcessMutex()
