# backend/booking_engine/core/capacity_lock.py
"""
Per (space_type, booking_date) mutual exclusion for capacity-affecting work.

Capacity is derived by re-scanning bookings, so two approvals racing on the
same space and day could both see room and both commit. Every transition
that can move a booking into or out of a capacity-holding status runs inside
``hold()`` for the keys it touches. Keys are always acquired in sorted order
so an update moving a booking between days cannot deadlock with another.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
import logging
import threading
import time
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from redis import Redis
from redis.exceptions import LockError, RedisError

from booking_engine.core.config import Settings
from booking_engine.core.enums import SpaceType
from booking_engine.core.exceptions import ConcurrencyConflictException, ServiceException
from booking_engine.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

CapacityKey = Tuple[SpaceType, date]

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()


def _lock_key(space_type: SpaceType, booking_date: date) -> str:
    return f"capacity:{SpaceType(space_type).value}:{booking_date.isoformat()}:mutex"


def _ordered_keys(keys: Iterable[CapacityKey]) -> List[str]:
    return sorted({_lock_key(space_type, booking_date) for space_type, booking_date in keys})


class CapacityLockManager(ABC):
    """Serializes capacity-affecting transitions per space and day."""

    backend_name = "abstract"

    def __init__(self, wait_seconds: float = 5.0) -> None:
        self.wait_seconds = wait_seconds

    @contextmanager
    def hold(self, keys: Iterable[CapacityKey]) -> Iterator[List[str]]:
        ordered = _ordered_keys(keys)
        acquired: List[str] = []
        started = time.monotonic()
        try:
            for key in ordered:
                if not self._acquire(key):
                    prometheus_metrics.record_capacity_lock(self.backend_name, "acquire", "timeout")
                    logger.warning(
                        "capacity_lock_timeout",
                        extra={"lock_key": key, "wait_seconds": self.wait_seconds},
                    )
                    raise ConcurrencyConflictException(
                        "Timed out waiting for capacity lock",
                        details={"lock_key": key, "wait_seconds": self.wait_seconds},
                    )
                acquired.append(key)
                prometheus_metrics.record_capacity_lock(self.backend_name, "acquire", "success")
            prometheus_metrics.observe_capacity_lock_wait(
                self.backend_name, time.monotonic() - started
            )
            yield list(ordered)
        finally:
            for key in reversed(acquired):
                self._release(key)

    @abstractmethod
    def _acquire(self, key: str) -> bool:
        """Block up to wait_seconds for key. Return False on timeout."""

    @abstractmethod
    def _release(self, key: str) -> None:
        """Release a key previously acquired by this thread."""


class LocalCapacityLockManager(CapacityLockManager):
    """In-process locks; correct for a single worker process."""

    backend_name = "local"

    def __init__(self, wait_seconds: float = 5.0) -> None:
        super().__init__(wait_seconds=wait_seconds)
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def _acquire(self, key: str) -> bool:
        return self._lock_for(key).acquire(timeout=self.wait_seconds)

    def _release(self, key: str) -> None:
        self._lock_for(key).release()
        prometheus_metrics.record_capacity_lock(self.backend_name, "release", "success")


class RedisCapacityLockManager(CapacityLockManager):
    """Distributed locks shared by every worker pointing at the same Redis."""

    backend_name = "redis"

    def __init__(
        self,
        client: Redis,
        *,
        namespace: str = "booking_engine",
        ttl_seconds: int = 30,
        wait_seconds: float = 5.0,
    ) -> None:
        super().__init__(wait_seconds=wait_seconds)
        self.client = client
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds
        self._held = threading.local()

    def _namespaced_key(self, key: str) -> str:
        return f"{self.namespace}:lock:{key}"

    def _held_locks(self) -> Dict[str, Any]:
        held = getattr(self._held, "locks", None)
        if held is None:
            held = {}
            self._held.locks = held
        return held

    def _acquire(self, key: str) -> bool:
        lock = self.client.lock(
            self._namespaced_key(key),
            timeout=self.ttl_seconds,
            blocking_timeout=self.wait_seconds,
        )
        try:
            acquired = bool(lock.acquire())
        except RedisError as exc:
            prometheus_metrics.record_capacity_lock(self.backend_name, "acquire", "error")
            logger.error(
                "capacity_lock_redis_acquire_failed",
                extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            raise ServiceException(
                "Capacity lock backend unavailable",
                code="LOCK_BACKEND_UNAVAILABLE",
                details={"lock_key": key},
            ) from exc
        if acquired:
            self._held_locks()[key] = lock
        return acquired

    def _release(self, key: str) -> None:
        lock = self._held_locks().pop(key, None)
        if lock is None:
            prometheus_metrics.record_capacity_lock(self.backend_name, "release", "not_found")
            return
        try:
            lock.release()
            prometheus_metrics.record_capacity_lock(self.backend_name, "release", "success")
        except (LockError, RedisError) as exc:
            # The TTL may have expired while we held it; the key is gone either way.
            prometheus_metrics.record_capacity_lock(self.backend_name, "release", "error")
            logger.warning(
                "capacity_lock_redis_release_failed",
                extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
            )


def _get_sync_redis(redis_url: str) -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
            client.ping()
        except Exception as exc:
            logger.warning("capacity_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def build_capacity_lock_manager(config: Settings) -> CapacityLockManager:
    """
    Create the lock manager selected by settings.lock_backend.

    A configured Redis backend that cannot be reached is a startup error;
    per-process locks would not serialize approvals across workers.
    """
    if config.lock_backend == "redis":
        client = _get_sync_redis(config.redis_url)
        if client is None:
            prometheus_metrics.record_capacity_lock("redis", "connect", "redis_unavailable")
            logger.error(
                "capacity_lock_redis_unreachable",
                extra={"redis_url": config.redis_url},
            )
            raise ServiceException(
                "Capacity lock backend unavailable",
                code="LOCK_BACKEND_UNAVAILABLE",
                details={"redis_url": config.redis_url},
            )
        return RedisCapacityLockManager(
            client,
            namespace=config.lock_namespace,
            ttl_seconds=config.capacity_lock_ttl_seconds,
            wait_seconds=config.capacity_lock_wait_seconds,
        )
    return LocalCapacityLockManager(wait_seconds=config.capacity_lock_wait_seconds)
