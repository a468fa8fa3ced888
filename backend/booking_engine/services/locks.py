# backend/booking_engine/services/locks.py
"""
Per-provider mutual exclusion for reservations.

Every check-and-reserve runs while holding the lock of its provider:
- in-process: one threading.Lock per provider id
- across processes: additionally a Redis lock per provider id, when Redis
  is configured

Different providers never share a lock.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from redis import Redis
from redis.exceptions import LockError, RedisError

from .errors import StorageError

logger = logging.getLogger(__name__)


class ProviderBusy(Exception):
    """The provider lock could not be acquired in time."""

    def __init__(self, provider_id: int):
        super().__init__(f"Provider #{provider_id} is busy")
        self.provider_id = provider_id


class ProviderLocks:
    KEY_PREFIX = "lock:provider"

    def __init__(
        self,
        redis: Redis | None = None,
        timeout: float = 5.0,
        lease_seconds: float = 30.0,
    ):
        self.redis = redis
        self.timeout = timeout
        self.lease_seconds = lease_seconds
        self._locks: dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _local_lock(self, provider_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = self._locks[provider_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, provider_id: int) -> Iterator[None]:
        """
        Hold the provider's lock for the duration of the block.

        Raises ProviderBusy on timeout, StorageError if Redis fails.
        """
        local = self._local_lock(provider_id)
        if not local.acquire(timeout=self.timeout):
            raise ProviderBusy(provider_id)

        try:
            if self.redis is None:
                yield
                return

            remote = self.redis.lock(
                f"{self.KEY_PREFIX}:{provider_id}",
                timeout=self.lease_seconds,
                blocking_timeout=self.timeout,
            )
            try:
                acquired = remote.acquire()
            except RedisError as e:
                raise StorageError("Lock backend unavailable") from e
            if not acquired:
                raise ProviderBusy(provider_id)

            try:
                yield
            finally:
                try:
                    remote.release()
                except LockError:
                    # lease ran out while we held it
                    logger.warning(f"Provider #{provider_id} lock expired before release")
        finally:
            local.release()
