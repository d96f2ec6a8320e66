"""
Concurrency management and thread safety components.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from ..core.exceptions import ConcurrencyError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class LockInfo:
    """Information about a held lock."""
    lock_id: str
    resource_id: str
    holder_id: str
    acquired_at: float


class ConcurrencyManager:
    """Per-resource exclusive locks.

    A resource id is any string naming what a read-modify-write touches,
    e.g. ``course:<id>`` or ``grade:<task_id>:<student_id>``. Different
    resources never block each other.
    """

    def __init__(self, default_timeout: Optional[float] = 5.0):
        if default_timeout is not None and default_timeout <= 0:
            raise ValidationError("Lock timeout must be positive")
        self._default_timeout = default_timeout
        self._resource_locks: Dict[str, threading.Lock] = {}
        # resource_id -> threads holding or waiting on its lock
        self._resource_users: Dict[str, int] = {}
        self._lock_holders: Dict[str, LockInfo] = {}
        self._lock = threading.RLock()

    def _checkout(self, resource_id: str) -> threading.Lock:
        with self._lock:
            lock = self._resource_locks.get(resource_id)
            if lock is None:
                lock = threading.Lock()
                self._resource_locks[resource_id] = lock
            self._resource_users[resource_id] = self._resource_users.get(resource_id, 0) + 1
            return lock

    def _checkin(self, resource_id: str) -> None:
        with self._lock:
            users = self._resource_users[resource_id] - 1
            if users:
                self._resource_users[resource_id] = users
            else:
                # Clean up resources nobody holds or waits on
                del self._resource_users[resource_id]
                del self._resource_locks[resource_id]

    def acquire_lock(self, resource_id: str, holder_id: Optional[str] = None,
                     timeout: Optional[float] = None) -> str:
        """Acquire the lock on a resource, waiting at most ``timeout`` seconds."""
        holder_id = holder_id or f"thread_{threading.get_ident()}"
        timeout = self._default_timeout if timeout is None else timeout
        lock = self._checkout(resource_id)

        acquired = lock.acquire(timeout=timeout) if timeout is not None else lock.acquire()
        if not acquired:
            self._checkin(resource_id)
            logger.warning("Lock timeout on %s for %s after %ss", resource_id, holder_id, timeout)
            raise ConcurrencyError(
                f"Timed out acquiring lock on {resource_id}",
                error_code="lock_timeout",
                details={'resource_id': resource_id, 'timeout': timeout}
            )

        lock_id = str(uuid.uuid4())
        with self._lock:
            self._lock_holders[lock_id] = LockInfo(
                lock_id=lock_id,
                resource_id=resource_id,
                holder_id=holder_id,
                acquired_at=time.time()
            )
        return lock_id

    def release_lock(self, lock_id: str) -> bool:
        """Release a lock. Returns False for an unknown lock id."""
        with self._lock:
            lock_info = self._lock_holders.pop(lock_id, None)
            if lock_info is None:
                return False
            self._resource_locks[lock_info.resource_id].release()
            self._checkin(lock_info.resource_id)
            return True

    @contextmanager
    def lock(self, resource_id: str, holder_id: Optional[str] = None,
             timeout: Optional[float] = None) -> Iterator[str]:
        """Context manager for acquiring and releasing a resource lock."""
        lock_id = self.acquire_lock(resource_id, holder_id, timeout)
        try:
            yield lock_id
        finally:
            self.release_lock(lock_id)

    def is_locked(self, resource_id: str) -> bool:
        with self._lock:
            return any(info.resource_id == resource_id for info in self._lock_holders.values())

    def get_lock_info(self, resource_id: str) -> Optional[LockInfo]:
        """Get information about the current holder of a resource."""
        with self._lock:
            for lock_info in self._lock_holders.values():
                if lock_info.resource_id == resource_id:
                    return lock_info
            return None

    def get_holder_locks(self, holder_id: str) -> List[LockInfo]:
        """Get all locks held by a specific holder."""
        with self._lock:
            return [lock_info for lock_info in self._lock_holders.values()
                    if lock_info.holder_id == holder_id]

    def tracked_resources(self) -> List[str]:
        """Resources currently held or waited on."""
        with self._lock:
            return list(self._resource_locks)
