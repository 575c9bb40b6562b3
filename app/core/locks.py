"""Per-backend serialization of mutating operations within one process."""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_backend_locks: Dict[str, threading.RLock] = {}


def _lock_for(backend_id: str) -> threading.RLock:
    with _registry_lock:
        lock = _backend_locks.get(backend_id)
        if lock is None:
            lock = threading.RLock()
            _backend_locks[backend_id] = lock
        return lock


@contextmanager
def backend_lock(backend_id: str) -> Iterator[None]:
    """Hold the lock for ``backend_id`` for the duration of the block."""
    lock = _lock_for(backend_id)
    with lock:
        yield


def forget(backend_id: str) -> None:
    """Drop the lock entry of a deleted backend."""
    with _registry_lock:
        _backend_locks.pop(backend_id, None)
