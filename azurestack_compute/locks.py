"""Named mutexes serialising operations which modify the same parent object.

Data disk attachments and disk resizes both rewrite a virtual machine, so
operations on the same machine must not interleave when the engine applies
resources concurrently.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_locks: Dict[str, threading.Lock] = {}


def _lock_for(key: str) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


@contextmanager
def by_name(name: str, resource_type: str) -> Iterator[None]:
    """Hold the lock for ``resource_type``/``name`` for the duration of the block."""
    key = f"{resource_type}.{name}"
    lock = _lock_for(key)
    logger.debug(f"Locking {key}")
    with lock:
        yield
    logger.debug(f"Unlocked {key}")
