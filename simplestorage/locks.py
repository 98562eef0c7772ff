from __future__ import annotations

import threading
import weakref
from pathlib import Path


class PathLockRegistry:
    """
    Hands out the single mutex guarding a storage file.

    Every handle on the same (resolved) path in this process gets the same lock,
    so their saves and broadcasts serialize. Entries disappear once no handle
    holds on to the lock any more.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[Path, threading.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, path: Path) -> threading.Lock:
        key = path.resolve()
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)


GLOBAL_PATH_LOCKS = PathLockRegistry()
