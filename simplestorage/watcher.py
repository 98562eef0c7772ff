"""Change watcher: reloads the store whenever its file changes on disk.

Runs on a daemon thread owned by the store handle. Any writer counts, this
process included, so every save is followed by one (harmless) reload.

Backends:
    inotify  watches the file's parent directory for CLOSE_WRITE / MOVED_TO /
             DELETE naming the file (Linux, inotify_simple). Watching the
             directory keeps working across atomic replace-writes, which swap
             the file's inode.
    poll     compares (mtime_ns, size, inode) every ``poll_interval`` seconds.
    auto     inotify on Linux, poll elsewhere. If inotify cannot be set up the
             watcher logs a warning and polls.
"""

from __future__ import annotations

import enum
import logging
import os
import sys
import threading
from collections.abc import Callable
from pathlib import Path

from .errors import WatchError

logger = logging.getLogger(__name__)

BACKENDS: tuple[str, ...] = ("auto", "inotify", "poll")

_INOTIFY_TIMEOUT_MS = 250
_ARM_TIMEOUT = 5.0
_ERROR_BACKOFF = 1.0


class WatcherState(str, enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    RELOADING = "reloading"
    STOPPED = "stopped"


class ChangeWatcher:
    """Background task that calls ``on_change`` once per detected file change."""

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], None],
        *,
        backend: str = "auto",
        poll_interval: float = 0.5,
    ) -> None:
        if backend not in BACKENDS:
            raise ValueError(f"unknown watch backend: {backend!r}")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._path = path
        self._on_change = on_change
        self._requested = backend
        self._backend = ""
        self._poll_interval = poll_interval
        self._state = WatcherState.IDLE
        self._stop = threading.Event()
        self._armed = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def backend(self) -> str:
        """The backend actually in use ("" before start)."""
        return self._backend

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start watching. Returns once changes from now on will be seen."""
        if self._thread is not None:
            raise RuntimeError("watcher already started")
        self._thread = threading.Thread(
            target=self._run,
            name=f"simplestorage-watch:{self._path.name}",
            daemon=True,
        )
        self._thread.start()
        if not self._armed.wait(_ARM_TIMEOUT):
            logger.warning("watcher for %s took longer than %.0fs to start", self._path, _ARM_TIMEOUT)

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._state = WatcherState.STOPPED

    # -------------------------------------------------------------------
    # loop
    # -------------------------------------------------------------------

    def _run(self) -> None:
        backend = self._requested
        if backend == "auto":
            backend = "inotify" if sys.platform.startswith("linux") else "poll"
        try:
            if backend == "inotify":
                try:
                    self._watch_inotify()
                    return
                except WatchError as e:
                    logger.warning("inotify unavailable for %s (%s), falling back to polling", self._path, e)
            self._watch_poll()
        finally:
            self._armed.set()
            self._state = WatcherState.STOPPED

    def _fire(self) -> None:
        self._state = WatcherState.RELOADING
        try:
            self._on_change()
        except Exception:
            logger.exception("reload after change to %s failed", self._path)
        finally:
            if not self._stop.is_set():
                self._state = WatcherState.WATCHING

    # -------------------------------------------------------------------
    # inotify
    # -------------------------------------------------------------------

    def _watch_inotify(self) -> None:
        try:
            import inotify_simple  # type: ignore[import]
        except ImportError as e:
            raise WatchError(f"inotify_simple not available: {e}") from e

        flags = inotify_simple.flags  # type: ignore[attr-defined]
        try:
            inotify = inotify_simple.INotify()
        except OSError as e:
            raise WatchError(str(e)) from e

        try:
            try:
                inotify.add_watch(str(self._path.parent), flags.CLOSE_WRITE | flags.MOVED_TO | flags.DELETE)
            except OSError as e:
                raise WatchError(str(e)) from e

            self._backend = "inotify"
            self._state = WatcherState.WATCHING
            self._armed.set()
            logger.debug("inotify watching %s", self._path)

            name = self._path.name
            while not self._stop.is_set():
                try:
                    events = inotify.read(timeout=_INOTIFY_TIMEOUT_MS)
                except OSError:
                    logger.exception("watch error on %s", self._path)
                    self._stop.wait(_ERROR_BACKOFF)
                    continue
                # one reload covers a burst of events
                if any(event.name == name for event in events) and not self._stop.is_set():
                    self._fire()
        finally:
            inotify.close()

    # -------------------------------------------------------------------
    # polling
    # -------------------------------------------------------------------

    def _signature(self) -> tuple[int, int, int] | None:
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return None
        return st.st_mtime_ns, st.st_size, st.st_ino

    def _watch_poll(self) -> None:
        self._backend = "poll"
        try:
            seen = self._signature()
        except OSError:
            logger.exception("watch error on %s", self._path)
            seen = None
        self._state = WatcherState.WATCHING
        self._armed.set()
        logger.debug("polling %s every %.2fs", self._path, self._poll_interval)

        while not self._stop.wait(self._poll_interval):
            try:
                current = self._signature()
            except OSError:
                logger.exception("watch error on %s", self._path)
                continue
            if current != seen:
                seen = current
                self._fire()
